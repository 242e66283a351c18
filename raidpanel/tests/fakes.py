"""In-memory stand-ins for the ports, shared by unit and integration tests."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Optional, Tuple

from raidpanel.adapters.storage_local import StorageLocal
from raidpanel.app.controller import AppController
from raidpanel.domain.entities import ClientLocation
from raidpanel.usecases.storage_assistant import AssistantHooks
from raidpanel.viewmodels.settings_vm import SettingsVM

TiB = 1024**4
GiB = 1024**3


class ManualScheduler:
    """SchedulerPort driven by an explicit clock."""

    def __init__(self) -> None:
        self.now_ms = 0
        self._timers: Dict[str, Tuple[int, int, Callable[[], None]]] = {}
        self._seq = 0

    def schedule(self, key: str, delay_ms: int, callback: Callable[[], None]) -> None:
        self._seq += 1
        self._timers[key] = (self.now_ms + max(1, int(delay_ms)), self._seq, callback)

    def cancel(self, key: str) -> None:
        self._timers.pop(key, None)

    def cancel_all(self) -> None:
        self._timers.clear()

    @property
    def pending(self) -> List[str]:
        return sorted(self._timers)

    def due_in(self, key: str) -> Optional[int]:
        timer = self._timers.get(key)
        return None if timer is None else timer[0] - self.now_ms

    def advance(self, ms: int) -> None:
        target = self.now_ms + int(ms)
        while True:
            due = [(when, seq, key) for key, (when, seq, _) in self._timers.items() if when <= target]
            if not due:
                break
            when, _, key = min(due)
            _, _, callback = self._timers.pop(key)
            self.now_ms = when
            callback()
        self.now_ms = target

    def fire(self, key: str) -> None:
        _, _, callback = self._timers.pop(key)
        callback()


class DeferredOffload:
    """Offload that parks jobs until the test runs them."""

    def __init__(self) -> None:
        self.jobs: List[Tuple[Callable[[], Any], Callable[[Any, Optional[BaseException]], None]]] = []

    def __call__(self, job, done) -> None:
        self.jobs.append((job, done))

    def run_next(self) -> None:
        job, done = self.jobs.pop(0)
        try:
            result = job()
        except Exception as exc:
            done(None, exc)
            return
        done(result, None)

    def run_all(self) -> None:
        while self.jobs:
            self.run_next()


class MemoryKV:
    """KeyValueStorePort over a dict; values are deep-copied like JSON storage."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self.data: Dict[str, Any] = copy.deepcopy(initial or {})

    def get_item(self, key: str) -> Any:
        return copy.deepcopy(self.data.get(key))

    def set_item(self, key: str, value: Any) -> None:
        self.data[key] = copy.deepcopy(value)

    def remove_item(self, key: str) -> None:
        self.data.pop(key, None)


class FakeHealth:
    """HealthPort answering per base URL; unknown URLs are unreachable."""

    def __init__(self, answers: Optional[Dict[str, Any]] = None) -> None:
        self.answers = dict(answers or {})
        self.calls: List[Tuple[str, float]] = []

    def probe(self, base_url: str, timeout_s: float) -> Dict:
        self.calls.append((base_url, timeout_s))
        answer = self.answers.get(base_url)
        if answer is None:
            raise TimeoutError(f"no answer from {base_url}")
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeChannel:
    def __init__(self, url: str, *, fail: bool = False) -> None:
        self.url = url
        self.fail = fail
        self.handlers: Dict[str, Callable[..., None]] = {}
        self._connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0

    @property
    def connected(self) -> bool:
        return self._connected

    def on(self, event: str, handler: Callable[..., None]) -> None:
        self.handlers[event] = handler

    def connect(self, timeout_s: float) -> None:
        self.connect_calls += 1
        if self.fail:
            raise ConnectionError(f"cannot reach {self.url}")
        self._connected = True
        self.emit("connect")

    def disconnect(self) -> None:
        self.disconnect_calls += 1
        was_connected = self._connected
        self._connected = False
        if was_connected:
            self.emit("disconnect")

    def emit(self, event: str, *args: Any) -> None:
        handler = self.handlers.get(event)
        if handler is not None:
            handler(*args)


class FakeChannelFactory:
    def __init__(self, failing_urls: Tuple[str, ...] = ()) -> None:
        self.failing_urls = set(failing_urls)
        self.created: List[FakeChannel] = []

    def __call__(self, url: str) -> FakeChannel:
        channel = FakeChannel(url, fail=url in self.failing_urls)
        self.created.append(channel)
        return channel

    @property
    def last(self) -> FakeChannel:
        return self.created[-1]

    def connected(self) -> List[FakeChannel]:
        return [channel for channel in self.created if channel.connected]


class FakeStorage:
    """StoragePort with canned answers; an Exception value is raised instead."""

    def __init__(
        self,
        *,
        inventory: Any = None,
        status: Any = None,
        prechecks: Optional[Dict[str, Any]] = None,
        add_disk: Any = None,
        optimize: Any = None,
        stop_resync: Any = None,
    ) -> None:
        self.inventory_answer = inventory if inventory is not None else inventory_payload()
        self.status_answer = status if status is not None else {"exists": False}
        self.prechecks = dict(prechecks or {})
        self.add_disk_answer = add_disk if add_disk is not None else {"success": True, "message": "Disk added"}
        self.optimize_answer = optimize if optimize is not None else {"success": True}
        self.stop_answer = stop_resync if stop_resync is not None else {"success": True, "logs": []}
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    @staticmethod
    def _answer(value: Any) -> Any:
        if isinstance(value, Exception):
            raise value
        return copy.deepcopy(value)

    def inventory(self) -> Dict:
        self.calls.append(("inventory", ()))
        return self._answer(self.inventory_answer)

    def mdraid_status(self) -> Dict:
        self.calls.append(("mdraid_status", ()))
        return self._answer(self.status_answer)

    def mdraid_prechecks(self, array: str, disk: str) -> Dict:
        self.calls.append(("mdraid_prechecks", (array, disk)))
        return self._answer(self.prechecks.get(disk, precheck_payload()))

    def mdraid_add_disk(self, array: str, disk: str, dry_run: bool = False) -> Dict:
        self.calls.append(("mdraid_add_disk", (array, disk, dry_run)))
        return self._answer(self.add_disk_answer)

    def mdraid_optimize_and_add(self, array: str, smart_optimization: Dict) -> Dict:
        self.calls.append(("mdraid_optimize_and_add", (array, smart_optimization)))
        return self._answer(self.optimize_answer)

    def mdraid_stop_resync(self, array: str) -> Dict:
        self.calls.append(("mdraid_stop_resync", (array,)))
        return self._answer(self.stop_answer)

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


# ---- payload builders ----
def blockdevice(
    name: str,
    size: Any,
    *,
    kind: str = "disk",
    mountpoint: Optional[str] = None,
    children: Tuple[Dict[str, Any], ...] = (),
) -> Dict[str, Any]:
    device: Dict[str, Any] = {
        "name": name,
        "path": f"/dev/{name}",
        "type": kind,
        "size": size,
        "mountpoints": [mountpoint] if mountpoint else [None],
    }
    if children:
        device["children"] = list(children)
    return device


def inventory_payload(*devices: Dict[str, Any]) -> Dict[str, Any]:
    return {"devices": {"blockdevices": list(devices)}}


def status_payload(
    members: Tuple[Tuple[str, int], ...] = (),
    *,
    syncing: bool = False,
    progress: Optional[float] = None,
    eta: Optional[str] = None,
    speed: Optional[str] = None,
    state: str = "clean",
) -> Dict[str, Any]:
    return {
        "exists": True,
        "device": "/dev/md0",
        "state": state,
        "activeDevices": len(members),
        "totalDevices": len(members),
        "syncing": syncing,
        "syncProgress": progress,
        "syncETA": eta,
        "syncSpeed": speed,
        "members": [
            {"device": device, "size": size, "state": "active sync"} for device, size in members
        ],
    }


def precheck_payload(
    *,
    success: bool = True,
    can_proceed: bool = True,
    reasons: Tuple[str, ...] = (),
    plan: Tuple[Any, ...] = ("mdadm --add /dev/md0 /dev/sdb1",),
    smart_optimization: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "success": success,
        "canProceed": can_proceed,
        "reasons": list(reasons),
        "plan": list(plan),
    }
    if smart_optimization is not None:
        payload["smartOptimization"] = smart_optimization
    return payload


# ---- assembled coordinator ----
LAN_URL = "http://192.168.1.5:8080/"
PRIVATE_HEALTH_URL = "http://ryvie.local:3002"


class AssistantRig:
    """A ``StorageAssistant`` wired by ``AppController`` over in-memory ports."""

    def __init__(
        self,
        root_dir: str,
        storage: Optional[FakeStorage] = None,
        *,
        url: str = LAN_URL,
        health: Optional[FakeHealth] = None,
        channels: Optional[FakeChannelFactory] = None,
        offload: Any = None,
        dry_run: bool = False,
        **settings: Any,
    ) -> None:
        self.storage = storage or FakeStorage()
        self.health = health or FakeHealth({PRIVATE_HEALTH_URL: {"status": "ok"}})
        self.channels = channels or FakeChannelFactory()
        self.scheduler = ManualScheduler()
        self.events: Dict[str, List[Any]] = {}

        vm = SettingsVM()
        vm.apply_dict(settings)
        controller = AppController(
            vm,
            StorageLocal(root_dir=root_dir),
            channel_factory=self.channels,
            health=self.health,
            adapter_factory=lambda _context: self.storage,
        )
        hooks = AssistantHooks(
            **{name: self._recorder(name) for name in AssistantHooks.__dataclass_fields__}
        )
        kwargs: Dict[str, Any] = {"scheduler": self.scheduler, "hooks": hooks, "dry_run": dry_run}
        if offload is not None:
            kwargs["offload"] = offload
        self.assistant = controller.build_storage_assistant(ClientLocation.from_url(url), **kwargs)

    def _recorder(self, name: str) -> Callable[..., None]:
        def _record(*args: Any) -> None:
            self.events.setdefault(name, []).append(args[0] if len(args) == 1 else args)

        return _record

    def last(self, name: str) -> Any:
        return self.events[name][-1]

    @property
    def channel(self) -> FakeChannel:
        return self.channels.last
