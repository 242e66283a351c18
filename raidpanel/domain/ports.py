from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Protocol

ArrayId = str
DiskPath = str


# ---- Error model ----
class UseCaseError(Exception):
    """Base class for use case level errors (user-presentable)."""

    def __init__(self, code: str, message: str, meta: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.meta = meta


# ---- Ports (Hexagonal boundaries) ----
class StoragePort(Protocol):
    """Storage endpoints of the appliance backend (`/api/storage/*`)."""

    def inventory(self) -> Dict: ...  # {"devices": {"blockdevices": [...]}, ...}
    def mdraid_status(self) -> Dict: ...  # raw status object
    def mdraid_prechecks(self, array: ArrayId, disk: DiskPath) -> Dict: ...
    def mdraid_add_disk(self, array: ArrayId, disk: DiskPath, dry_run: bool = False) -> Dict: ...
    def mdraid_optimize_and_add(self, array: ArrayId, smart_optimization: Dict) -> Dict: ...
    def mdraid_stop_resync(self, array: ArrayId) -> Dict: ...


class HealthPort(Protocol):
    """Bounded `/status` probe against an arbitrary base URL."""

    def probe(self, base_url: str, timeout_s: float) -> Dict: ...  # raises on failure


class KeyValueStorePort(Protocol):
    """Durable per-origin client storage (one JSON value per key)."""

    def get_item(self, key: str) -> Any: ...
    def set_item(self, key: str, value: Any) -> None: ...
    def remove_item(self, key: str) -> None: ...


class PushChannel(Protocol):
    """Persistent push connection to the backend (socket.io)."""

    @property
    def connected(self) -> bool: ...
    def on(self, event: str, handler: Callable[..., None]) -> None: ...
    def connect(self, timeout_s: float) -> None: ...  # raises on failure
    def disconnect(self) -> None: ...


ChannelFactory = Callable[[str], PushChannel]


class SchedulerPort(Protocol):
    """Keyed one-shot timers on the owning event loop."""

    def schedule(self, key: str, delay_ms: int, callback: Callable[[], None]) -> None: ...
    def cancel(self, key: str) -> None: ...
    def cancel_all(self) -> None: ...


class SettingsStorePort(Protocol):
    """Persistence for user settings."""

    def save_user_settings(self, payload: Dict) -> None: ...
    def load_user_settings(self) -> Optional[Dict]: ...


__all__: List[str] = [
    "ArrayId",
    "ChannelFactory",
    "DiskPath",
    "HealthPort",
    "KeyValueStorePort",
    "PushChannel",
    "SchedulerPort",
    "SettingsStorePort",
    "StoragePort",
    "UseCaseError",
]
