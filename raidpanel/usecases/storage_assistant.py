"""Coordinator wiring the storage assistant workflow without UI concerns.

select -> precheck -> plan -> confirm -> execute -> stream -> resolve, plus
the periodic status reader, the advisor, the push channel and the resumable
session. Every outcome leaves through :class:`AssistantHooks`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from raidpanel.domain.advisor import analyze
from raidpanel.domain.entities import (
    AccessMode,
    ArrayStatus,
    Disk,
    ExecutionStatus,
    LogEntry,
    OperationPlan,
    ProgressSnapshot,
    Suggestion,
)
from raidpanel.domain.execution import ExecutionState
from raidpanel.domain.operation_log import OperationLog, ProgressTracker
from raidpanel.domain.ports import SchedulerPort, UseCaseError
from raidpanel.usecases.access_mode_context import AccessModeContext, SwitchResult
from raidpanel.usecases.execute_operation import ConfirmationRequest, OperationExecutor
from raidpanel.usecases.live_channel import (
    EVENT_CONNECT,
    EVENT_DISCONNECT,
    EVENT_ERROR,
    EVENT_LOG,
    EVENT_PROGRESS,
    EVENT_SERVER_STATUS,
    ChannelState,
    LiveChannelManager,
)
from raidpanel.usecases.mode_watch import ModeWatcher
from raidpanel.usecases.offload import Offload, run_inline
from raidpanel.usecases.plan_operation import OperationPlanner
from raidpanel.usecases.progress_stream import ProgressStreamConsumer
from raidpanel.usecases.read_storage_status import PollResult, ReaderHooks, StorageStatusReader
from raidpanel.usecases.resumable_session import SessionPersistence

log = logging.getLogger(__name__)


def _noop(*_: object, **__: object) -> None:
    """Default no-op callback used for hooks."""


@dataclass
class AssistantHooks:
    """Optional callbacks fired on the owning loop."""

    on_disks: Callable[[Tuple[Disk, ...]], None] = _noop
    on_status: Callable[[ArrayStatus], None] = _noop
    on_suggestion: Callable[[Optional[Suggestion]], None] = _noop
    on_plan: Callable[[Optional[OperationPlan]], None] = _noop
    on_log: Callable[[Tuple[LogEntry, ...]], None] = _noop
    on_progress: Callable[[Optional[ProgressSnapshot]], None] = _noop
    on_execution_status: Callable[[ExecutionStatus], None] = _noop
    on_channel_state: Callable[[ChannelState], None] = _noop
    on_server_status: Callable[[Any], None] = _noop
    on_mode: Callable[[AccessMode], None] = _noop
    on_poll_error: Callable[[UseCaseError, int], None] = _noop
    on_error: Callable[[UseCaseError], None] = _noop

    def __post_init__(self) -> None:
        for name in self.__dataclass_fields__:
            if getattr(self, name) is None:
                setattr(self, name, _noop)


class StorageAssistant:
    """Owns mount/teardown of one storage assistant page."""

    def __init__(
        self,
        *,
        context: AccessModeContext,
        channels: LiveChannelManager,
        reader: StorageStatusReader,
        planner: OperationPlanner,
        executor: OperationExecutor,
        consumer: ProgressStreamConsumer,
        persistence: SessionPersistence,
        scheduler: SchedulerPort,
        oplog: OperationLog,
        progress: ProgressTracker,
        state: ExecutionState,
        offload: Offload = run_inline,
        hooks: Optional[AssistantHooks] = None,
        detect_on_mount: bool = True,
        mode_watch_ms: int = 100,
        mode_watch_max_ms: int = 2000,
    ) -> None:
        self.context = context
        self.channels = channels
        self.reader = reader
        self.planner = planner
        self.executor = executor
        self.consumer = consumer
        self.persistence = persistence
        self.scheduler = scheduler
        self.oplog = oplog
        self.progress = progress
        self.state = state
        self.offload = offload
        self.hooks = hooks or AssistantHooks()
        self.detect_on_mount = detect_on_mount
        self.suggestion: Optional[Suggestion] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._mounted = False

        self.reader.hooks = ReaderHooks(
            on_disks=self._on_disks,
            on_status=self._on_status,
            on_error=self._on_poll_error,
        )
        self.consumer.on_settled = self._on_settled
        self.watcher = ModeWatcher(
            read_mode=lambda: self.context.detected_mode,
            fallback=self.context.get_current,
            scheduler=scheduler,
            on_mode=self._on_mode_ready,
            interval_ms=mode_watch_ms,
            max_ms=mode_watch_max_ms,
        )

    # ---- lifecycle ----
    @property
    def mounted(self) -> bool:
        return self._mounted

    def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        restored = self.persistence.bind()
        if restored is not None:
            self.consumer.resume()

        self._unsubscribers.extend(
            [
                self.oplog.subscribe(lambda: self.hooks.on_log(self.oplog.entries)),
                self.progress.subscribe(lambda: self.hooks.on_progress(self.progress.current)),
                self.state.subscribe(self.hooks.on_execution_status),
                self.planner.subscribe(self.hooks.on_plan),
                self.context.subscribe(self.hooks.on_mode),
                self.channels.subscribe(EVENT_LOG, self.consumer.on_log),
                self.channels.subscribe(EVENT_PROGRESS, self.consumer.on_progress),
                self.channels.subscribe(EVENT_SERVER_STATUS, self.hooks.on_server_status),
                self.channels.subscribe(EVENT_CONNECT, self._on_channel_change),
                self.channels.subscribe(EVENT_DISCONNECT, self._on_channel_change),
                self.channels.subscribe(EVENT_ERROR, self._on_channel_error),
            ]
        )
        # replay rehydrated state to the view
        self.hooks.on_log(self.oplog.entries)
        self.hooks.on_progress(self.progress.current)
        self.hooks.on_execution_status(self.state.status)

        self.reader.start()
        if self.detect_on_mount and self.context.detect_from_url() is None:
            self.offload(self.context.probe_private, self._on_detect_done)
        self.watcher.start()

    def teardown(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        self.watcher.stop()
        self.reader.stop()
        self.consumer.reset()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.channels.disconnect()
        self.persistence.unbind()
        self.scheduler.cancel_all()

    # ---- workflow ----
    def select_disk(self, path: Optional[str]) -> None:
        self.planner.select(path, self.reader.status)

    def confirm(self) -> Optional[ConfirmationRequest]:
        try:
            return self.executor.confirm(self.planner.plan)
        except UseCaseError as err:
            self.hooks.on_error(err)
            return None

    def execute(self, acknowledged: bool) -> bool:
        try:
            self.executor.execute(
                self.planner.plan,
                acknowledged=acknowledged,
                on_done=self._on_execute_done,
                on_begin=self.consumer.reset,
            )
        except UseCaseError as err:
            self.hooks.on_error(err)
            return False
        return True

    def stop_resync(self) -> None:
        self.executor.stop_resync(on_stopped=self._after_stop, on_done=self._report)

    def switch_mode(
        self,
        mode: AccessMode,
        on_done: Optional[Callable[[SwitchResult], None]] = None,
    ) -> None:
        target = self.context.coerce_target(mode)

        def _done(reachable, error) -> None:
            if error is not None:
                result = SwitchResult(
                    ok=False,
                    mode=self.context.get_current(),
                    error=UseCaseError("CONNECTIVITY_FAILED", str(error) or "Mode switch failed."),
                )
            else:
                result = self.context.apply_switch(target, reachable)
            if not result.ok and result.error is not None:
                self.hooks.on_error(result.error)
            if on_done is not None:
                on_done(result)

        self.offload(lambda: self.context.test_connectivity(target), _done)

    def refresh(self) -> None:
        self.reader.refresh()

    # ---- internal callbacks ----
    def _on_detect_done(self, payload, error) -> None:
        if error is not None:
            log.warning("Access mode detection failed: %s", error)
            return
        if self._mounted:
            self.context.apply_detection(payload)

    def _on_mode_ready(self, mode: AccessMode) -> None:
        if not self._mounted:
            return
        self.channels.request(mode)
        self._unsubscribers.append(self.channels.follow(self.context))

    def _on_disks(self, disks: Tuple[Disk, ...]) -> None:
        self.hooks.on_disks(disks)

    def _on_status(self, status: ArrayStatus) -> None:
        self.consumer.apply_polled_status(status)
        self.planner.on_status(status)
        self.suggestion = analyze(status.members)
        self.hooks.on_status(status)
        self.hooks.on_suggestion(self.suggestion)

    def _on_poll_error(self, err: UseCaseError, failures: int) -> None:
        self.hooks.on_poll_error(err, failures)

    def _on_channel_change(self, _payload: Any = None) -> None:
        self.hooks.on_channel_state(self.channels.state)

    def _on_channel_error(self, message: Any) -> None:
        log.warning("Push channel error: %s", message)
        self.hooks.on_channel_state(self.channels.state)

    def _on_execute_done(self, err: Optional[UseCaseError]) -> None:
        if err is not None:
            self.hooks.on_error(err)

    def _on_settled(self) -> None:
        succeeded = self.state.status is ExecutionStatus.SUCCESS

        def _after_refresh(_result: PollResult) -> None:
            if succeeded:
                # the target is an array member now
                self.planner.clear()

        self.reader.refresh(_after_refresh)

    def _after_stop(self) -> None:
        self.consumer.reset()
        self.reader.refresh()

    def _report(self, err: Optional[UseCaseError]) -> None:
        if err is not None:
            self.hooks.on_error(err)


__all__ = ["AssistantHooks", "StorageAssistant"]
