"""Resumable operation session: one persisted slot plus the binder that feeds it.

A reload during a multi-hour resync must not lose the log or the progress.
The store keeps ``{logs, executionStatus, progress, savedAt}`` under a fixed
key of the per-origin key/value storage; the binder writes it on every
mutation while an operation is live and clears it shortly after the run ends.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, List, Mapping, Optional

from raidpanel.domain.entities import (
    ExecutionStatus,
    LogEntry,
    PersistedSession,
    ProgressSnapshot,
)
from raidpanel.domain.execution import ExecutionState
from raidpanel.domain.operation_log import OperationLog, ProgressTracker
from raidpanel.domain.ports import KeyValueStorePort, SchedulerPort

log = logging.getLogger(__name__)

SESSION_KEY = "storage_operation_session"
SESSION_CLEAR_KEY = "session-clear"
DEFAULT_MAX_AGE_MS = 300_000


def _now_ms() -> int:
    return int(time.time() * 1000)


def session_from_dict(payload: Any) -> Optional[PersistedSession]:
    """Parse a stored slot; anything malformed yields ``None``."""
    if not isinstance(payload, Mapping):
        return None
    try:
        saved_at = int(payload["savedAt"])
        status = ExecutionStatus(str(payload.get("executionStatus") or "idle"))
    except (KeyError, TypeError, ValueError):
        return None
    logs = tuple(
        LogEntry.from_dict(item)
        for item in payload.get("logs") or ()
        if isinstance(item, Mapping)
    )
    progress = None
    raw = payload.get("progress")
    if isinstance(raw, Mapping) and raw.get("percent") is not None:
        try:
            progress = ProgressSnapshot(
                percent=float(raw["percent"]),
                eta_text=raw.get("eta"),
                speed_text=raw.get("speed"),
                completed=bool(raw.get("completed")),
            )
        except (TypeError, ValueError):
            progress = None
    return PersistedSession(
        logs=logs,
        execution_status=status,
        progress=progress,
        saved_at_epoch_ms=saved_at,
    )


class ResumableSessionStore:
    """``save`` / ``load(max_age_ms)`` / ``clear`` over one storage slot."""

    def __init__(
        self,
        store: KeyValueStorePort,
        *,
        key: str = SESSION_KEY,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.key = key
        self.clock_ms = clock_ms

    def save(self, session: PersistedSession) -> None:
        try:
            self.store.set_item(self.key, session.to_dict())
        except Exception:
            log.warning("Could not persist operation session", exc_info=True)

    def load(self, max_age_ms: int = DEFAULT_MAX_AGE_MS) -> Optional[PersistedSession]:
        try:
            raw = self.store.get_item(self.key)
        except Exception:
            log.warning("Could not read operation session", exc_info=True)
            return None
        if raw is None:
            return None
        session = session_from_dict(raw)
        if session is None:
            log.info("Discarding malformed operation session")
            self.clear()
            return None
        age = self.clock_ms() - session.saved_at_epoch_ms
        if age > max_age_ms:
            log.info("Discarding operation session saved %d ms ago", age)
            self.clear()
            return None
        return session

    def clear(self) -> None:
        try:
            self.store.remove_item(self.key)
        except Exception:
            log.warning("Could not clear operation session", exc_info=True)

    def snapshot(
        self,
        oplog: OperationLog,
        state: ExecutionState,
        progress: ProgressTracker,
    ) -> PersistedSession:
        return PersistedSession(
            logs=oplog.entries,
            execution_status=state.status,
            progress=progress.current,
            saved_at_epoch_ms=self.clock_ms(),
        )


class SessionPersistence:
    """Binds the live operation state to a :class:`ResumableSessionStore`."""

    def __init__(
        self,
        store: ResumableSessionStore,
        oplog: OperationLog,
        progress: ProgressTracker,
        state: ExecutionState,
        scheduler: SchedulerPort,
        *,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        clear_delay_ms: int = 10_000,
    ) -> None:
        self.store = store
        self.oplog = oplog
        self.progress = progress
        self.state = state
        self.scheduler = scheduler
        self.max_age_ms = int(max_age_ms)
        self.clear_delay_ms = int(clear_delay_ms)
        self._unsubscribers: List[Callable[[], None]] = []
        self._bound = False

    def bind(self) -> Optional[PersistedSession]:
        """Rehydrate once, then start persisting mutations."""
        if self._bound:
            return None
        restored = self.store.load(self.max_age_ms)
        if restored is not None:
            self.oplog.replace_all(restored.logs)
            self.progress.restore(restored.progress)
            self.state.restore(restored.execution_status)
            log.info(
                "Restored operation session: status=%s logs=%d",
                restored.execution_status.value,
                len(restored.logs),
            )
        self._unsubscribers = [
            self.oplog.subscribe(self._on_mutation),
            self.progress.subscribe(self._on_mutation),
            self.state.subscribe(self._on_status),
        ]
        self._bound = True
        if restored is not None and restored.execution_status.is_terminal:
            self._schedule_clear()
        return restored

    def unbind(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._bound = False
        self.scheduler.cancel(SESSION_CLEAR_KEY)

    # ------------------------------------------------------------------
    def _is_live(self) -> bool:
        return self.state.is_running or self.progress.current is not None

    def _on_mutation(self) -> None:
        if self._is_live():
            self.store.save(self.store.snapshot(self.oplog, self.state, self.progress))

    def _on_status(self, status: ExecutionStatus) -> None:
        if status is ExecutionStatus.RUNNING:
            self.scheduler.cancel(SESSION_CLEAR_KEY)
            self._on_mutation()
            return
        if status.is_terminal:
            self.store.save(self.store.snapshot(self.oplog, self.state, self.progress))
            self._schedule_clear()

    def _schedule_clear(self) -> None:
        self.scheduler.schedule(SESSION_CLEAR_KEY, self.clear_delay_ms, self.store.clear)


__all__ = [
    "DEFAULT_MAX_AGE_MS",
    "ResumableSessionStore",
    "SESSION_CLEAR_KEY",
    "SESSION_KEY",
    "SessionPersistence",
    "session_from_dict",
]
