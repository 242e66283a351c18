"""Append-only operation log and the live progress holder."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from .entities import LogEntry, LogSeverity, ProgressSnapshot

Listener = Callable[[], None]


def _subscribe(listeners: List[Listener], callback: Listener) -> Callable[[], None]:
    listeners.append(callback)

    def _unsubscribe() -> None:
        if callback in listeners:
            listeners.remove(callback)

    return _unsubscribe


class OperationLog:
    """Log lines in arrival order; never reordered or deduplicated.

    The only suppression is :meth:`error_once`, which skips an error message
    that was already recorded (for example emitted through the push channel
    before the HTTP call failed with the same text).
    """

    def __init__(self) -> None:
        self._entries: List[LogEntry] = []
        self._listeners: List[Listener] = []

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        return _subscribe(self._listeners, callback)

    def append(self, entry: LogEntry) -> None:
        self._entries.append(entry)
        self._notify()

    def add(self, severity: LogSeverity, message: str) -> LogEntry:
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            severity=severity,
            message=message,
        )
        self.append(entry)
        return entry

    def error_once(self, message: str, aliases: Iterable[str] = ()) -> bool:
        """Record an error unless the identical error text is already logged.

        ``aliases`` are other spellings of the same failure, typically the raw
        backend detail that the push channel may have streamed first.
        """
        known = {message, *(alias for alias in aliases if alias)}
        for entry in self._entries:
            if entry.severity is LogSeverity.ERROR and entry.message in known:
                return False
        self.add(LogSeverity.ERROR, message)
        return True

    def replace_all(self, entries: Iterable[LogEntry]) -> None:
        self._entries = list(entries)
        self._notify()

    def clear(self) -> None:
        if not self._entries:
            return
        self._entries.clear()
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()


class ProgressTracker:
    """Holds the live ``ProgressSnapshot``; percent never decreases while active."""

    def __init__(self) -> None:
        self._current: Optional[ProgressSnapshot] = None
        self._listeners: List[Listener] = []

    @property
    def current(self) -> Optional[ProgressSnapshot]:
        return self._current

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        return _subscribe(self._listeners, callback)

    def apply(self, snapshot: ProgressSnapshot) -> ProgressSnapshot:
        previous = self._current
        if previous is not None and not previous.completed and snapshot.percent < previous.percent:
            # stale or out-of-order sample: keep percent, take the fresher labels
            snapshot = ProgressSnapshot(
                percent=previous.percent,
                eta_text=snapshot.eta_text or previous.eta_text,
                speed_text=snapshot.speed_text or previous.speed_text,
                completed=snapshot.completed,
            )
        self._current = snapshot
        self._notify()
        return snapshot

    def restore(self, snapshot: Optional[ProgressSnapshot]) -> None:
        self._current = snapshot
        self._notify()

    def clear(self) -> None:
        if self._current is None:
            return
        self._current = None
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()


__all__ = ["OperationLog", "ProgressTracker"]
