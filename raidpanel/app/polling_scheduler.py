"""Scheduler helper that owns every timer of the storage assistant.

The runtime passes ``schedule`` and ``cancel`` callables bound to its event
loop (``loop.call_later`` in the web UI, a manual clock in tests) so that the
status poll, the access-mode watcher, the settle delay and the session clear
are tracked in one place and cancelled together on teardown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from raidpanel.domain.ports import SchedulerPort

ScheduleFn = Callable[[int, Callable[[], None]], Any]
CancelFn = Callable[[Any], None]

log = logging.getLogger(__name__)


@dataclass
class TimerHandle:
    """Timer token associated with a single key.

    Attributes:
        key: Timer key (``status-poll``, ``settle``, ``session-clear``...).
        token: Opaque token returned by the loop scheduler.
    """
    key: str
    token: Any


class PollingScheduler(SchedulerPort):
    """Keyed one-shot timers; scheduling a key again replaces its timer."""

    def __init__(self, schedule: ScheduleFn, cancel: CancelFn) -> None:
        """Store schedule/cancel functions and initialize the handle registry.

        Args:
            schedule: Function compatible with ``schedule(delay_ms, callback)``.
            cancel: Function that cancels a token returned by ``schedule``.
        """
        self._schedule = schedule
        self._cancel = cancel
        self._handles: Dict[str, TimerHandle] = {}

    def schedule(self, key: str, delay_ms: int, callback: Callable[[], None]) -> None:
        delay = max(1, int(delay_ms))
        self.cancel(key)

        def _fire() -> None:
            current = self._handles.get(key)
            if current is not None and current.token is token_box[0]:
                del self._handles[key]
            callback()

        token_box = [None]
        token = self._schedule(delay, _fire)
        token_box[0] = token
        self._handles[key] = TimerHandle(key=key, token=token)

    def cancel(self, key: str) -> None:
        handle = self._handles.pop(key, None)
        if not handle:
            return
        try:
            self._cancel(handle.token)
        except Exception:
            log.debug("Timer %s already gone", key, exc_info=True)

    def cancel_all(self) -> None:
        """Cancel all pending timers."""
        for key in list(self._handles.keys()):
            self.cancel(key)

    def handle_for(self, key: str) -> Optional[TimerHandle]:
        return self._handles.get(key)

    def pending(self) -> Dict[str, TimerHandle]:
        return dict(self._handles)


def asyncio_scheduler(loop) -> PollingScheduler:
    """Build a scheduler on an asyncio loop (``call_later``/``TimerHandle.cancel``)."""

    def _schedule(delay_ms: int, callback: Callable[[], None]):
        return loop.call_later(delay_ms / 1000.0, callback)

    def _cancel(token) -> None:
        token.cancel()

    return PollingScheduler(_schedule, _cancel)


__all__ = ["PollingScheduler", "TimerHandle", "asyncio_scheduler"]
