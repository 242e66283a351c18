"""Consumer of the resync log/progress stream and its terminal settling."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Callable

from raidpanel.domain.entities import ArrayStatus
from raidpanel.domain.execution import ExecutionState
from raidpanel.domain.operation_log import OperationLog, ProgressTracker
from raidpanel.domain.ports import SchedulerPort
from raidpanel.domain.storage_normalizer import (
    parse_log_event,
    parse_progress_event,
    progress_from_status,
)

log = logging.getLogger(__name__)

SETTLE_KEY = "resync-settle"

RESYNC_STARTED_RE = re.compile(
    r"\b(resync|resynchroni[sz]ation|recovery|reshape)\b.*\b(start(ed)?|began|démarr\w*|lanc\w*)",
    re.IGNORECASE,
)
RESYNC_COMPLETED_RE = re.compile(
    r"\b(resync|resynchroni[sz]ation|recovery|reshape)\b.*\b(completed|finished|done|termin\w*)",
    re.IGNORECASE,
)


class StreamPhase(str, Enum):
    IDLE = "idle"
    RESYNCING = "resyncing"
    SETTLING = "settling"


def _noop() -> None:
    """Default settle callback."""


class ProgressStreamConsumer:
    """Idle -> Resyncing -> Settling -> Idle, driven by push events and polls.

    Log events are appended verbatim; progress events only update the
    snapshot. The terminal condition ("resync completed" log line,
    ``completed=True``, or a poll that stops reporting ``syncing`` for a
    tracked resync) starts a settle delay, after which the snapshot is
    cleared, a running status becomes success and ``on_settled`` runs.
    Events are accepted whether or not the REST call has been acknowledged.
    """

    def __init__(
        self,
        oplog: OperationLog,
        progress: ProgressTracker,
        state: ExecutionState,
        scheduler: SchedulerPort,
        *,
        settle_delay_ms: int = 2000,
        on_settled: Callable[[], None] = _noop,
    ) -> None:
        self.oplog = oplog
        self.progress = progress
        self.state = state
        self.scheduler = scheduler
        self.settle_delay_ms = int(settle_delay_ms)
        self.on_settled = on_settled
        self._phase = StreamPhase.IDLE
        self._poll_saw_syncing = False

    @property
    def phase(self) -> StreamPhase:
        return self._phase

    # ---- push events ----
    def on_log(self, payload: Any) -> None:
        entry = parse_log_event(payload)
        if entry is None:
            log.debug("Ignoring malformed log event: %r", payload)
            return
        self.oplog.append(entry)
        if RESYNC_COMPLETED_RE.search(entry.message):
            self._terminal("log")
        elif RESYNC_STARTED_RE.search(entry.message):
            self._enter_resyncing()

    def on_progress(self, payload: Any) -> None:
        snapshot = parse_progress_event(payload)
        if snapshot is None:
            log.debug("Ignoring malformed progress event: %r", payload)
            return
        if self._phase is StreamPhase.SETTLING:
            return
        self.progress.apply(snapshot)
        if snapshot.completed:
            self._terminal("progress")
        else:
            self._enter_resyncing()

    # ---- poll fallback ----
    def apply_polled_status(self, status: ArrayStatus) -> None:
        if status.syncing:
            self._poll_saw_syncing = True
            if self._phase is StreamPhase.SETTLING:
                return
            snapshot = progress_from_status(status)
            if snapshot is not None:
                self.progress.apply(snapshot)
            self._enter_resyncing()
            return
        if self._phase is StreamPhase.RESYNCING and self._poll_saw_syncing:
            self._terminal("poll")

    # ---- lifecycle ----
    def resume(self) -> None:
        """Pick up a rehydrated session whose resync was still in progress.

        The page may reload after the resync already finished, so the
        restored run counts as a seen resync and the next poll that no
        longer reports ``syncing`` settles it.
        """
        if self._phase is not StreamPhase.IDLE:
            return
        if self.progress.current is None and not self.state.is_running:
            return
        self._phase = StreamPhase.RESYNCING
        self._poll_saw_syncing = True

    def reset(self) -> None:
        self.scheduler.cancel(SETTLE_KEY)
        self._phase = StreamPhase.IDLE
        self._poll_saw_syncing = False

    # ------------------------------------------------------------------
    def _enter_resyncing(self) -> None:
        if self._phase is StreamPhase.IDLE:
            log.info("Resync tracking started")
            self._phase = StreamPhase.RESYNCING

    def _terminal(self, source: str) -> None:
        if self._phase is StreamPhase.SETTLING:
            return
        log.info("Resync finished (%s), settling for %d ms", source, self.settle_delay_ms)
        self._phase = StreamPhase.SETTLING
        self.scheduler.schedule(SETTLE_KEY, self.settle_delay_ms, self._settle)

    def _settle(self) -> None:
        self.progress.clear()
        if self.state.is_running:
            self.state.succeed()
        self._phase = StreamPhase.IDLE
        self._poll_saw_syncing = False
        self.on_settled()


__all__ = [
    "RESYNC_COMPLETED_RE",
    "RESYNC_STARTED_RE",
    "SETTLE_KEY",
    "ProgressStreamConsumer",
    "StreamPhase",
]
