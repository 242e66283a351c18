"""Use cases for reading the disk inventory and the md array status."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from raidpanel.domain.entities import ArrayStatus, Disk
from raidpanel.domain.ports import SchedulerPort, StoragePort, UseCaseError
from raidpanel.domain.storage_normalizer import parse_array_status, parse_inventory
from raidpanel.usecases.error_mapping import map_api_error
from raidpanel.usecases.offload import Offload, run_inline

log = logging.getLogger(__name__)

POLL_KEY = "status-poll"


@dataclass
class FetchInventory:
    storage: StoragePort

    def __call__(self) -> List[Disk]:
        try:
            payload = self.storage.inventory()
        except Exception as exc:
            raise map_api_error(
                exc,
                default_code="INVENTORY_FAILED",
                default_message="Could not read the disk inventory.",
            ) from exc
        return parse_inventory(payload)


@dataclass
class FetchArrayStatus:
    storage: StoragePort

    def __call__(self) -> ArrayStatus:
        try:
            payload = self.storage.mdraid_status()
        except Exception as exc:
            raise map_api_error(
                exc,
                default_code="STATUS_FAILED",
                default_message="Could not read the RAID status.",
            ) from exc
        return parse_array_status(payload)


@dataclass(frozen=True)
class PollResult:
    """One poll round; a ``None`` half failed and left its error behind."""

    disks: Optional[Tuple[Disk, ...]] = None
    status: Optional[ArrayStatus] = None
    errors: Tuple[UseCaseError, ...] = ()


def _noop(*_: object, **__: object) -> None:
    """Default no-op callback used for hooks."""


@dataclass
class ReaderHooks:
    on_disks: Callable[[Tuple[Disk, ...]], None] = _noop
    on_status: Callable[[ArrayStatus], None] = _noop
    on_error: Callable[[UseCaseError, int], None] = _noop


class StorageStatusReader:
    """Keeps the last-known-good inventory and status, polled on a timer.

    Every successful half of a poll replaces its snapshot entirely; a failed
    half keeps the previous snapshot and bumps ``failures``. Whether a failure
    streak matters is left to the caller.
    """

    def __init__(
        self,
        fetch_inventory: Callable[[], List[Disk]],
        fetch_status: Callable[[], ArrayStatus],
        scheduler: SchedulerPort,
        offload: Offload = run_inline,
        *,
        poll_ms: int = 5000,
        hooks: Optional[ReaderHooks] = None,
    ) -> None:
        self.fetch_inventory = fetch_inventory
        self.fetch_status = fetch_status
        self.scheduler = scheduler
        self.offload = offload
        self.poll_ms = int(poll_ms)
        self.hooks = hooks or ReaderHooks()
        self.disks: Tuple[Disk, ...] = ()
        self.status = ArrayStatus()
        self.failures = 0
        self.last_error: Optional[UseCaseError] = None
        self._running = False
        self._in_flight = False
        self._waiters: List[Callable[[PollResult], None]] = []

    # ---- blocking half (off-loop) ----
    def fetch(self) -> PollResult:
        disks: Optional[Tuple[Disk, ...]] = None
        status: Optional[ArrayStatus] = None
        errors: List[UseCaseError] = []
        try:
            disks = tuple(self.fetch_inventory())
        except UseCaseError as err:
            errors.append(err)
        try:
            status = self.fetch_status()
        except UseCaseError as err:
            errors.append(err)
        return PollResult(disks=disks, status=status, errors=tuple(errors))

    # ---- loop half ----
    def apply(self, result: PollResult) -> None:
        if result.disks is not None:
            self.disks = result.disks
            self.hooks.on_disks(self.disks)
        if result.status is not None:
            self.status = result.status
            self.hooks.on_status(self.status)
        if result.errors:
            self.failures += 1
            self.last_error = result.errors[0]
            for err in result.errors:
                log.warning("Storage poll failed (%s): %s", err.code, err.message)
            self.hooks.on_error(self.last_error, self.failures)
        else:
            self.failures = 0
            self.last_error = None

    def poll_once(self) -> PollResult:
        """Blocking fetch and apply on the caller's thread."""
        result = self.fetch()
        self.apply(result)
        return result

    def refresh(self, on_done: Optional[Callable[[PollResult], None]] = None) -> None:
        """Fetch off-loop, apply on the loop; overlapping refreshes share one fetch."""
        if on_done is not None:
            self._waiters.append(on_done)
        if self._in_flight:
            return
        self._in_flight = True

        def _done(result, error) -> None:
            self._in_flight = False
            if error is not None:
                result = PollResult(
                    errors=(map_api_error(error, default_code="STATUS_FAILED"),)
                )
            self.apply(result)
            waiters, self._waiters = self._waiters, []
            for waiter in waiters:
                waiter(result)

        self.offload(self.fetch, _done)

    # ---- timer ----
    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._tick()

    def stop(self) -> None:
        self._running = False
        self.scheduler.cancel(POLL_KEY)

    @property
    def running(self) -> bool:
        return self._running

    def _tick(self) -> None:
        if not self._running:
            return
        self.refresh()
        self.scheduler.schedule(POLL_KEY, self.poll_ms, self._tick)


__all__ = [
    "FetchArrayStatus",
    "FetchInventory",
    "POLL_KEY",
    "PollResult",
    "ReaderHooks",
    "StorageStatusReader",
]
