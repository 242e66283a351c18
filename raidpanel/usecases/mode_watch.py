from __future__ import annotations

import logging
from typing import Callable, Optional

from raidpanel.domain.entities import AccessMode
from raidpanel.domain.ports import SchedulerPort

log = logging.getLogger(__name__)

MODE_WATCH_KEY = "mode-watch"


class ModeWatcher:
    """Wait for startup detection to settle an access mode before connecting.

    Checks ``read_mode`` every ``interval_ms``; gives up after ``max_ms`` and
    hands over ``fallback()`` instead. ``on_mode`` fires exactly once per
    :meth:`start`.
    """

    def __init__(
        self,
        read_mode: Callable[[], Optional[AccessMode]],
        fallback: Callable[[], AccessMode],
        scheduler: SchedulerPort,
        on_mode: Callable[[AccessMode], None],
        *,
        interval_ms: int = 100,
        max_ms: int = 2000,
    ) -> None:
        self.read_mode = read_mode
        self.fallback = fallback
        self.scheduler = scheduler
        self.on_mode = on_mode
        self.interval_ms = int(interval_ms)
        self.max_ms = int(max_ms)
        self._elapsed = 0
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        self._elapsed = 0
        self._active = True
        self._check()

    def stop(self) -> None:
        self._active = False
        self.scheduler.cancel(MODE_WATCH_KEY)

    def _check(self) -> None:
        if not self._active:
            return
        mode = self.read_mode()
        if mode is None and self._elapsed >= self.max_ms:
            mode = self.fallback()
            log.info("Access mode not detected within %d ms, using %s", self.max_ms, mode.value)
        if mode is not None:
            self._active = False
            self.on_mode(mode)
            return
        self._elapsed += self.interval_ms
        self.scheduler.schedule(MODE_WATCH_KEY, self.interval_ms, self._check)


__all__ = ["MODE_WATCH_KEY", "ModeWatcher"]
