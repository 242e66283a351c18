from __future__ import annotations

import asyncio
from typing import Callable, List, Tuple

from raidpanel.app.polling_scheduler import PollingScheduler, asyncio_scheduler


class _LoopStub:
    def __init__(self) -> None:
        self.scheduled: List[Tuple[int, int, Callable[[], None]]] = []
        self.cancelled: List[int] = []
        self._next = 0

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> int:
        self._next += 1
        self.scheduled.append((self._next, delay_ms, callback))
        return self._next

    def cancel(self, token: int) -> None:
        self.cancelled.append(token)

    def fire(self, token: int) -> None:
        for tok, _, callback in self.scheduled:
            if tok == token:
                callback()
                return
        raise AssertionError(f"unknown token {token}")


def test_schedule_replaces_previous_timer_for_key() -> None:
    loop = _LoopStub()
    scheduler = PollingScheduler(loop.schedule, loop.cancel)

    scheduler.schedule("status-poll", 5000, lambda: None)
    scheduler.schedule("status-poll", 5000, lambda: None)

    assert loop.cancelled == [1]
    assert scheduler.handle_for("status-poll").token == 2


def test_fired_timer_drops_its_handle() -> None:
    loop = _LoopStub()
    scheduler = PollingScheduler(loop.schedule, loop.cancel)
    fired = []

    scheduler.schedule("resync-settle", 2000, lambda: fired.append(True))
    loop.fire(1)

    assert fired == [True]
    assert scheduler.pending() == {}


def test_callback_may_reschedule_its_own_key() -> None:
    loop = _LoopStub()
    scheduler = PollingScheduler(loop.schedule, loop.cancel)

    def tick() -> None:
        scheduler.schedule("status-poll", 5000, tick)

    scheduler.schedule("status-poll", 5000, tick)
    loop.fire(1)

    assert scheduler.handle_for("status-poll").token == 2
    assert loop.cancelled == []


def test_cancel_all_and_zero_delay() -> None:
    loop = _LoopStub()
    scheduler = PollingScheduler(loop.schedule, loop.cancel)

    scheduler.schedule("a", 0, lambda: None)
    scheduler.schedule("b", 10, lambda: None)
    scheduler.cancel_all()

    assert loop.scheduled[0][1] == 1
    assert sorted(loop.cancelled) == [1, 2]
    assert scheduler.pending() == {}


def test_cancel_failure_is_tolerated() -> None:
    def _boom(_token) -> None:
        raise RuntimeError("gone")

    loop = _LoopStub()
    scheduler = PollingScheduler(loop.schedule, _boom)
    scheduler.schedule("a", 10, lambda: None)

    scheduler.cancel("a")

    assert scheduler.pending() == {}


def test_asyncio_scheduler_runs_on_loop() -> None:
    async def scenario() -> List[str]:
        loop = asyncio.get_running_loop()
        scheduler = asyncio_scheduler(loop)
        fired: List[str] = []
        scheduler.schedule("keep", 5, lambda: fired.append("keep"))
        scheduler.schedule("drop", 5, lambda: fired.append("drop"))
        scheduler.cancel("drop")
        await asyncio.sleep(0.05)
        return fired

    assert asyncio.run(scenario()) == ["keep"]
