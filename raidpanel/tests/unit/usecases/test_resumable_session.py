from __future__ import annotations

from raidpanel.domain.entities import (
    ExecutionStatus,
    LogEntry,
    LogSeverity,
    PersistedSession,
    ProgressSnapshot,
)
from raidpanel.domain.execution import ExecutionState
from raidpanel.domain.operation_log import OperationLog, ProgressTracker
from raidpanel.tests.fakes import ManualScheduler, MemoryKV
from raidpanel.usecases.resumable_session import (
    SESSION_CLEAR_KEY,
    SESSION_KEY,
    ResumableSessionStore,
    SessionPersistence,
)


class _Clock:
    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def _session(saved_at: int, status=ExecutionStatus.RUNNING) -> PersistedSession:
    return PersistedSession(
        logs=(LogEntry("2024-01-01T00:00:00+00:00", LogSeverity.INFO, "Adding /dev/sdb"),),
        execution_status=status,
        progress=ProgressSnapshot(42.0, "1h"),
        saved_at_epoch_ms=saved_at,
    )


def test_saved_session_loads_back_within_max_age() -> None:
    kv = MemoryKV()
    clock = _Clock()
    store = ResumableSessionStore(kv, clock_ms=clock)
    store.save(_session(clock.now))

    clock.now += 299_000
    loaded = store.load(300_000)

    assert loaded == _session(1_000_000)
    assert kv.data[SESSION_KEY]["executionStatus"] == "running"


def test_stale_session_is_discarded() -> None:
    kv = MemoryKV()
    clock = _Clock()
    store = ResumableSessionStore(kv, clock_ms=clock)
    store.save(_session(clock.now))

    clock.now += 300_001

    assert store.load(300_000) is None
    assert SESSION_KEY not in kv.data


def test_malformed_slot_is_discarded() -> None:
    kv = MemoryKV({SESSION_KEY: {"logs": "nope", "executionStatus": "exploded"}})
    store = ResumableSessionStore(kv)

    assert store.load() is None
    assert SESSION_KEY not in kv.data


class _Rig:
    def __init__(self, kv=None, clock=None) -> None:
        self.kv = kv or MemoryKV()
        self.clock = clock or _Clock()
        self.oplog = OperationLog()
        self.progress = ProgressTracker()
        self.state = ExecutionState()
        self.scheduler = ManualScheduler()
        self.store = ResumableSessionStore(self.kv, clock_ms=self.clock)
        self.persistence = SessionPersistence(
            self.store,
            self.oplog,
            self.progress,
            self.state,
            self.scheduler,
            max_age_ms=300_000,
            clear_delay_ms=10_000,
        )


def test_bind_restores_live_session() -> None:
    clock = _Clock()
    kv = MemoryKV()
    ResumableSessionStore(kv, clock_ms=clock).save(_session(clock.now - 5_000))
    rig = _Rig(kv, clock)

    restored = rig.persistence.bind()

    assert restored is not None
    assert rig.state.status is ExecutionStatus.RUNNING
    assert rig.progress.current.percent == 42.0
    assert [e.message for e in rig.oplog.entries] == ["Adding /dev/sdb"]
    assert SESSION_CLEAR_KEY not in rig.scheduler.pending


def test_restored_terminal_session_is_cleared_later() -> None:
    clock = _Clock()
    kv = MemoryKV()
    ResumableSessionStore(kv, clock_ms=clock).save(_session(clock.now, ExecutionStatus.ERROR))
    rig = _Rig(kv, clock)

    rig.persistence.bind()
    assert rig.state.status is ExecutionStatus.ERROR

    rig.scheduler.advance(10_000)
    assert SESSION_KEY not in kv.data


def test_idle_mutations_are_not_persisted() -> None:
    rig = _Rig()
    rig.persistence.bind()

    rig.oplog.add(LogSeverity.INFO, "just looking")

    assert SESSION_KEY not in rig.kv.data


def test_running_operation_is_persisted_on_every_mutation() -> None:
    rig = _Rig()
    rig.persistence.bind()

    rig.state.begin()
    rig.oplog.add(LogSeverity.INFO, "Partitioning")
    rig.progress.apply(ProgressSnapshot(10.0))

    saved = rig.kv.data[SESSION_KEY]
    assert saved["executionStatus"] == "running"
    assert [item["message"] for item in saved["logs"]] == ["Partitioning"]
    assert saved["progress"]["percent"] == 10.0


def test_terminal_status_saves_then_clears_after_delay() -> None:
    rig = _Rig()
    rig.persistence.bind()
    rig.state.begin()

    rig.state.succeed()
    assert rig.kv.data[SESSION_KEY]["executionStatus"] == "success"
    assert rig.scheduler.due_in(SESSION_CLEAR_KEY) == 10_000

    rig.scheduler.advance(10_000)
    assert SESSION_KEY not in rig.kv.data


def test_new_run_cancels_pending_clear() -> None:
    rig = _Rig()
    rig.persistence.bind()
    rig.state.begin()
    rig.state.fail()

    rig.state.begin()
    rig.scheduler.advance(20_000)

    assert rig.kv.data[SESSION_KEY]["executionStatus"] == "running"


def test_unbind_stops_persisting() -> None:
    rig = _Rig()
    rig.persistence.bind()
    rig.persistence.unbind()

    rig.state.begin()

    assert SESSION_KEY not in rig.kv.data
