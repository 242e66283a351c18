from __future__ import annotations

import pytest

from raidpanel.adapters.api_errors import ApiRejectedError, ApiTimeoutError
from raidpanel.domain.entities import ExecutionStatus, LogSeverity
from raidpanel.domain.execution import ExecutionState
from raidpanel.domain.operation_log import OperationLog, ProgressTracker
from raidpanel.domain.ports import UseCaseError
from raidpanel.tests.fakes import DeferredOffload, FakeStorage, precheck_payload
from raidpanel.usecases.execute_operation import OperationExecutor
from raidpanel.usecases.plan_operation import OperationPlanner, RunPrecheck

ARRAY = "/dev/md0"


class _Rig:
    def __init__(self, storage=None, offload=None, dry_run=False, prechecks=None) -> None:
        self.storage = storage or FakeStorage(prechecks=prechecks)
        self.state = ExecutionState()
        self.oplog = OperationLog()
        self.progress = ProgressTracker()
        self.planner = OperationPlanner(RunPrecheck(self.storage), ARRAY)
        kwargs = {"offload": offload} if offload is not None else {}
        self.executor = OperationExecutor(
            self.storage,
            ARRAY,
            self.state,
            self.oplog,
            self.progress,
            self.planner.is_current,
            dry_run=dry_run,
            **kwargs,
        )

    def select(self, disk: str = "/dev/sdb"):
        self.planner.select(disk)
        return self.planner.plan

    def messages(self):
        return [entry.message for entry in self.oplog.entries]


def test_confirmation_lists_commands_and_acknowledgment() -> None:
    rig = _Rig()
    plan = rig.select()

    request = rig.executor.confirm(plan)

    assert request.target_disk == "/dev/sdb"
    assert request.steps == ("mdadm --add /dev/md0 /dev/sdb1",)
    assert "/dev/sdb" in request.acknowledgment_text
    assert rig.storage.count("mdraid_add_disk") == 0


def test_optimization_confirmation_shows_its_steps() -> None:
    rig = _Rig(
        prechecks={
            "/dev/sdb": precheck_payload(
                smart_optimization={"steps": [{"description": "Replace /dev/sda1"}, "Grow array"]}
            )
        }
    )

    request = rig.executor.confirm(rig.select())

    assert request.steps == ("Replace /dev/sda1", "Grow array")


def test_execute_requires_acknowledgment() -> None:
    rig = _Rig()
    plan = rig.select()

    with pytest.raises(UseCaseError) as info:
        rig.executor.execute(plan, acknowledged=False)

    assert info.value.code == "CONFIRMATION_REQUIRED"
    assert rig.state.status is ExecutionStatus.IDLE
    assert rig.storage.count("mdraid_add_disk") == 0


def test_blocked_plan_is_rejected() -> None:
    rig = _Rig(prechecks={"/dev/sdb": precheck_payload(reasons=("❌ Disk is too small",))})

    with pytest.raises(UseCaseError) as info:
        rig.executor.execute(rig.select(), acknowledged=True)

    assert info.value.code == "PLAN_BLOCKED"
    assert info.value.message == "Disk is too small"


def test_plan_for_previous_selection_is_stale() -> None:
    rig = _Rig()
    old = rig.select("/dev/sdb")
    rig.select("/dev/sdc")

    with pytest.raises(UseCaseError) as info:
        rig.executor.execute(old, acknowledged=True)

    assert info.value.code == "PLAN_STALE"


def test_successful_call_only_means_accepted() -> None:
    rig = _Rig()
    outcomes = []

    rig.executor.execute(rig.select(), acknowledged=True, on_done=outcomes.append)

    assert outcomes == [None]
    assert rig.state.status is ExecutionStatus.RUNNING
    assert rig.storage.calls[-1] == ("mdraid_add_disk", (ARRAY, "/dev/sdb", False))
    assert rig.messages() == ["Starting addition of /dev/sdb to /dev/md0", "Disk added"]


def test_second_execution_while_running_is_rejected() -> None:
    offload = DeferredOffload()
    rig = _Rig(offload=offload)
    plan = rig.select()
    rig.executor.execute(plan, acknowledged=True)

    with pytest.raises(UseCaseError) as info:
        rig.executor.execute(plan, acknowledged=True)

    assert info.value.code == "OPERATION_IN_PROGRESS"
    assert len(offload.jobs) == 1


def test_optimization_plan_is_resubmitted_verbatim() -> None:
    optimization = {"smallMember": "/dev/sda1", "newDisk": "/dev/sdb", "steps": ["Grow"]}
    rig = _Rig(prechecks={"/dev/sdb": precheck_payload(smart_optimization=optimization)})

    rig.executor.execute(rig.select(), acknowledged=True)

    assert rig.storage.calls[-1] == ("mdraid_optimize_and_add", (ARRAY, optimization))
    assert rig.messages()[0] == "Starting optimized extension of /dev/md0 with /dev/sdb"


def test_failure_already_streamed_is_logged_once() -> None:
    storage = FakeStorage(add_disk=ApiRejectedError("ctx", hint="Partition failed"))
    offload = DeferredOffload()
    rig = _Rig(storage, offload=offload)
    outcomes = []
    rig.executor.execute(rig.select(), acknowledged=True, on_done=outcomes.append)
    rig.oplog.add(LogSeverity.ERROR, "Partition failed")

    offload.run_all()

    assert outcomes[0].code == "EXECUTION_FAILED"
    assert rig.state.status is ExecutionStatus.ERROR
    errors = [e.message for e in rig.oplog.entries if e.severity is LogSeverity.ERROR]
    assert errors == ["Partition failed"]


def test_failure_is_logged_with_backend_detail_when_not_streamed() -> None:
    storage = FakeStorage(add_disk=ApiRejectedError("ctx", hint="Partition failed"))
    rig = _Rig(storage)

    rig.executor.execute(rig.select(), acknowledged=True)

    errors = [e.message for e in rig.oplog.entries if e.severity is LogSeverity.ERROR]
    assert len(errors) == 1
    assert "Partition failed" in errors[0]


def test_rejected_execution_does_not_run_begin_callback() -> None:
    offload = DeferredOffload()
    rig = _Rig(offload=offload)
    plan = rig.select()
    began = []
    rig.executor.execute(plan, acknowledged=True, on_begin=lambda: began.append(True))

    with pytest.raises(UseCaseError):
        rig.executor.execute(plan, acknowledged=True, on_begin=lambda: began.append(True))

    assert began == [True]


def test_failure_message_is_logged_when_not_seen_before() -> None:
    storage = FakeStorage(add_disk=ApiTimeoutError("slow"))
    rig = _Rig(storage)

    rig.executor.execute(rig.select(), acknowledged=True)

    assert rig.state.status is ExecutionStatus.ERROR
    assert rig.oplog.entries[-1].severity is LogSeverity.ERROR


def test_new_run_clears_previous_log() -> None:
    rig = _Rig()
    rig.oplog.add(LogSeverity.INFO, "old line")
    rig.state.begin()
    rig.state.fail()

    rig.executor.execute(rig.select(), acknowledged=True)

    assert "old line" not in rig.messages()


def test_dry_run_settles_immediately() -> None:
    rig = _Rig(dry_run=True)

    rig.executor.execute(rig.select(), acknowledged=True)

    assert rig.storage.calls[-1] == ("mdraid_add_disk", (ARRAY, "/dev/sdb", True))
    assert rig.state.status is ExecutionStatus.SUCCESS


def test_stop_resync_appends_logs_and_settles() -> None:
    storage = FakeStorage(stop_resync={"success": True, "logs": [{"type": "success", "message": "Resync stopped"}]})
    rig = _Rig(storage)
    rig.executor.execute(rig.select(), acknowledged=True)
    stopped = []

    rig.executor.stop_resync(on_stopped=lambda: stopped.append(True))

    assert stopped == [True]
    assert rig.state.status is ExecutionStatus.SUCCESS
    assert rig.progress.current is None
    assert rig.messages()[-1] == "Resync stopped"


def test_stop_resync_failure_keeps_status() -> None:
    storage = FakeStorage(stop_resync=ApiTimeoutError("slow"))
    rig = _Rig(storage)
    rig.executor.execute(rig.select(), acknowledged=True)
    outcomes = []

    rig.executor.stop_resync(on_done=outcomes.append)

    assert outcomes[0].code == "REQUEST_TIMEOUT"
    assert rig.state.status is ExecutionStatus.RUNNING


def test_stop_resync_ignores_duplicate_clicks() -> None:
    offload = DeferredOffload()
    rig = _Rig(offload=offload)

    rig.executor.stop_resync()
    rig.executor.stop_resync()

    assert len(offload.jobs) == 1
    assert rig.executor.stopping
    offload.run_all()
    assert not rig.executor.stopping
