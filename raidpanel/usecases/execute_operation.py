"""Use cases for the confirmation gate, the destructive call and stop-resync."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from raidpanel.adapters.api_errors import ApiError, first_string
from raidpanel.domain.entities import (
    Command,
    LogSeverity,
    OperationPlan,
    OptimizationPlan,
)
from raidpanel.domain.execution import ExecutionState
from raidpanel.domain.operation_log import OperationLog, ProgressTracker
from raidpanel.domain.ports import ArrayId, StoragePort, UseCaseError
from raidpanel.domain.storage_normalizer import parse_log_lines
from raidpanel.usecases.error_mapping import map_api_error
from raidpanel.usecases.offload import Offload, run_inline

log = logging.getLogger(__name__)

ACKNOWLEDGMENT_TEXT = (
    "All data on {disk} will be permanently erased. "
    "I understand this cannot be undone."
)


@dataclass(frozen=True)
class ConfirmationRequest:
    """What the operator must see and acknowledge before execution."""

    target_disk: str
    commands: Tuple[Command, ...]
    optimization: Optional[OptimizationPlan]
    warnings: Tuple[str, ...]
    acknowledgment_text: str

    @property
    def steps(self) -> Tuple[str, ...]:
        if self.optimization is not None:
            return self.optimization.steps
        return tuple(cmd.command or cmd.description for cmd in self.commands)


@dataclass(frozen=True)
class Submission:
    """A run that passed the gate; carries everything the I/O half needs."""

    array: ArrayId
    plan: OperationPlan
    dry_run: bool = False


class OperationExecutor:
    """Confirmation gate and the single in-flight destructive call.

    The work is split so a UI loop never blocks: :meth:`begin` (loop) checks
    the gate and moves the status to running, :meth:`submit` (worker) only
    performs the HTTP call, :meth:`resolve` (loop) applies the outcome.
    :meth:`execute` chains the three through ``offload``.
    """

    def __init__(
        self,
        storage: StoragePort,
        array_id: ArrayId,
        state: ExecutionState,
        oplog: OperationLog,
        progress: ProgressTracker,
        is_current: Callable[[Optional[OperationPlan]], bool],
        offload: Offload = run_inline,
        *,
        dry_run: bool = False,
    ) -> None:
        self.storage = storage
        self.array_id = array_id
        self.state = state
        self.oplog = oplog
        self.progress = progress
        self.is_current = is_current
        self.offload = offload
        self.dry_run = dry_run
        self._stopping = False

    # ---- gate ----
    def confirm(self, plan: Optional[OperationPlan]) -> ConfirmationRequest:
        """Build the confirmation request; no side effects."""
        plan = self._check_plan(plan)
        return ConfirmationRequest(
            target_disk=plan.target_disk,
            commands=plan.commands,
            optimization=plan.smart_optimization,
            warnings=plan.warnings,
            acknowledgment_text=ACKNOWLEDGMENT_TEXT.format(disk=plan.target_disk),
        )

    def begin(self, plan: Optional[OperationPlan], acknowledged: bool) -> Submission:
        if self.state.is_running:
            raise UseCaseError(
                "OPERATION_IN_PROGRESS",
                "A storage operation is already running.",
            )
        if not acknowledged:
            raise UseCaseError(
                "CONFIRMATION_REQUIRED",
                "The data-loss warning must be acknowledged first.",
            )
        plan = self._check_plan(plan)

        self.oplog.clear()
        self.progress.clear()
        self.state.begin()
        if plan.is_optimization:
            self.oplog.add(
                LogSeverity.INFO,
                f"Starting optimized extension of {self.array_id} with {plan.target_disk}",
            )
        else:
            self.oplog.add(
                LogSeverity.INFO,
                f"Starting addition of {plan.target_disk} to {self.array_id}",
            )
        log.info(
            "Execution started: array=%s disk=%s optimization=%s",
            self.array_id,
            plan.target_disk,
            plan.is_optimization,
        )
        return Submission(array=self.array_id, plan=plan, dry_run=self.dry_run)

    # ---- I/O half ----
    def submit(self, submission: Submission) -> Dict[str, Any]:
        plan = submission.plan
        if plan.smart_optimization is not None:
            return self.storage.mdraid_optimize_and_add(
                submission.array, plan.smart_optimization.to_payload()
            )
        return self.storage.mdraid_add_disk(
            submission.array, plan.target_disk, dry_run=submission.dry_run
        )

    # ---- loop half ----
    def resolve(
        self,
        submission: Submission,
        result: Optional[Dict[str, Any]],
        error: Optional[BaseException],
    ) -> Optional[UseCaseError]:
        """Apply the call outcome; the HTTP answer only means "job accepted"."""
        if error is not None:
            err = map_api_error(
                error,
                default_code="EXECUTION_FAILED",
                default_message="The storage operation failed",
            )
            log.error("Execution failed (%s): %s", err.code, err.message)
            self.oplog.error_once(err.message, aliases=_raw_details(error))
            if self.state.is_running:
                self.state.fail()
            return err

        message = ""
        if isinstance(result, dict):
            message = str(result.get("message") or "").strip()
        self.oplog.add(LogSeverity.INFO, message or "Operation accepted by the server.")
        if submission.dry_run and self.state.is_running:
            self.state.succeed()
        return None

    def execute(
        self,
        plan: Optional[OperationPlan],
        acknowledged: bool = False,
        on_done: Optional[Callable[[Optional[UseCaseError]], None]] = None,
        on_begin: Optional[Callable[[], None]] = None,
    ) -> Submission:
        submission = self.begin(plan, acknowledged)
        if on_begin is not None:
            on_begin()

        def _done(result, error) -> None:
            outcome = self.resolve(submission, result, error)
            if on_done is not None:
                on_done(outcome)

        self.offload(lambda: self.submit(submission), _done)
        return submission

    # ---- cancellation ----
    def stop_resync(
        self,
        on_stopped: Callable[[], None] = lambda: None,
        on_done: Optional[Callable[[Optional[UseCaseError]], None]] = None,
    ) -> None:
        """Ask the backend to stop the running resync.

        On success the returned log lines are appended, progress is cleared,
        the status becomes success and ``on_stopped`` runs once (the caller
        refreshes inventory and status there).
        """
        if self._stopping:
            return
        self._stopping = True

        def _done(result, error) -> None:
            self._stopping = False
            if error is not None:
                err = map_api_error(
                    error,
                    default_code="STOP_RESYNC_FAILED",
                    default_message="Could not stop the resync",
                )
                log.error("Stop resync failed (%s): %s", err.code, err.message)
                self.oplog.error_once(err.message, aliases=_raw_details(error))
                if on_done is not None:
                    on_done(err)
                return
            lines = result.get("logs") if isinstance(result, dict) else None
            for entry in parse_log_lines(lines or ()):
                self.oplog.append(entry)
            self.progress.clear()
            self.state.stopped()
            log.info("Resync stopped on %s", self.array_id)
            on_stopped()
            if on_done is not None:
                on_done(None)

        self.offload(lambda: self.storage.mdraid_stop_resync(self.array_id), _done)

    @property
    def stopping(self) -> bool:
        return self._stopping

    # ------------------------------------------------------------------
    def _check_plan(self, plan: Optional[OperationPlan]) -> OperationPlan:
        if plan is None:
            raise UseCaseError("PLAN_STALE", "No precheck result for the selected disk.")
        if not self.is_current(plan):
            raise UseCaseError(
                "PLAN_STALE",
                "The selection changed since the precheck. Review the new plan.",
            )
        if plan.blocking_errors or not plan.can_proceed:
            reason = (
                plan.blocking_errors[0]
                if plan.blocking_errors
                else "Precheck did not allow the operation."
            )
            raise UseCaseError("PLAN_BLOCKED", reason)
        return plan


def _raw_details(error: BaseException) -> Tuple[str, ...]:
    """Backend wording of a failure, as the push channel would have logged it."""
    if not isinstance(error, ApiError):
        return ()
    details = {error.hint, first_string(error.payload)}
    return tuple(sorted(text for text in details if text))


__all__ = [
    "ACKNOWLEDGMENT_TEXT",
    "ConfirmationRequest",
    "OperationExecutor",
    "Submission",
]
