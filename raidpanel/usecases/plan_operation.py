"""Use case for selecting a target disk and retaining its precheck plan."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from raidpanel.domain.entities import ArrayStatus, OperationPlan
from raidpanel.domain.ports import ArrayId, DiskPath, StoragePort
from raidpanel.domain.precheck import build_plan, failed_plan, member_plan
from raidpanel.usecases.error_mapping import map_api_error
from raidpanel.usecases.offload import Offload, run_inline

log = logging.getLogger(__name__)

PlanListener = Callable[[Optional[OperationPlan]], None]


@dataclass
class RunPrecheck:
    """Call ``mdraid-prechecks`` and turn any outcome into an ``OperationPlan``.

    Never raises: transport failures and explicit rejections become a plan
    with ``can_proceed=False`` whose blocking error carries the message.
    """

    storage: StoragePort

    def __call__(self, array: ArrayId, disk: DiskPath) -> OperationPlan:
        try:
            payload = self.storage.mdraid_prechecks(array, disk)
        except Exception as exc:
            err = map_api_error(
                exc,
                default_code="PRECHECK_FAILED",
                default_message="Precheck failed.",
            )
            log.warning("Precheck for %s failed (%s): %s", disk, err.code, err.message)
            return failed_plan(disk, err.message)
        plan = build_plan(disk, payload)
        for info in plan.infos:
            log.info("Precheck %s: %s", disk, info)
        return plan


class OperationPlanner:
    """Holds the single live plan for the current selection."""

    def __init__(
        self,
        precheck: Callable[[ArrayId, DiskPath], OperationPlan],
        array_id: ArrayId,
        offload: Offload = run_inline,
    ) -> None:
        self.precheck = precheck
        self.array_id = array_id
        self.offload = offload
        self._target: Optional[DiskPath] = None
        self._plan: Optional[OperationPlan] = None
        self._pending = False
        self._member_blocked = False
        self._generation = 0
        self._listeners: List[PlanListener] = []

    @property
    def target(self) -> Optional[DiskPath]:
        return self._target

    @property
    def plan(self) -> Optional[OperationPlan]:
        return self._plan

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def can_proceed(self) -> bool:
        return bool(self._plan and self._plan.can_proceed and not self._pending)

    def subscribe(self, callback: PlanListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def select(self, target: Optional[str], status: Optional[ArrayStatus] = None) -> None:
        """Change the selection; prechecks once per distinct consecutive target."""
        cleaned = (target or "").strip() or None
        if cleaned is None:
            self.clear()
            return
        if cleaned == self._target:
            return
        self._target = cleaned
        self._generation += 1
        self._member_blocked = bool(status is not None and status.is_member(cleaned))
        if self._member_blocked:
            log.info("%s is already an array member, precheck skipped", cleaned)
            self._pending = False
            self._publish(member_plan(cleaned))
            return
        self._run(cleaned)

    def on_status(self, status: ArrayStatus) -> None:
        """Block the selection once a status read shows it is an array member."""
        if self._target is None or self._member_blocked or not status.is_member(self._target):
            return
        log.info("%s became visible as an array member, plan blocked", self._target)
        self._generation += 1
        self._member_blocked = True
        self._pending = False
        self._publish(member_plan(self._target))

    def refresh(self) -> None:
        """Re-run the precheck for the current target (after a failed run)."""
        if self._target is None or self._pending or self._member_blocked:
            return
        self._generation += 1
        self._run(self._target)

    def clear(self) -> None:
        self._generation += 1
        self._target = None
        self._pending = False
        self._member_blocked = False
        self._publish(None)

    def is_current(self, plan: Optional[OperationPlan]) -> bool:
        """A plan is live only while it is the retained plan for the selection."""
        return (
            plan is not None
            and plan is self._plan
            and plan.target_disk == self._target
            and not self._pending
        )

    # ------------------------------------------------------------------
    def _run(self, disk: DiskPath) -> None:
        generation = self._generation
        self._pending = True
        self._publish(None)

        def _done(plan, error) -> None:
            if generation != self._generation:
                return
            self._pending = False
            if error is not None:
                err = map_api_error(error, default_code="PRECHECK_FAILED")
                plan = failed_plan(disk, err.message)
            self._publish(plan)

        self.offload(lambda: self.precheck(self.array_id, disk), _done)

    def _publish(self, plan: Optional[OperationPlan]) -> None:
        self._plan = plan
        for callback in list(self._listeners):
            callback(plan)


__all__ = ["OperationPlanner", "RunPrecheck"]
