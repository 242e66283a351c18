"""View state for the storage assistant page.

``StorageAssistantVM`` receives typed domain snapshots (through the
coordinator hooks wired by the web runtime) and exposes small DTOs the page
renders as-is: disk rows, the action button, plan banners, progress labels,
the execution badge and the advisor hint.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

from ..domain.entities import (
    ArrayStatus,
    Disk,
    ExecutionStatus,
    LogEntry,
    OperationPlan,
    ProgressSnapshot,
    Suggestion,
)


def fmt_bytes(size_bytes: int) -> str:
    """Binary units, one decimal, the way lsblk prints sizes."""
    if size_bytes <= 0:
        return "-"
    value = float(size_bytes)
    for unit in ("B", "K", "M", "G", "T", "P"):
        if value < 1024 or unit == "P":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} P"


_BADGES = {
    ExecutionStatus.IDLE: ("Idle", "grey"),
    ExecutionStatus.RUNNING: ("Running", "blue"),
    ExecutionStatus.SUCCESS: ("Completed", "green"),
    ExecutionStatus.ERROR: ("Failed", "red"),
}


@dataclass(frozen=True)
class DiskRow:
    path: str
    label: str
    size_text: str
    badge: str
    selectable: bool
    selected: bool


@dataclass(frozen=True)
class ActionState:
    enabled: bool
    label: str
    reason: str = ""


@dataclass(frozen=True)
class Banner:
    level: str  # "error" | "warning" | "info"
    text: str


@dataclass(frozen=True)
class ProgressLabels:
    visible: bool
    percent: float = 0.0
    percent_text: str = ""
    eta_text: str = ""
    speed_text: str = ""


@dataclass
class StorageAssistantVM:
    """Owns page state; every mutation ends with ``on_change``."""

    on_change: Optional[Callable[[], None]] = None

    disks: Tuple[Disk, ...] = ()
    status: ArrayStatus = field(default_factory=ArrayStatus)
    selected: Optional[str] = None
    plan: Optional[OperationPlan] = None
    plan_pending: bool = False
    logs: Tuple[LogEntry, ...] = ()
    progress: Optional[ProgressSnapshot] = None
    execution: ExecutionStatus = ExecutionStatus.IDLE
    suggestion: Optional[Suggestion] = None
    channel_label: str = "disconnected"
    mode_label: str = ""
    poll_warning: str = ""

    # ---- inputs ----
    def apply_disks(self, disks: Tuple[Disk, ...]) -> None:
        self.disks = tuple(disks)
        self._changed()

    def apply_status(self, status: ArrayStatus) -> None:
        self.status = status
        self.poll_warning = ""
        self._changed()

    def apply_selection(self, path: Optional[str]) -> None:
        self.selected = path or None
        self.plan = None
        self.plan_pending = bool(path)
        self._changed()

    def apply_plan(
        self,
        plan: Optional[OperationPlan],
        *,
        target: Optional[str] = None,
        pending: bool = False,
    ) -> None:
        """Mirror the planner; ``target`` is authoritative for the selection."""
        self.plan = plan
        self.selected = target
        self.plan_pending = pending
        self._changed()

    def apply_logs(self, logs: Tuple[LogEntry, ...]) -> None:
        self.logs = tuple(logs)
        self._changed()

    def apply_progress(self, snapshot: Optional[ProgressSnapshot]) -> None:
        self.progress = snapshot
        self._changed()

    def apply_execution(self, status: ExecutionStatus) -> None:
        self.execution = status
        self._changed()

    def apply_suggestion(self, suggestion: Optional[Suggestion]) -> None:
        self.suggestion = suggestion
        self._changed()

    def apply_channel(self, state: Any) -> None:
        self.channel_label = str(getattr(state, "value", state) or "disconnected")
        self._changed()

    def apply_mode(self, mode: Any) -> None:
        self.mode_label = str(getattr(mode, "value", mode) or "")
        self._changed()

    def apply_poll_error(self, message: str, failures: int) -> None:
        self.poll_warning = f"Status unavailable ({failures}x): {message}"
        self._changed()

    # ---- DTOs ----
    def disk_rows(self) -> List[DiskRow]:
        members = self.status.member_disk_paths()
        rows: List[DiskRow] = []
        for disk in self.disks:
            if disk.path in members:
                badge = "RAID member"
            elif disk.is_system_disk:
                badge = "System"
            elif disk.is_mounted:
                badge = f"Mounted on {disk.mount_point}"
            else:
                badge = "Free"
            rows.append(
                DiskRow(
                    path=disk.path,
                    label=disk.display_name,
                    size_text=fmt_bytes(disk.size_bytes),
                    badge=badge,
                    selectable=not disk.is_system_disk,
                    selected=disk.path == self.selected,
                )
            )
        return rows

    def action_state(self) -> ActionState:
        plan = self.plan
        label = "Optimize and add disk" if plan is not None and plan.is_optimization else "Add disk to RAID"
        if self.execution is ExecutionStatus.RUNNING:
            return ActionState(False, label, "An operation is already running.")
        if self.selected is None:
            return ActionState(False, label, "Select a disk.")
        if self.plan_pending or plan is None:
            return ActionState(False, label, "Checking prerequisites...")
        if plan.blocking_errors:
            return ActionState(False, label, plan.blocking_errors[0])
        if not plan.can_proceed:
            return ActionState(False, label, "The server did not allow this operation.")
        return ActionState(True, label)

    def banners(self) -> List[Banner]:
        if self.plan is None:
            return []
        items = [Banner("error", text) for text in self.plan.blocking_errors]
        items.extend(Banner("warning", text) for text in self.plan.warnings)
        return items

    def progress_labels(self) -> ProgressLabels:
        snapshot = self.progress
        if snapshot is None:
            return ProgressLabels(visible=False)
        return ProgressLabels(
            visible=True,
            percent=snapshot.percent,
            percent_text=f"{snapshot.percent:.1f}%",
            eta_text=f"ETA {snapshot.eta_text}" if snapshot.eta_text else "",
            speed_text=snapshot.speed_text or "",
        )

    def status_badge(self) -> Tuple[str, str]:
        return _BADGES[self.execution]

    def can_stop_resync(self) -> bool:
        return self.progress is not None or self.status.syncing

    def advisor_text(self) -> str:
        return self.suggestion.message if self.suggestion else ""

    def array_summary(self) -> str:
        status = self.status
        if not status.exists:
            return "No RAID array detected."
        state = status.state or "unknown"
        text = f"{status.device or 'md'}: {state}, {status.active_devices}/{status.total_devices} devices"
        if status.syncing and status.sync_progress_percent is not None:
            text += f", syncing {status.sync_progress_percent:.1f}%"
        return text

    def log_lines(self) -> List[str]:
        return [f"[{entry.severity.value}] {entry.message}" for entry in self.logs]

    def _changed(self) -> None:
        if self.on_change:
            self.on_change()


__all__ = [
    "ActionState",
    "Banner",
    "DiskRow",
    "ProgressLabels",
    "StorageAssistantVM",
    "fmt_bytes",
]
