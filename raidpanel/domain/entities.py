"""Domain value objects shared across adapters, use-cases, and view models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlparse
import re


class AccessMode(str, Enum):
    """Which backend instance the client addresses."""

    PRIVATE = "private"
    PUBLIC = "public"

    @classmethod
    def coerce(cls, value: Any) -> Optional["AccessMode"]:
        """Normalize persisted or user-supplied values; ``remote`` means public."""
        if isinstance(value, AccessMode):
            return value
        if value is None:
            return None
        token = str(value).strip().lower()
        if token == "private":
            return cls.PRIVATE
        if token in {"public", "remote"}:
            return cls.PUBLIC
        return None


class ExecutionStatus(str, Enum):
    """Lifecycle of one destructive operation run."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.SUCCESS, ExecutionStatus.ERROR)


class LogSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"

    @classmethod
    def coerce(cls, value: Any) -> "LogSeverity":
        """Map backend ``type`` strings onto a severity, defaulting to info."""
        token = str(value or "").strip().lower()
        if token in {"warn", "warning"}:
            return cls.WARNING
        if token in {"error", "err", "fatal"}:
            return cls.ERROR
        if token in {"success", "ok", "done"}:
            return cls.SUCCESS
        return cls.INFO


@dataclass(frozen=True)
class ClientLocation:
    """Navigation context of the client page (host, scheme, port)."""

    hostname: str
    scheme: str = "http"
    port: str = ""

    @property
    def is_secure(self) -> bool:
        return self.scheme.lower() == "https"

    @property
    def uses_default_port(self) -> bool:
        return self.port in ("", "80")

    @classmethod
    def from_url(cls, url: str) -> "ClientLocation":
        parsed = urlparse(url)
        return cls(
            hostname=(parsed.hostname or "").lower(),
            scheme=(parsed.scheme or "http").lower(),
            port=str(parsed.port) if parsed.port else "",
        )


@dataclass(frozen=True)
class RemoteIdentity:
    """Remote (internet-routed) identity of the appliance."""

    backend_host: str = ""
    domains: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Partition:
    path: str
    name: str
    size_bytes: int = 0
    mountpoint: Optional[str] = None
    fstype: Optional[str] = None


@dataclass(frozen=True)
class Disk:
    """Whole block device as reported by the inventory endpoint."""

    path: str
    display_name: str
    size_bytes: int = 0
    is_mounted: bool = False
    mount_point: Optional[str] = None
    is_system_disk: bool = False
    children: Tuple[Partition, ...] = ()


_MEMBER_DISK_RE = re.compile(r"/dev/(sd[a-z]+|nvme\d+n\d+|vd[a-z]+)")


@dataclass(frozen=True)
class ArrayMember:
    device: str
    size_bytes: int = 0
    state: str = ""
    role: str = ""

    @property
    def disk_path(self) -> Optional[str]:
        """Whole-disk path the member device lives on, e.g. ``/dev/sda``."""
        match = _MEMBER_DISK_RE.search(self.device or "")
        if not match:
            return None
        return f"/dev/{match.group(1)}"


@dataclass(frozen=True)
class ArrayStatus:
    exists: bool = False
    device: str = ""
    active_devices: int = 0
    total_devices: int = 0
    state: str = ""
    syncing: bool = False
    sync_progress_percent: Optional[float] = None
    sync_eta: Optional[str] = None
    sync_speed: Optional[str] = None
    members: Tuple[ArrayMember, ...] = ()

    def member_disk_paths(self) -> frozenset:
        """Disk paths that currently hold an array member."""
        return frozenset(
            path for path in (member.disk_path for member in self.members) if path
        )

    def is_member(self, disk_path: str) -> bool:
        return disk_path in self.member_disk_paths()


@dataclass(frozen=True)
class Command:
    """One row of the backend-computed command plan."""

    description: str
    command: str = ""


@dataclass(frozen=True)
class OptimizationPlan:
    """Backend ``smartOptimization`` proposal, kept verbatim for re-submission."""

    payload: Mapping[str, Any]

    @property
    def small_member(self) -> str:
        return str(self.payload.get("smallMember") or self.payload.get("removeDevice") or "")

    @property
    def expand_member(self) -> str:
        return str(self.payload.get("expandMember") or self.payload.get("expandDevice") or "")

    @property
    def new_disk(self) -> str:
        return str(self.payload.get("newDisk") or self.payload.get("disk") or "")

    @property
    def capacity_gain(self) -> Optional[str]:
        gain = self.payload.get("capacityGain") or self.payload.get("gain")
        return str(gain) if gain else None

    @property
    def steps(self) -> Tuple[str, ...]:
        raw = self.payload.get("steps") or ()
        steps = []
        for item in raw:
            if isinstance(item, Mapping):
                text = item.get("description") or item.get("command") or ""
            else:
                text = item
            text = str(text).strip()
            if text:
                steps.append(text)
        return tuple(steps)

    def to_payload(self) -> Dict[str, Any]:
        return dict(self.payload)


@dataclass(frozen=True)
class OperationPlan:
    """Precheck outcome for one target disk."""

    target_disk: str
    blocking_errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    infos: Tuple[str, ...] = ()
    commands: Tuple[Command, ...] = ()
    can_proceed: bool = False
    smart_optimization: Optional[OptimizationPlan] = None

    def __post_init__(self) -> None:
        if self.blocking_errors and self.can_proceed:
            object.__setattr__(self, "can_proceed", False)

    @property
    def is_optimization(self) -> bool:
        return self.smart_optimization is not None


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    severity: LogSeverity
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "timestamp": self.timestamp,
            "type": self.severity.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LogEntry":
        return cls(
            timestamp=str(payload.get("timestamp") or ""),
            severity=LogSeverity.coerce(payload.get("type") or payload.get("severity")),
            message=str(payload.get("message") or ""),
        )


@dataclass(frozen=True)
class ProgressSnapshot:
    """Resync progress confined to 0-100 percent."""

    percent: float
    eta_text: Optional[str] = None
    speed_text: Optional[str] = None
    completed: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.percent, bool) or not isinstance(self.percent, (int, float)):
            raise TypeError("ProgressSnapshot expects a numeric percent value.")
        numeric = float(self.percent)
        if numeric < 0.0 or numeric > 100.0:
            raise ValueError("ProgressSnapshot percent must be within [0, 100].")
        object.__setattr__(self, "percent", numeric)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "percent": self.percent,
            "eta": self.eta_text,
            "speed": self.speed_text,
            "completed": self.completed,
        }


@dataclass(frozen=True)
class PersistedSession:
    logs: Tuple[LogEntry, ...]
    execution_status: ExecutionStatus
    progress: Optional[ProgressSnapshot]
    saved_at_epoch_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logs": [entry.to_dict() for entry in self.logs],
            "executionStatus": self.execution_status.value,
            "progress": self.progress.to_dict() if self.progress else None,
            "savedAt": self.saved_at_epoch_ms,
        }


@dataclass(frozen=True)
class Suggestion:
    """Advisor hint about a capacity imbalance between array members."""

    smallest: ArrayMember
    largest: ArrayMember
    ratio: float
    message: str


__all__ = [
    "AccessMode",
    "ArrayMember",
    "ArrayStatus",
    "ClientLocation",
    "Command",
    "Disk",
    "ExecutionStatus",
    "LogEntry",
    "LogSeverity",
    "OperationPlan",
    "OptimizationPlan",
    "Partition",
    "PersistedSession",
    "ProgressSnapshot",
    "RemoteIdentity",
    "Suggestion",
]
