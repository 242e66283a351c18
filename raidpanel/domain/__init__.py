"""Domain package exports for value objects and pure storage rules."""

from .access_mode import resolve_mode, server_url
from .advisor import analyze
from .entities import (
    AccessMode,
    ArrayMember,
    ArrayStatus,
    ClientLocation,
    Command,
    Disk,
    ExecutionStatus,
    LogEntry,
    LogSeverity,
    OperationPlan,
    OptimizationPlan,
    Partition,
    PersistedSession,
    ProgressSnapshot,
    RemoteIdentity,
    Suggestion,
)
from .execution import ExecutionState, InvalidTransition

__all__ = [
    "AccessMode",
    "ArrayMember",
    "ArrayStatus",
    "ClientLocation",
    "Command",
    "Disk",
    "ExecutionState",
    "ExecutionStatus",
    "InvalidTransition",
    "LogEntry",
    "LogSeverity",
    "OperationPlan",
    "OptimizationPlan",
    "Partition",
    "PersistedSession",
    "ProgressSnapshot",
    "RemoteIdentity",
    "Suggestion",
    "analyze",
    "resolve_mode",
    "server_url",
]
