"""Execution status state machine for the single in-flight operation."""

from __future__ import annotations

from typing import Callable, Dict, FrozenSet, List, Optional

from .entities import ExecutionStatus

_S = ExecutionStatus

_TRANSITIONS: Dict[ExecutionStatus, FrozenSet[ExecutionStatus]] = {
    _S.IDLE: frozenset({_S.RUNNING}),
    _S.RUNNING: frozenset({_S.SUCCESS, _S.ERROR}),
    _S.SUCCESS: frozenset({_S.RUNNING, _S.IDLE}),
    _S.ERROR: frozenset({_S.RUNNING, _S.IDLE}),
}


class InvalidTransition(RuntimeError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current: ExecutionStatus, target: ExecutionStatus) -> None:
        super().__init__(f"Cannot move execution status from {current.value} to {target.value}.")
        self.current = current
        self.target = target


class ExecutionState:
    """Owns ``ExecutionStatus`` and rejects transitions outside the lifecycle.

    idle -> running -> {success | error}; a new run starts from idle or a
    terminal status. ``stopped`` is the cancellation path and settles from any
    status, since the resync may have been started by another client.
    """

    def __init__(self, status: ExecutionStatus = ExecutionStatus.IDLE) -> None:
        self._status = status
        self._listeners: List[Callable[[ExecutionStatus], None]] = []

    @property
    def status(self) -> ExecutionStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status is ExecutionStatus.RUNNING

    def subscribe(self, callback: Callable[[ExecutionStatus], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def begin(self) -> None:
        self._move(ExecutionStatus.RUNNING)

    def succeed(self) -> None:
        self._move(ExecutionStatus.SUCCESS)

    def fail(self) -> None:
        self._move(ExecutionStatus.ERROR)

    def stopped(self) -> None:
        # allowed from every status
        self._set(ExecutionStatus.SUCCESS)

    def reset(self) -> None:
        if self._status is ExecutionStatus.IDLE:
            return
        self._move(ExecutionStatus.IDLE)

    def restore(self, status: ExecutionStatus) -> None:
        """Rehydrate from a persisted session; only valid before any run."""
        if self._status is not ExecutionStatus.IDLE:
            raise InvalidTransition(self._status, status)
        self._set(status)

    def _move(self, target: ExecutionStatus) -> None:
        if target not in _TRANSITIONS[self._status]:
            raise InvalidTransition(self._status, target)
        self._set(target)

    def _set(self, target: ExecutionStatus) -> None:
        previous: Optional[ExecutionStatus] = self._status
        self._status = target
        if previous is target:
            return
        for callback in list(self._listeners):
            callback(target)


__all__ = ["ExecutionState", "InvalidTransition"]
