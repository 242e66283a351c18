"""Classification of precheck reasons and construction of operation plans."""

from __future__ import annotations

from typing import Any, List, Mapping, Sequence, Tuple

from .entities import Command, OperationPlan, OptimizationPlan

BLOCKING_MARKERS: Tuple[str, ...] = ("❌", "⛔", "ERROR:")
WARNING_MARKERS: Tuple[str, ...] = ("⚠️", "⚠", "WARNING:")

MEMBER_BLOCK_REASON = "This disk is already a member of the RAID array."


def _strip_marker(text: str, marker: str) -> str:
    return text[len(marker):].lstrip(" \ufe0f:-").strip()


def classify_reasons(
    reasons: Sequence[Any],
) -> Tuple[Tuple[str, ...], Tuple[str, ...], Tuple[str, ...]]:
    """Split reasons into (blocking, warnings, infos) by their leading marker."""
    blocking: List[str] = []
    warnings: List[str] = []
    infos: List[str] = []
    for raw in reasons or ():
        text = str(raw or "").strip()
        if not text:
            continue
        bucket = infos
        cleaned = text
        for marker in BLOCKING_MARKERS:
            if text.upper().startswith(marker.upper()):
                bucket, cleaned = blocking, _strip_marker(text, marker)
                break
        else:
            for marker in WARNING_MARKERS:
                if text.upper().startswith(marker.upper()):
                    bucket, cleaned = warnings, _strip_marker(text, marker)
                    break
        bucket.append(cleaned or text)
    return tuple(blocking), tuple(warnings), tuple(infos)


def _parse_commands(raw_plan: Any) -> Tuple[Command, ...]:
    commands = []
    for item in raw_plan or ():
        if isinstance(item, Mapping):
            description = str(item.get("description") or item.get("step") or "").strip()
            command = str(item.get("command") or item.get("cmd") or "").strip()
            if description or command:
                commands.append(Command(description=description or command, command=command))
        elif item is not None and str(item).strip():
            text = str(item).strip()
            commands.append(Command(description=text, command=text))
    return tuple(commands)


def build_plan(target_disk: str, payload: Mapping[str, Any]) -> OperationPlan:
    """Turn a ``mdraid-prechecks`` response into an ``OperationPlan``."""
    blocking, warnings, infos = classify_reasons(payload.get("reasons") or ())
    success = payload.get("success") is True
    backend_allows = payload.get("canProceed") is not False
    if not success and not blocking:
        detail = payload.get("error") or payload.get("message") or "Precheck rejected by server."
        blocking = (str(detail),)
    optimization = payload.get("smartOptimization")
    return OperationPlan(
        target_disk=target_disk,
        blocking_errors=blocking,
        warnings=warnings,
        infos=infos,
        commands=_parse_commands(payload.get("plan")),
        can_proceed=success and backend_allows and not blocking,
        smart_optimization=OptimizationPlan(dict(optimization))
        if isinstance(optimization, Mapping) and optimization
        else None,
    )


def failed_plan(target_disk: str, message: str) -> OperationPlan:
    return OperationPlan(target_disk=target_disk, blocking_errors=(message,), can_proceed=False)


def member_plan(target_disk: str) -> OperationPlan:
    """Permanently blocked plan for a disk that already belongs to the array."""
    return OperationPlan(
        target_disk=target_disk,
        blocking_errors=(MEMBER_BLOCK_REASON,),
        can_proceed=False,
    )


__all__ = [
    "BLOCKING_MARKERS",
    "MEMBER_BLOCK_REASON",
    "WARNING_MARKERS",
    "build_plan",
    "classify_reasons",
    "failed_plan",
    "member_plan",
]
