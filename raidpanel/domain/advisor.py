from __future__ import annotations

from typing import Optional, Sequence

from .entities import ArrayMember, Suggestion

IMBALANCE_RATIO = 1.5


def _fmt_size(size_bytes: int) -> str:
    value = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB", "TB", "PB"):
        if value < 1000 or unit == "PB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1000
    return f"{size_bytes} B"


def analyze(members: Sequence[ArrayMember]) -> Optional[Suggestion]:
    """Flag a capacity imbalance worth fixing by replacing the smallest member.

    In a mirrored or parity array the usable size per member is bounded by the
    smallest one, so a member more than ``IMBALANCE_RATIO`` times larger is
    partly wasted. Members without a known size are ignored.
    """
    sized = sorted((m for m in members or () if m.size_bytes > 0), key=lambda m: m.size_bytes)
    if len(sized) < 2:
        return None
    smallest, largest = sized[0], sized[-1]
    if largest.size_bytes <= IMBALANCE_RATIO * smallest.size_bytes:
        return None
    ratio = largest.size_bytes / smallest.size_bytes
    message = (
        f"{smallest.device} ({_fmt_size(smallest.size_bytes)}) limits the array; "
        f"{largest.device} is {ratio:.1f}x larger ({_fmt_size(largest.size_bytes)}). "
        f"Replace {smallest.device} with a larger disk to grow usable capacity."
    )
    return Suggestion(smallest=smallest, largest=largest, ratio=ratio, message=message)


__all__ = ["IMBALANCE_RATIO", "analyze"]
