
"""Normalize raw storage payloads (lsblk JSON, mdraid status, push events)."""

import math
import re
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from .entities import (
    ArrayMember,
    ArrayStatus,
    Disk,
    LogEntry,
    LogSeverity,
    Partition,
    ProgressSnapshot,
)

_SIZE_RE = re.compile(r"^\s*([0-9]+(?:[.,][0-9]+)?)\s*([KMGTPE]?)(?:i?B)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3, "T": 1024**4, "P": 1024**5, "E": 1024**6}


def parse_size(value: Any) -> int:
    """Return a size in bytes from an integer or an lsblk string like ``1.8T``."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            return 0
        return int(value)
    match = _SIZE_RE.match(str(value))
    if not match:
        return 0
    number = float(match.group(1).replace(",", "."))
    return int(number * _SIZE_UNITS[match.group(2).upper()])


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def _first_mountpoint(device: Mapping[str, Any]) -> Optional[str]:
    points = device.get("mountpoints")
    if isinstance(points, list):
        for point in points:
            text = _text(point)
            if text:
                return text
    return _text(device.get("mountpoint"))


def _device_path(device: Mapping[str, Any]) -> Optional[str]:
    path = _text(device.get("path"))
    if path:
        return path
    name = _text(device.get("name"))
    return f"/dev/{name}" if name else None


def _size_of(payload: Mapping[str, Any]) -> int:
    for key in ("size_bytes", "sizeBytes", "size"):
        if key in payload:
            return parse_size(payload.get(key))
    return 0


def parse_inventory(payload: Any) -> List[Disk]:
    """Build the disk list from an inventory payload.

    Accepts the endpoint envelope (``{"data": {"devices": {...}}}``), the
    ``data`` object, or a bare lsblk ``{"blockdevices": [...]}`` document.
    """
    if not isinstance(payload, Mapping):
        return []
    root: Mapping[str, Any] = payload
    if isinstance(root.get("data"), Mapping):
        root = root["data"]
    if isinstance(root.get("devices"), Mapping):
        root = root["devices"]
    block = root.get("blockdevices")
    if not isinstance(block, list):
        return []

    disks: List[Disk] = []
    for device in block:
        if not isinstance(device, Mapping):
            continue
        name = _text(device.get("name")) or ""
        if device.get("type") != "disk" or name.startswith("sr"):
            continue
        path = _device_path(device)
        if not path:
            continue

        partitions = []
        for child in device.get("children") or ():
            if not isinstance(child, Mapping):
                continue
            child_path = _device_path(child)
            if not child_path:
                continue
            partitions.append(
                Partition(
                    path=child_path,
                    name=_text(child.get("name")) or child_path.rsplit("/", 1)[-1],
                    size_bytes=_size_of(child),
                    mountpoint=_first_mountpoint(child),
                    fstype=_text(child.get("fstype")),
                )
            )

        mount_point = _first_mountpoint(device)
        if not mount_point:
            mount_point = next((p.mountpoint for p in partitions if p.mountpoint), None)
        disks.append(
            Disk(
                path=path,
                display_name=name or path,
                size_bytes=_size_of(device),
                is_mounted=mount_point is not None,
                mount_point=mount_point,
                is_system_disk=any(p.mountpoint == "/" for p in partitions)
                or _first_mountpoint(device) == "/",
                children=tuple(partitions),
            )
        )
    return disks


def _coerce_percent(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    return min(max(numeric, 0.0), 100.0)


def _coerce_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def parse_array_status(payload: Any) -> ArrayStatus:
    """Build an ``ArrayStatus`` from the status object or its envelope."""
    if not isinstance(payload, Mapping):
        return ArrayStatus()
    if isinstance(payload.get("status"), Mapping):
        payload = payload["status"]

    members = []
    for raw in payload.get("members") or ():
        if isinstance(raw, Mapping):
            device = _text(raw.get("device"))
            if not device:
                continue
            members.append(
                ArrayMember(
                    device=device,
                    size_bytes=_size_of(raw),
                    state=_text(raw.get("state")) or "",
                    role=_text(raw.get("role")) or "",
                )
            )
        elif isinstance(raw, str) and raw.strip():
            members.append(ArrayMember(device=raw.strip()))

    return ArrayStatus(
        exists=bool(payload.get("exists", bool(members))),
        device=_text(payload.get("device")) or "",
        active_devices=_coerce_int(payload.get("activeDevices")),
        total_devices=_coerce_int(payload.get("totalDevices")),
        state=_text(payload.get("state")) or "",
        syncing=bool(payload.get("syncing")),
        sync_progress_percent=_coerce_percent(payload.get("syncProgress")),
        sync_eta=_text(payload.get("syncETA")),
        sync_speed=_text(payload.get("syncSpeed")),
        members=tuple(members),
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_log_event(payload: Any) -> Optional[LogEntry]:
    """Normalize a ``mdraid-log`` push event; non-mappings are dropped."""
    if isinstance(payload, str):
        payload = {"message": payload}
    if not isinstance(payload, Mapping):
        return None
    message = payload.get("message")
    if message is None:
        return None
    return LogEntry(
        timestamp=_text(payload.get("timestamp")) or _now_iso(),
        severity=LogSeverity.coerce(payload.get("type")),
        message=str(message),
    )


def parse_log_lines(lines: Iterable[Any]) -> List[LogEntry]:
    entries = []
    for line in lines or ():
        entry = parse_log_event(line)
        if entry is not None:
            entries.append(entry)
    return entries


def parse_progress_event(payload: Any) -> Optional[ProgressSnapshot]:
    """Normalize a ``mdraid-resync-progress`` push event."""
    if not isinstance(payload, Mapping):
        return None
    completed = bool(payload.get("completed"))
    percent = _coerce_percent(payload.get("percent"))
    if percent is None:
        if not completed:
            return None
        percent = 100.0
    return ProgressSnapshot(
        percent=percent,
        eta_text=_text(payload.get("eta")),
        speed_text=_text(payload.get("speed")),
        completed=completed,
    )


def progress_from_status(status: ArrayStatus) -> Optional[ProgressSnapshot]:
    """Progress snapshot derived from a polled status while syncing."""
    if not status.syncing or status.sync_progress_percent is None:
        return None
    return ProgressSnapshot(
        percent=status.sync_progress_percent,
        eta_text=status.sync_eta,
        speed_text=status.sync_speed,
    )


__all__ = [
    "parse_array_status",
    "parse_inventory",
    "parse_log_event",
    "parse_log_lines",
    "parse_progress_event",
    "parse_size",
    "progress_from_status",
]
