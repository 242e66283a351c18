from __future__ import annotations

from raidpanel.domain.entities import LogSeverity
from raidpanel.domain.storage_normalizer import (
    parse_array_status,
    parse_inventory,
    parse_log_event,
    parse_progress_event,
    parse_size,
    progress_from_status,
)
from raidpanel.tests.fakes import GiB, TiB, blockdevice, inventory_payload, status_payload


def test_parse_size_handles_lsblk_strings_and_integers() -> None:
    assert parse_size(512) == 512
    assert parse_size("1G") == GiB
    assert parse_size("1.5T") == int(1.5 * TiB)
    assert parse_size("931,5G") == int(931.5 * GiB)
    assert parse_size("garbage") == 0
    assert parse_size(None) == 0
    assert parse_size(-4) == 0


def test_parse_inventory_keeps_whole_disks_only() -> None:
    payload = inventory_payload(
        blockdevice("sda", "1T", children=({"name": "sda1", "type": "part", "size": "1T", "mountpoints": ["/"]},)),
        blockdevice("sdb", 2 * TiB),
        blockdevice("sr0", "1G", kind="rom"),
        blockdevice("loop0", "64M", kind="loop"),
    )

    disks = parse_inventory({"success": True, "data": payload})

    assert [disk.path for disk in disks] == ["/dev/sda", "/dev/sdb"]
    system, spare = disks
    assert system.is_system_disk
    assert system.is_mounted and system.mount_point == "/"
    assert system.children[0].path == "/dev/sda1"
    assert not spare.is_system_disk
    assert not spare.is_mounted
    assert spare.size_bytes == 2 * TiB


def test_parse_inventory_accepts_bare_lsblk_document() -> None:
    disks = parse_inventory({"blockdevices": [blockdevice("nvme0n1", "512G")]})

    assert disks[0].path == "/dev/nvme0n1"
    assert disks[0].display_name == "nvme0n1"


def test_parse_inventory_tolerates_garbage() -> None:
    assert parse_inventory(None) == []
    assert parse_inventory({"data": {"devices": {"blockdevices": "nope"}}}) == []


def test_parse_array_status_reads_members_and_sync_fields() -> None:
    payload = status_payload(
        (("/dev/sda1", TiB), ("/dev/sdb1", 4 * TiB)),
        syncing=True,
        progress="42.5%",
        eta="12min",
        speed="150MB/s",
    )

    status = parse_array_status({"success": True, "status": payload})

    assert status.exists
    assert status.syncing
    assert status.sync_progress_percent == 42.5
    assert status.member_disk_paths() == frozenset({"/dev/sda", "/dev/sdb"})
    assert status.is_member("/dev/sdb")
    assert not status.is_member("/dev/sdc")
    assert status.members[1].size_bytes == 4 * TiB


def test_parse_array_status_clamps_progress() -> None:
    status = parse_array_status(status_payload(syncing=True, progress=140))

    assert status.sync_progress_percent == 100.0


def test_missing_status_means_no_array() -> None:
    assert not parse_array_status({"exists": False}).exists
    assert not parse_array_status("nope").exists


def test_progress_event_normalization() -> None:
    snapshot = parse_progress_event({"percent": 37.2, "eta": "5min", "speed": "100M/s", "completed": False})

    assert snapshot is not None
    assert snapshot.percent == 37.2
    assert snapshot.eta_text == "5min"
    assert not snapshot.completed

    done = parse_progress_event({"completed": True})
    assert done is not None and done.percent == 100.0 and done.completed

    assert parse_progress_event({"eta": "5min"}) is None
    assert parse_progress_event([1, 2]) is None


def test_log_event_normalization() -> None:
    entry = parse_log_event({"timestamp": "2024-01-01T00:00:00Z", "type": "warning", "message": "careful"})

    assert entry is not None
    assert entry.severity is LogSeverity.WARNING
    assert entry.message == "careful"

    plain = parse_log_event("raw line")
    assert plain is not None and plain.severity is LogSeverity.INFO and plain.timestamp

    assert parse_log_event({"type": "info"}) is None


def test_progress_from_status_only_while_syncing() -> None:
    syncing = parse_array_status(status_payload(syncing=True, progress=10))
    idle = parse_array_status(status_payload(progress=10))

    assert progress_from_status(syncing).percent == 10.0
    assert progress_from_status(idle) is None
