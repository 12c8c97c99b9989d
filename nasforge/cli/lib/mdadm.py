"""
mdadm software RAID management functions.
"""

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from glob import glob
from typing import Iterable, List, Sequence, Set

from nasforge.cli.lib.errors import AssemblyFailed, InvalidLevel
from nasforge.cli.lib.state import atomic_write_text, read_text

logger = logging.getLogger(__name__)


class RaidLevel(str, Enum):
    """Supported redundancy levels (mdadm --level values)."""

    STRIPED = "0"
    MIRRORED = "1"
    PARITY_SINGLE = "5"
    PARITY_DUAL = "6"
    MIRRORED_STRIPED = "10"


MIN_DEVICES = {
    RaidLevel.STRIPED: 2,
    RaidLevel.MIRRORED: 2,
    RaidLevel.PARITY_SINGLE: 3,
    RaidLevel.PARITY_DUAL: 4,
    RaidLevel.MIRRORED_STRIPED: 4,
}

_LEVEL_ALIASES = {
    "raid0": RaidLevel.STRIPED,
    "striped": RaidLevel.STRIPED,
    "stripe": RaidLevel.STRIPED,
    "raid1": RaidLevel.MIRRORED,
    "mirrored": RaidLevel.MIRRORED,
    "mirror": RaidLevel.MIRRORED,
    "raid5": RaidLevel.PARITY_SINGLE,
    "parity-single": RaidLevel.PARITY_SINGLE,
    "raid6": RaidLevel.PARITY_DUAL,
    "parity-dual": RaidLevel.PARITY_DUAL,
    "raid10": RaidLevel.MIRRORED_STRIPED,
    "mirrored-striped": RaidLevel.MIRRORED_STRIPED,
}

SYS_BLOCK_DIR = "/sys/class/block"


class SyncState(str, Enum):
    SYNCING = "syncing"
    CLEAN = "clean"
    DEGRADED = "degraded"


@dataclass
class RedundancyGroup:
    device: str
    level: RaidLevel
    members: List[str] = field(default_factory=list)
    sync_state: SyncState = SyncState.SYNCING


def parse_level(raw: str) -> RaidLevel:
    """
    Parse a redundancy level ("5", "raid5", "parity-single", ...).

    Raises:
        InvalidLevel: If the level is not supported
    """
    value = str(raw).strip().lower()
    try:
        return RaidLevel(value)
    except ValueError:
        pass
    if value in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[value]
    raise InvalidLevel(f"Invalid RAID level: {raw}. Must be 0, 1, 5, 6, or 10")


def next_md_device(existing: Iterable[str]) -> str:
    """
    Pick the lowest unused /dev/mdN slot.

    Args:
        existing: Device paths or names currently present (e.g. "/dev/md0", "md127")

    Returns:
        Device path of the first free slot
    """
    used = set()
    for name in existing:
        match = re.fullmatch(r"md(\d+)", os.path.basename(name))
        if match:
            used.add(int(match.group(1)))
    index = 0
    while index in used:
        index += 1
    return f"/dev/md{index}"


def existing_md_devices(dev_dir: str = "/dev") -> List[str]:
    return sorted(glob(os.path.join(dev_dir, "md[0-9]*")))


def array_holders(device: str, sys_block_dir: str = SYS_BLOCK_DIR) -> List[str]:
    """
    List the assembled md arrays that currently hold `device` as a member.

    Returns:
        Array device paths (e.g. ["/dev/md127"]), empty when the device is free
    """
    name = os.path.basename(os.path.realpath(device))
    try:
        holders = os.listdir(os.path.join(sys_block_dir, name, "holders"))
    except OSError:
        return []
    return [f"/dev/{holder}" for holder in sorted(holders) if holder.startswith("md")]


def wipe_device(device: str, sys_block_dir: str = SYS_BLOCK_DIR) -> None:
    """
    Remove RAID membership and every filesystem signature from a device.

    A running array that holds the device is stopped first, otherwise the
    member stays busy.

    Raises:
        RuntimeError: If a holding array cannot be stopped or wipefs fails
    """
    for md_device in array_holders(device, sys_block_dir):
        result = subprocess.run(["mdadm", "--stop", md_device], capture_output=True, text=True, check=False)
        if result.returncode != 0:
            raise RuntimeError(f"Could not stop {md_device} holding {device}: {result.stderr.strip()}")
        logger.info("Stopped array %s holding %s", md_device, device)

    # Fails harmlessly when the device has no superblock
    subprocess.run(["mdadm", "--zero-superblock", device], capture_output=True, text=True, check=False)

    result = subprocess.run(["wipefs", "-af", device], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"Could not completely clear {device}: {result.stderr.strip()}")


def array_exists(md_device: str) -> bool:
    result = subprocess.run(["mdadm", "--detail", md_device], capture_output=True, text=True, check=False)
    return result.returncode == 0


def stop_array(md_device: str) -> None:
    subprocess.run(["mdadm", "--stop", md_device], capture_output=True, text=True, check=False)


def create_array(md_device: str, level: RaidLevel, devices: Sequence[str]) -> RedundancyGroup:
    """
    Create an mdadm array.

    Args:
        md_device: Target device (e.g., "/dev/md0")
        level: Redundancy level
        devices: Member devices

    Returns:
        The created RedundancyGroup

    Raises:
        AssemblyFailed: If mdadm fails; the partial array is stopped first
    """
    cmd = [
        "mdadm",
        "--create",
        md_device,
        f"--level={level.value}",
        f"--raid-devices={len(devices)}",
        *devices,
        "--force",
        "--run",
    ]
    result = subprocess.run(cmd, input="yes\n", capture_output=True, text=True, check=False)

    if result.returncode != 0:
        stop_array(md_device)
        raise AssemblyFailed(
            f"Failed to create RAID array (exit code {result.returncode}): {result.stderr.strip()}"
        )

    if not array_exists(md_device):
        stop_array(md_device)
        raise AssemblyFailed(f"RAID array {md_device} not found after creation")

    return RedundancyGroup(device=md_device, level=level, members=list(devices))


def wait_for_sync(md_device: str, timeout: int) -> bool:
    """
    Block until the initial resync finishes.

    Returns:
        False if the wait timed out (resync continues in the background)
    """
    try:
        subprocess.run(["mdadm", "--wait", md_device], capture_output=True, text=True, check=False, timeout=timeout)
    except subprocess.TimeoutExpired:
        return False
    return True


def array_detail(md_device: str) -> str:
    result = subprocess.run(["mdadm", "--detail", md_device], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"Failed to read array detail: {result.stderr.strip()}")
    return result.stdout


def parse_sync_state(detail: str) -> SyncState:
    """Derive the sync state from `mdadm --detail` output."""
    state = ""
    for line in detail.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "State":
            state = value.strip().lower()
            break
    if "degraded" in state:
        return SyncState.DEGRADED
    if any(word in state for word in ("resyncing", "recovering", "reshaping", "checking")):
        return SyncState.SYNCING
    return SyncState.CLEAN


def scan_arrays() -> List[str]:
    """Return the ARRAY lines reported by `mdadm --detail --scan`."""
    result = subprocess.run(["mdadm", "--detail", "--scan"], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"Failed to scan arrays: {result.stderr.strip()}")
    return [line.strip() for line in result.stdout.splitlines() if line.startswith("ARRAY")]


def _array_keys(line: str) -> Set[str]:
    # /dev/md/0 and /dev/md0 name the same array
    parts = line.split()
    keys = set()
    if len(parts) > 1:
        match = re.fullmatch(r"/dev/md/(\d+)", parts[1])
        keys.add("dev:" + (f"/dev/md{match.group(1)}" if match else parts[1]))
    for token in parts[2:]:
        if token.upper().startswith("UUID="):
            keys.add("uuid:" + token.split("=", 1)[1].lower())
    return keys


def rebuild_registry(existing: str, scanned: Sequence[str]) -> str:
    """
    Merge scanned ARRAY lines into an mdadm.conf body.

    An existing ARRAY line is replaced when a scanned line has the same
    UUID or names the same md device; everything else is kept.
    """
    scanned_keys: Set[str] = set()
    for line in scanned:
        scanned_keys |= _array_keys(line)
    kept = [
        line
        for line in existing.splitlines()
        if not (line.startswith("ARRAY") and _array_keys(line) & scanned_keys)
    ]
    lines = kept + list(scanned)
    return "\n".join(lines).strip("\n") + "\n"


def persist_registry(conf_path: str) -> None:
    """
    Record every discovered array in mdadm.conf so it reassembles at boot.

    Raises:
        RuntimeError: If the scan or the write fails
    """
    scanned = scan_arrays()
    try:
        atomic_write_text(conf_path, rebuild_registry(read_text(conf_path), scanned))
    except OSError as e:
        raise RuntimeError(f"Failed to update {conf_path}: {e}")
    logger.info("Recorded %d array(s) in %s", len(scanned), conf_path)


def update_initramfs() -> None:
    result = subprocess.run(["update-initramfs", "-u"], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"Failed to update initramfs: {result.stderr.strip()}")
