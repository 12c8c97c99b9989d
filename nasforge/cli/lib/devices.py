"""
Block device discovery and validation.

Nothing in this module mutates a device; it only decides whether a candidate
list may be handed to the array assembler.
"""

import json
import os
import shutil
import stat
import subprocess
from dataclasses import dataclass
from typing import List, Sequence

from nasforge.cli.lib.errors import (
    DeviceInUse,
    DeviceNotFound,
    InsufficientDevices,
    MissingCommand,
    NotAuthorized,
    ValidationError,
)
from nasforge.cli.lib.mdadm import MIN_DEVICES, RaidLevel


@dataclass(frozen=True)
class BlockDevice:
    path: str
    size_bytes: int = 0
    rotational: bool = True
    model: str = ""
    in_use: bool = False

    @property
    def kind(self) -> str:
        return "HDD" if self.rotational else "SSD"


def require_root() -> None:
    if os.geteuid() != 0:
        raise NotAuthorized("Run as root (sudo)")


def require_commands(commands: Sequence[str]) -> None:
    """
    Raises:
        MissingCommand: For the first executable not found on PATH
    """
    for command in commands:
        if shutil.which(command) is None:
            raise MissingCommand(f"Missing dependency: {command}")


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def has_signature(path: str) -> bool:
    """True if blkid recognizes a filesystem, RAID or LVM signature."""
    result = subprocess.run(["blkid", "-p", path], capture_output=True, text=True, check=False)
    return result.returncode == 0 and bool(result.stdout.strip())


def _is_mounted(entry: dict) -> bool:
    mountpoints = entry.get("mountpoints") or []
    if entry.get("mountpoint"):
        mountpoints = list(mountpoints) + [entry["mountpoint"]]
    if any(mountpoints):
        return True
    return any(_is_mounted(child) for child in entry.get("children") or [])


def _to_device(entry: dict) -> BlockDevice:
    rota = entry.get("rota")
    rotational = rota in (True, 1, "1")
    path = entry.get("path") or f"/dev/{entry.get('name', '')}"
    return BlockDevice(
        path=path,
        size_bytes=int(entry.get("size") or 0),
        rotational=rotational,
        model=(entry.get("model") or "").strip(),
        in_use=_is_mounted(entry),
    )


def _lsblk(args: List[str]) -> List[dict]:
    result = subprocess.run(
        ["lsblk", "-J", "-b", "-o", "NAME,PATH,SIZE,ROTA,MODEL,MOUNTPOINT,TYPE", *args],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise RuntimeError(f"Failed to list block devices: {result.stderr.strip()}")
    return json.loads(result.stdout or "{}").get("blockdevices", [])


def list_block_devices() -> List[BlockDevice]:
    """List whole disks (no partitions) visible to the kernel."""
    return [_to_device(entry) for entry in _lsblk(["-d"]) if entry.get("type") in (None, "disk")]


def inspect_device(path: str) -> BlockDevice:
    """
    Describe one candidate device.

    Raises:
        DeviceNotFound: If the path is not a block device
    """
    if not is_block_device(path):
        raise DeviceNotFound(f"Device {path} does not exist or is not a block device")
    entries = _lsblk([path])
    signature = has_signature(path)
    if not entries:
        return BlockDevice(path=path, in_use=signature)
    device = _to_device(entries[0])
    return BlockDevice(
        path=path,
        size_bytes=device.size_bytes,
        rotational=device.rotational,
        model=device.model,
        in_use=device.in_use or signature,
    )


def _check_duplicates(devices: Sequence[str], what: str) -> None:
    seen = set()
    for device in devices:
        if device in seen:
            raise ValidationError(f"{what} device {device} listed twice")
        seen.add(device)


def check_device_list(devices: Sequence[str], level: RaidLevel, cache_devices: Sequence[str] = ()) -> None:
    """
    Check the shape of the device lists without touching any device.

    Raises:
        InsufficientDevices: Fewer devices than the level requires
        ValidationError: Duplicate entries or a device used as data and cache
    """
    if not devices:
        raise InsufficientDevices("No data drives specified")

    minimum = MIN_DEVICES[level]
    if len(devices) < minimum:
        raise InsufficientDevices(
            f"RAID {level.value} requires at least {minimum} drives, but only {len(devices)} provided"
        )

    _check_duplicates(devices, "Data")
    _check_duplicates(cache_devices, "Cache")
    overlap = sorted(set(devices) & set(cache_devices))
    if overlap:
        raise ValidationError(f"Devices used as both data and cache: {', '.join(overlap)}")


def validate_devices(
    devices: Sequence[str],
    level: RaidLevel,
    cache_devices: Sequence[str] = (),
    allow_reuse: bool = False,
) -> List[BlockDevice]:
    """
    Validate the data devices for an array (and the optional cache devices).

    Args:
        devices: Candidate data devices
        level: Target redundancy level
        cache_devices: Optional cache-tier devices
        allow_reuse: Destructive reuse of devices carrying signatures was authorized

    Returns:
        Inspected data devices

    Raises:
        InsufficientDevices: Fewer devices than the level requires
        DeviceNotFound: A path is not a block device
        DeviceInUse: A device carries a signature and reuse was not authorized
    """
    check_device_list(devices, level, cache_devices)

    inspected = [inspect_device(device) for device in devices]
    cache_inspected = [inspect_device(device) for device in cache_devices]

    if not allow_reuse:
        busy = [d.path for d in inspected + cache_inspected if d.in_use]
        if busy:
            raise DeviceInUse(f"Devices already in use: {', '.join(busy)} (use --force to erase them)")

    return inspected
