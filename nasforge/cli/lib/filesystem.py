"""
Filesystem management functions: mkfs, fstab and mount handling.
"""

import os
import shlex
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

from nasforge.cli.lib.errors import FormatFailed, InvalidLevel, MountFailed
from nasforge.cli.lib.state import atomic_write_text, read_text


class FsType(str, Enum):
    XFS = "xfs"
    EXT4 = "ext4"
    BTRFS = "btrfs"


# The only type guaranteed to carry POSIX ACLs and project quotas here
ACL_CAPABLE = FsType.XFS

_FORCE_FLAG = {
    FsType.XFS: "-f",
    FsType.EXT4: "-F",
    FsType.BTRFS: "-f",
}

PROJECT_QUOTA_OPTIONS = ("prjquota", "pquota")


@dataclass(frozen=True)
class MountInfo:
    source: str
    fstype: str
    options: List[str]
    target: str

    def has_option(self, *names: str) -> bool:
        return any(name in self.options for name in names)


def parse_fs_type(raw: str) -> FsType:
    try:
        return FsType(str(raw).strip().lower())
    except ValueError:
        raise InvalidLevel(f"Invalid filesystem: {raw}. Must be xfs, ext4, or btrfs")


def format_device(device: str, fs_type: FsType) -> None:
    """
    Create a filesystem on a freshly provisioned device.

    Args:
        device: Device path (e.g., "/dev/vg_name/lv_name")
        fs_type: Filesystem type

    Raises:
        FormatFailed: If the device is missing or mkfs fails
    """
    if not os.path.exists(device):
        raise FormatFailed(f"Device {device} does not exist")

    result = subprocess.run(
        [f"mkfs.{fs_type.value}", _FORCE_FLAG[fs_type], device],
        capture_output=True,
        text=True,
        check=False
    )

    if result.returncode != 0:
        raise FormatFailed(f"Failed to create filesystem: {result.stderr.strip()}")


def read_uuid(device: str) -> str:
    """
    Raises:
        FormatFailed: If the device has no readable UUID
    """
    result = subprocess.run(
        ["blkid", "-s", "UUID", "-o", "value", device],
        capture_output=True,
        text=True,
        check=False
    )
    uuid = result.stdout.strip()
    if result.returncode != 0 or not uuid:
        raise FormatFailed(f"Failed to get UUID of {device}: {result.stderr.strip()}")
    return uuid


def fstab_line(uuid: str, mount_point: str, fs_type: FsType) -> str:
    return f"UUID={uuid} {mount_point} {fs_type.value} defaults 0 2"


def upsert_fstab_entry(text: str, uuid: str, mount_point: str, fs_type: FsType) -> str:
    """
    Return fstab content holding exactly one entry for `uuid`.

    An existing entry for the same UUID is replaced in place.
    """
    spec = f"UUID={uuid}"
    new_line = fstab_line(uuid, mount_point, fs_type)
    lines: List[str] = []
    placed = False
    for line in text.splitlines():
        fields = line.split()
        if fields and fields[0] == spec:
            if not placed:
                lines.append(new_line)
                placed = True
            continue
        lines.append(line)
    if not placed:
        lines.append(new_line)
    return "\n".join(lines) + "\n"


def register_mount(fstab_path: str, uuid: str, mount_point: str, fs_type: FsType) -> None:
    """
    Raises:
        MountFailed: If fstab cannot be written
    """
    os.makedirs(mount_point, exist_ok=True)
    try:
        atomic_write_text(fstab_path, upsert_fstab_entry(read_text(fstab_path), uuid, mount_point, fs_type))
    except OSError as e:
        raise MountFailed(f"Failed to update {fstab_path}: {e}")


def mount_all() -> None:
    """
    Raises:
        MountFailed: If `mount -a` fails
    """
    result = subprocess.run(["mount", "-a"], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise MountFailed(f"Failed to mount filesystem: {result.stderr.strip()}")


def mount_info(path: str) -> MountInfo:
    """
    Describe the filesystem holding `path`.

    Raises:
        RuntimeError: If findmnt cannot resolve the path
    """
    result = subprocess.run(
        ["findmnt", "-n", "-P", "-o", "SOURCE,FSTYPE,OPTIONS,TARGET", "--target", path],
        capture_output=True,
        text=True,
        check=False
    )
    if result.returncode != 0 or not result.stdout.strip():
        raise RuntimeError(f"Failed to determine filesystem of {path}: {result.stderr.strip()}")

    first = result.stdout.strip().splitlines()[0]
    fields = dict(token.split("=", 1) for token in shlex.split(first) if "=" in token)
    return MountInfo(
        source=fields.get("SOURCE", ""),
        fstype=fields.get("FSTYPE", ""),
        options=[o for o in fields.get("OPTIONS", "").split(",") if o],
        target=fields.get("TARGET", ""),
    )


def add_fstab_option(text: str, specs: Sequence[str], option: str) -> Tuple[str, bool]:
    """
    Add a mount option to the fstab entries whose first field is in `specs`.

    Returns:
        (new content, whether anything changed)
    """
    changed = False
    lines: List[str] = []
    for line in text.splitlines():
        fields = line.split()
        if len(fields) >= 4 and not fields[0].startswith("#") and fields[0] in specs:
            options = fields[3].split(",")
            if option not in options:
                fields[3] = ",".join(options + [option])
                line = " ".join(fields)
                changed = True
        lines.append(line)
    return "\n".join(lines) + "\n", changed


def ensure_fstab_option(fstab_path: str, specs: Sequence[str], option: str) -> bool:
    """
    Durably add a mount option to matching fstab entries.

    Returns:
        True if fstab was modified
    """
    content, changed = add_fstab_option(read_text(fstab_path), specs, option)
    if changed:
        atomic_write_text(fstab_path, content)
    return changed


def remount(target: str) -> None:
    """
    Raises:
        RuntimeError: If the remount fails
    """
    result = subprocess.run(["mount", "-o", "remount", target], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"Failed to remount {target}: {result.stderr.strip()}")
