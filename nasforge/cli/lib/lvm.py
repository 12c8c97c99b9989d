"""
LVM management functions: data volume and cache tier.
"""

import subprocess
from dataclasses import dataclass
from typing import Sequence

from nasforge.cli.lib.errors import CacheAttachFailed, VolumeCreateFailed

CACHE_META_LV = "cache_meta"
CACHE_DATA_LV = "cache_data"
CACHE_META_DIVISOR = 10


@dataclass(frozen=True)
class CacheSplit:
    meta_extents: int
    data_extents: int


def lv_exists(vg_name: str, lv_name: str) -> bool:
    result = subprocess.run(
        ["lvdisplay", f"/dev/{vg_name}/{lv_name}"],
        capture_output=True,
        text=True,
        check=False
    )
    return result.returncode == 0


def create_data_volume(device: str, vg_name: str, lv_name: str) -> str:
    """
    Wrap a device as a volume group with one LV spanning all free space.

    Args:
        device: Underlying device (e.g., "/dev/md0")
        vg_name: Volume group name
        lv_name: Logical volume name

    Returns:
        Path to the logical volume (e.g., "/dev/vg_name/lv_name")

    Raises:
        VolumeCreateFailed: If any step fails
    """
    lv_path = f"/dev/{vg_name}/{lv_name}"

    if lv_exists(vg_name, lv_name):
        raise VolumeCreateFailed(f"Logical volume {lv_path} already exists")

    result = subprocess.run(
        ["pvcreate", "-y", device],
        capture_output=True,
        text=True,
        check=False
    )
    if result.returncode != 0:
        raise VolumeCreateFailed(f"Failed to create physical volume: {result.stderr.strip()}")

    result = subprocess.run(
        ["vgcreate", vg_name, device],
        capture_output=True,
        text=True,
        check=False
    )
    if result.returncode != 0:
        # Drop the PV we just wrote so the device is left as we found it
        subprocess.run(["pvremove", "-ff", "-y", device], capture_output=True, text=True, check=False)
        raise VolumeCreateFailed(f"Failed to create volume group: {result.stderr.strip()}")

    result = subprocess.run(
        ["lvcreate", "-y", "-n", lv_name, "-l", "100%FREE", vg_name],
        capture_output=True,
        text=True,
        check=False
    )
    if result.returncode != 0:
        raise VolumeCreateFailed(f"Failed to create logical volume: {result.stderr.strip()}")

    return lv_path


def vg_free_extents(vg_name: str) -> int:
    """
    Raises:
        RuntimeError: If vgs fails or reports garbage
    """
    result = subprocess.run(
        ["vgs", "--noheadings", "--units", "e", "--nosuffix", "-o", "vg_free", vg_name],
        capture_output=True,
        text=True,
        check=False
    )
    if result.returncode != 0:
        raise RuntimeError(f"Failed to query free extents: {result.stderr.strip()}")
    try:
        return int(float(result.stdout.strip()))
    except ValueError:
        raise RuntimeError(f"Unexpected vgs output: {result.stdout.strip()!r}")


def compute_cache_split(free_extents: int) -> CacheSplit:
    """
    Split newly added cache capacity into metadata (10%, rounded down) and data.

    Raises:
        CacheAttachFailed: If the capacity is too small for a metadata extent
    """
    meta = free_extents // CACHE_META_DIVISOR
    if meta < 1:
        raise CacheAttachFailed(
            f"Cache capacity of {free_extents} extents is too small for a cache pool"
        )
    return CacheSplit(meta_extents=meta, data_extents=free_extents - meta)


def is_cached(vg_name: str, lv_name: str) -> bool:
    result = subprocess.run(
        ["lvs", "--noheadings", "-o", "segtype", f"{vg_name}/{lv_name}"],
        capture_output=True,
        text=True,
        check=False
    )
    if result.returncode != 0:
        raise RuntimeError(f"Failed to inspect logical volume: {result.stderr.strip()}")
    return result.stdout.strip() == "cache"


def _lvm(cmd: Sequence[str], failure: str) -> None:
    result = subprocess.run(list(cmd), capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise CacheAttachFailed(f"{failure}: {result.stderr.strip()}")


def attach_cache(vg_name: str, lv_name: str, cache_devices: Sequence[str]) -> CacheSplit:
    """
    Extend the volume group with fast devices and bind them as an LVM cache.

    The data volume is never rolled back when this fails; the pool stays
    usable without a cache.

    Args:
        vg_name: Volume group name
        lv_name: Primary data volume
        cache_devices: Fast devices (NVMe / SSD)

    Returns:
        The metadata/data extent split used

    Raises:
        CacheAttachFailed: If any step fails
    """
    try:
        cached = is_cached(vg_name, lv_name)
    except RuntimeError as e:
        raise CacheAttachFailed(str(e))
    if cached:
        raise CacheAttachFailed(f"Logical volume {vg_name}/{lv_name} already has a cache attached")

    _lvm(["pvcreate", "-y", *cache_devices], "Failed to create PVs on cache devices")
    _lvm(["vgextend", vg_name, *cache_devices], "Failed to extend VG with cache devices")

    try:
        free = vg_free_extents(vg_name)
    except RuntimeError as e:
        raise CacheAttachFailed(str(e))
    split = compute_cache_split(free)

    _lvm(
        ["lvcreate", "-y", "-l", str(split.meta_extents), "-n", CACHE_META_LV, vg_name, *cache_devices],
        "Failed to create cache metadata LV",
    )
    _lvm(
        ["lvcreate", "-y", "-l", str(split.data_extents), "-n", CACHE_DATA_LV, vg_name, *cache_devices],
        "Failed to create cache data LV",
    )
    _lvm(
        [
            "lvconvert", "-y",
            "--type", "cache-pool",
            "--poolmetadata", f"{vg_name}/{CACHE_META_LV}",
            f"{vg_name}/{CACHE_DATA_LV}",
        ],
        "Failed to create cache pool",
    )
    _lvm(
        [
            "lvconvert", "-y",
            "--type", "cache",
            "--cachepool", f"{vg_name}/{CACHE_DATA_LV}",
            f"{vg_name}/{lv_name}",
        ],
        "Failed to attach cache pool",
    )
    return split
