"""
Storage pool builder: devices -> mdadm array -> LVM (+ cache) -> filesystem.

Every stage blocks until its subsystem confirms completion. A fatal error
stops the run and leaves the already completed stages in place.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from nasforge.cli.lib.config import NasForgeConfig, load_config
from nasforge.cli.lib.devices import check_device_list, require_commands, require_root, validate_devices
from nasforge.cli.lib.errors import NotAuthorized
from nasforge.cli.lib.filesystem import FsType, format_device, mount_all, read_uuid, register_mount
from nasforge.cli.lib.lvm import attach_cache, create_data_volume
from nasforge.cli.lib.mdadm import (
    RaidLevel,
    RedundancyGroup,
    array_detail,
    create_array,
    existing_md_devices,
    next_md_device,
    parse_sync_state,
    persist_registry,
    update_initramfs,
    wait_for_sync,
    wipe_device,
)
from nasforge.cli.lib.outcome import ProvisionReport, StepOutcome
from nasforge.cli.lib.state import atomic_write_text
from nasforge.cli.lib.state import upsert_pool as state_upsert_pool
from nasforge.models import PoolCreate

logger = logging.getLogger(__name__)

POOL_COMMANDS = ("mdadm", "lvcreate", "vgcreate", "pvcreate", "lsblk", "blkid", "wipefs")


def _record(report: ProvisionReport, step: str, message: str) -> None:
    logger.info(message)
    report.add(StepOutcome.success(step, message))


def _warn(report: ProvisionReport, step: str, message: str) -> None:
    logger.warning(message)
    report.warn(step, message)


def assemble_array(
    devices: Sequence[str],
    level: RaidLevel,
    cfg: NasForgeConfig,
    report: ProvisionReport,
    extra_wipe: Sequence[str] = (),
) -> RedundancyGroup:
    """
    Wipe the devices, create the array and register it for boot-time assembly.

    Raises:
        AssemblyFailed: If mdadm cannot create the array
    """
    for device in [*devices, *extra_wipe]:
        try:
            wipe_device(device)
        except RuntimeError as e:
            _warn(report, "wipe", str(e))
    _record(report, "wipe", f"Cleared metadata from {', '.join([*devices, *extra_wipe])}")

    md_device = next_md_device(existing_md_devices())
    group = create_array(md_device, level, devices)
    _record(report, "assemble", f"RAID{level.value} array {md_device} created with drives: {' '.join(devices)}")

    if not wait_for_sync(md_device, cfg.sync_timeout):
        _warn(report, "sync", f"mdadm --wait timed out after {cfg.sync_timeout}s; resync continues in the background")

    try:
        group.sync_state = parse_sync_state(array_detail(md_device))
    except RuntimeError as e:
        _warn(report, "sync", str(e))

    try:
        persist_registry(cfg.mdadm_conf)
        _record(report, "registry", f"Saved mdadm configuration to {cfg.mdadm_conf}")
    except RuntimeError as e:
        _warn(report, "registry", f"Failed to update mdadm.conf: {e}")

    try:
        update_initramfs()
    except RuntimeError as e:
        _warn(report, "registry", str(e))

    return group


def write_pool_summary(
    cfg: NasForgeConfig, group: RedundancyGroup, lv_path: str, uuid: str, fs_type: FsType, cached: bool
) -> None:
    """
    Write the operator-facing pool descriptor and the JSON pool record.

    Raises:
        RuntimeError: If the array detail cannot be read
        OSError: If the descriptor cannot be written
    """
    header = [
        "# Storage pool built by nas-forge",
        f"# Generated: {datetime.now(timezone.utc).isoformat()}",
        f"# Array: {group.device} (RAID{group.level.value}, {group.sync_state.value})",
        f"# Volume: {lv_path} ({fs_type.value}, UUID={uuid}, cache={'yes' if cached else 'no'})",
        f"# Mount point: {cfg.mount_point}",
        "",
    ]
    atomic_write_text(cfg.pool_info_path, "\n".join(header) + array_detail(group.device))
    state_upsert_pool(
        {
            "name": cfg.vg_name,
            "array": group.device,
            "level": group.level.value,
            "members": group.members,
            "sync_state": group.sync_state.value,
            "lv_path": lv_path,
            "fs_type": fs_type.value,
            "uuid": uuid,
            "mount_point": cfg.mount_point,
            "cache": cached,
        }
    )


def build_pool(
    request: PoolCreate,
    cfg: Optional[NasForgeConfig] = None,
    listener: Optional[Callable[[StepOutcome], None]] = None,
) -> ProvisionReport:
    """
    Build the storage pool.

    Args:
        request: Validated pool request
        cfg: Configuration (default: loaded from disk)
        listener: Called with every outcome as it happens

    Returns:
        Report with the step outcomes and pool details

    Raises:
        ValidationError: Bad input, before any mutation
        PreconditionError: Not root, missing tools, devices in use, not authorized
        ProvisioningError: A subsystem failed; earlier stages stay in place
    """
    cfg = cfg or load_config()
    report = ProvisionReport(listener=listener)

    check_device_list(request.data_devices, request.raid_level, request.cache_devices)
    require_root()
    require_commands([*POOL_COMMANDS, f"mkfs.{request.fs_type.value}"])

    devices = validate_devices(
        request.data_devices,
        request.raid_level,
        request.cache_devices,
        allow_reuse=request.authorized,
    )
    _record(
        report,
        "validate",
        "Validated drives: " + ", ".join(f"{d.path} ({d.kind})" for d in devices),
    )

    if not request.authorized:
        raise NotAuthorized("Erasing the selected drives was not confirmed (use --force for non-interactive runs)")

    group = assemble_array(request.data_devices, request.raid_level, cfg, report, extra_wipe=request.cache_devices)
    report.details["array"] = group.device

    lv_path = create_data_volume(group.device, cfg.vg_name, cfg.lv_name)
    _record(report, "volume", f"Created logical volume {lv_path} on {group.device}")
    report.details["lv_path"] = lv_path

    cached = False
    if request.cache_devices:
        split = attach_cache(cfg.vg_name, cfg.lv_name, request.cache_devices)
        cached = True
        _record(
            report,
            "cache",
            f"Attached cache pool ({split.meta_extents} metadata + {split.data_extents} data extents) to {lv_path}",
        )

    format_device(lv_path, request.fs_type)
    uuid = read_uuid(lv_path)
    _record(report, "format", f"Created {request.fs_type.value} filesystem on {lv_path} (UUID={uuid})")
    report.details["uuid"] = uuid

    register_mount(cfg.fstab_path, uuid, cfg.mount_point, request.fs_type)
    mount_all()
    _record(report, "mount", f"Storage is ready and mounted at {cfg.mount_point}")
    report.details["mount_point"] = cfg.mount_point

    try:
        write_pool_summary(cfg, group, lv_path, uuid, request.fs_type, cached)
        _record(report, "summary", f"Pool summary written to {cfg.pool_info_path}")
    except (OSError, RuntimeError) as e:
        _warn(report, "summary", f"Failed to write pool summary: {e}")

    return report
