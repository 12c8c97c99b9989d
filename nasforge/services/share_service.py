"""
Share access controller.

Provisions one share for NFS and/or Samba on an already mounted filesystem.
The run is a fixed sequence of steps; each returns a StepOutcome and only a
fatal outcome stops the sequence. Group and directory creation are the only
fatal steps: after the directory exists, every failure is recorded as a
warning so the share can be fixed by hand instead of being left half
provisioned. Re-running with the same arguments rewrites this share's own
entries (export lines by path, share block by name, quota mapping by id).
"""

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Callable, List, Optional

from nasforge.cli.lib.accounts import (
    ensure_group,
    ensure_user,
    generate_password,
    set_samba_password,
    share_group_name,
)
from nasforge.cli.lib.acl import (
    AnonIdentity,
    allow_parent_traversal,
    apply_share_acls,
    resolve_anon_identity,
    set_base_permissions,
)
from nasforge.cli.lib.config import NasForgeConfig, load_config
from nasforge.cli.lib.devices import require_root
from nasforge.cli.lib.exports import render_export_lines, reload_exports, write_exports
from nasforge.cli.lib.filesystem import (
    ACL_CAPABLE,
    PROJECT_QUOTA_OPTIONS,
    MountInfo,
    ensure_fstab_option,
    mount_info,
    read_uuid,
    remount,
)
from nasforge.cli.lib.outcome import ProvisionReport, StepOutcome, StepStatus
from nasforge.cli.lib.quota import project_id_for_path, register_project, set_project_limit, setup_project
from nasforge.cli.lib.samba import render_share, validate_config, write_compat_settings, write_share
from nasforge.cli.lib.state import upsert_share as state_upsert_share
from nasforge.cli.lib.systemd import NFS_UNITS, SAMBA_UNITS, enable_now, is_active, restart
from nasforge.cli.lib.validators import PROTOCOL_NFS, PROTOCOL_SAMBA
from nasforge.models import ShareCreate

logger = logging.getLogger(__name__)

PasswordPrompt = Callable[[str], str]


@dataclass
class ShareContext:
    request: ShareCreate
    cfg: NasForgeConfig
    group: str
    anon: AnonIdentity
    password_prompt: Optional[PasswordPrompt] = None
    mount: Optional[MountInfo] = None

    @property
    def name(self) -> str:
        return self.request.name or ""

    @property
    def path(self) -> str:
        return self.request.path

    @property
    def nfs(self) -> bool:
        return PROTOCOL_NFS in self.request.protocols

    @property
    def samba(self) -> bool:
        return PROTOCOL_SAMBA in self.request.protocols


Step = Callable[[ShareContext, ProvisionReport], StepOutcome]


def _warn(report: ProvisionReport, step: str, message: str) -> None:
    logger.warning(message)
    report.warn(step, message)


def _filesystem(ctx: ShareContext) -> MountInfo:
    if ctx.mount is None:
        ctx.mount = mount_info(ctx.path)
    return ctx.mount


def ensure_share_group(ctx: ShareContext, report: ProvisionReport) -> StepOutcome:
    try:
        created = ensure_group(ctx.group)
    except RuntimeError as e:
        return StepOutcome.fatal("group", str(e))
    return StepOutcome.success("group", f"{'Created' if created else 'Using existing'} group {ctx.group}")


def prepare_directory(ctx: ShareContext, report: ProvisionReport) -> StepOutcome:
    try:
        os.makedirs(ctx.path, exist_ok=True)
    except OSError as e:
        return StepOutcome.fatal("directory", f"Failed to create {ctx.path}: {e}")

    try:
        set_base_permissions(ctx.path, ctx.group)
    except RuntimeError as e:
        _warn(report, "directory", str(e))

    try:
        allow_parent_traversal(ctx.path)
    except RuntimeError as e:
        _warn(report, "directory", str(e))

    return StepOutcome.success("directory", f"Prepared {ctx.path} (root:{ctx.group}, 2770)")


def apply_acls(ctx: ShareContext, report: ProvisionReport) -> StepOutcome:
    if ctx.anon.fallback:
        _warn(report, "acl", f"Anonymous identity not fully resolved, using {ctx.anon.uid}:{ctx.anon.gid}")

    try:
        fstype = _filesystem(ctx).fstype
    except RuntimeError as e:
        return StepOutcome.warning("acl", f"{e}; ACL configuration skipped")

    if fstype != ACL_CAPABLE.value:
        return StepOutcome.warning(
            "acl",
            f"Skipping ACL configuration as filesystem type ({fstype}) is not {ACL_CAPABLE.value}. "
            "NFS/Samba permissions might conflict.",
        )

    if shutil.which("setfacl") is None:
        return StepOutcome.warning("acl", "setfacl command not found, skipping ACL configuration")

    try:
        apply_share_acls(ctx.path, ctx.group, ctx.anon)
    except RuntimeError as e:
        return StepOutcome.warning("acl", str(e))
    return StepOutcome.success("acl", f"Applied access and default ACLs to {ctx.path}")


def configure_nfs(ctx: ShareContext, report: ProvisionReport) -> StepOutcome:
    if not ctx.nfs:
        return StepOutcome.success("nfs", "NFS not requested")

    lines = render_export_lines(ctx.path, ctx.request.cidrs, ctx.anon)
    try:
        write_exports(ctx.cfg.exports_path, ctx.path, lines)
    except OSError as e:
        return StepOutcome.warning("nfs", f"Failed to update {ctx.cfg.exports_path}: {e}")
    report.details["export_lines"] = lines
    return StepOutcome.success("nfs", f"Exported {ctx.path} to {', '.join(ctx.request.cidrs)}")


def configure_samba(ctx: ShareContext, report: ProvisionReport) -> StepOutcome:
    if not ctx.samba:
        return StepOutcome.success("samba", "Samba not requested")

    # [global] goes first so share blocks always land after it
    try:
        write_compat_settings(ctx.cfg.smb_conf, ctx.cfg.smb_conf_dir)
    except OSError as e:
        _warn(report, "samba", f"Failed to write compatibility settings: {e}")

    block = render_share(ctx.name, ctx.path, ctx.group, ctx.request.user)
    try:
        write_share(ctx.cfg.smb_conf, ctx.name, block)
    except OSError as e:
        return StepOutcome.warning("samba", f"Failed to update {ctx.cfg.smb_conf}: {e}")

    return StepOutcome.success("samba", f"Configured Samba share [{ctx.name}] for {ctx.path}")


def ensure_share_user(ctx: ShareContext, report: ProvisionReport) -> StepOutcome:
    user = ctx.request.user
    if not user:
        return StepOutcome.success("user", "No restricted user requested")

    try:
        created = ensure_user(user, ctx.group)
    except RuntimeError as e:
        return StepOutcome.warning("user", str(e))

    if ctx.samba:
        generated = not (ctx.request.interactive and ctx.password_prompt)
        password = generate_password() if generated else ctx.password_prompt(user)
        try:
            set_samba_password(user, password)
        except RuntimeError as e:
            return StepOutcome.warning("user", str(e))
        if generated:
            # Handed back once for display; never stored
            report.details["generated_password"] = password

    action = "Created user" if created else "Added user"
    return StepOutcome.success("user", f"{action} {user} to group {ctx.group}")


def _ensure_project_quota_mount(ctx: ShareContext, report: ProvisionReport, mount: MountInfo) -> MountInfo:
    _warn(report, "quota", f"Filesystem {mount.source} is not mounted with 'prjquota' option. Attempting remount.")
    specs = [mount.source]
    try:
        specs.append(f"UUID={read_uuid(mount.source)}")
    except RuntimeError:
        pass

    try:
        if ensure_fstab_option(ctx.cfg.fstab_path, specs, "prjquota"):
            _warn(report, "quota", f"Added 'prjquota' to fstab for {mount.source}")
    except OSError as e:
        _warn(report, "quota", f"Failed to update {ctx.cfg.fstab_path}: {e}")

    try:
        remount(mount.target)
    except RuntimeError as e:
        _warn(report, "quota", f"{e}. Quota may not apply.")

    ctx.mount = mount_info(ctx.path)
    return ctx.mount


def configure_quota(ctx: ShareContext, report: ProvisionReport) -> StepOutcome:
    quota = ctx.request.quota
    if not quota:
        return StepOutcome.success("quota", "No quota requested")

    if shutil.which("xfs_quota") is None:
        return StepOutcome.warning("quota", "xfs_quota command not found (package xfsprogs?); quota skipped")

    try:
        mount = _filesystem(ctx)
        if mount.fstype != ACL_CAPABLE.value:
            return StepOutcome.warning("quota", f"Filesystem type ({mount.fstype}) is not XFS. Quota skipped.")
        if not mount.has_option(*PROJECT_QUOTA_OPTIONS):
            mount = _ensure_project_quota_mount(ctx, report, mount)
    except RuntimeError as e:
        return StepOutcome.warning("quota", f"{e}; quota skipped")

    if not mount.has_option(*PROJECT_QUOTA_OPTIONS):
        return StepOutcome.warning("quota", "Filesystem not mounted with prjquota, skipping quota setup.")

    project_id = project_id_for_path(ctx.path)
    report.details["project_id"] = project_id
    try:
        register_project(ctx.cfg.projects_path, ctx.cfg.projid_path, project_id, ctx.path, ctx.group)
    except OSError as e:
        return StepOutcome.warning("quota", f"Failed to register project {project_id}: {e}")

    try:
        setup_project(mount.source, ctx.path, project_id)
        set_project_limit(mount.source, project_id, quota)
    except RuntimeError as e:
        return StepOutcome.warning("quota", str(e))
    return StepOutcome.success("quota", f"Applied quota limit {quota} to project {project_id} ({ctx.path})")


def _activate(units: List[str], report: ProvisionReport) -> None:
    try:
        enable_now(units)
    except RuntimeError as e:
        _warn(report, "services", str(e))
    try:
        restart(units)
    except RuntimeError as e:
        _warn(report, "services", str(e))
    for unit in units:
        if not is_active(unit):
            _warn(report, "services", f"Service {unit} is not active")


def activate_services(ctx: ShareContext, report: ProvisionReport) -> StepOutcome:
    activated: List[str] = []
    if ctx.nfs:
        try:
            reload_exports()
        except RuntimeError as e:
            _warn(report, "services", str(e))
        _activate(list(NFS_UNITS), report)
        activated.extend(NFS_UNITS)

    if ctx.samba:
        try:
            validate_config()
        except RuntimeError as e:
            _warn(report, "services", str(e))
        _activate(list(SAMBA_UNITS), report)
        activated.extend(SAMBA_UNITS)

    return StepOutcome.success("services", f"Reloaded {', '.join(activated)}")


SHARE_STEPS: List[Step] = [
    ensure_share_group,
    prepare_directory,
    apply_acls,
    configure_nfs,
    configure_samba,
    ensure_share_user,
    configure_quota,
    activate_services,
]


def provision_share(
    request: ShareCreate,
    cfg: Optional[NasForgeConfig] = None,
    listener: Optional[Callable[[StepOutcome], None]] = None,
    password_prompt: Optional[PasswordPrompt] = None,
) -> ProvisionReport:
    """
    Provision (or re-provision) one share.

    Args:
        request: Validated share request
        cfg: Configuration (default: loaded from disk)
        listener: Called with every outcome as it happens
        password_prompt: Asks the operator for a Samba password (interactive runs)

    Returns:
        Report; `report.fatal` is set if the group or directory could not be created

    Raises:
        PreconditionError: If not running as root
    """
    cfg = cfg or load_config()
    require_root()

    report = ProvisionReport(listener=listener)
    ctx = ShareContext(
        request=request,
        cfg=cfg,
        group=share_group_name(request.name or ""),
        anon=resolve_anon_identity(cfg.anon_fallback_id),
        password_prompt=password_prompt,
    )
    report.details.update({"name": ctx.name, "path": ctx.path, "group": ctx.group})

    for step in SHARE_STEPS:
        outcome = report.add(step(ctx, report))
        if outcome.status == StepStatus.FATAL:
            logger.error("Share %s: %s", ctx.name, outcome.message)
            return report
        logger.info("Share %s: %s", ctx.name, outcome.message)

    try:
        state_upsert_share(
            {
                "name": ctx.name,
                "path": ctx.path,
                "group": ctx.group,
                "protocols": request.protocols,
                "cidrs": request.cidrs,
                "user": request.user,
                "quota": request.quota,
                "project_id": report.details.get("project_id"),
                "warnings": len(report.warnings),
            }
        )
    except OSError as e:
        _warn(report, "state", f"Failed to record share state: {e}")

    return report
