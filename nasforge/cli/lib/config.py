"""
Configuration loader for NAS Forge.

Every system path the pipelines touch (mdadm registry, fstab, exports table,
smb.conf, project quota files) is configurable so that the pipelines can be
pointed at a scratch tree instead of /etc.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_CONFIG_PATH = Path("/etc/nas-forge/nas-forge.conf")


@dataclass(frozen=True)
class NasForgeConfig:
    # [pool]
    vg_name: str = "qnap-vg"
    lv_name: str = "qnap-data"
    mount_point: str = "/srv/storage"
    mdadm_conf: str = "/etc/mdadm.conf"
    fstab_path: str = "/etc/fstab"
    pool_info_path: str = "/etc/qnap_array_info.txt"
    sync_timeout: int = 60
    # [shares]
    exports_path: str = "/etc/exports"
    smb_conf: str = "/etc/samba/smb.conf"
    smb_conf_dir: str = "/etc/samba/smb.conf.d"
    projects_path: str = "/etc/projects"
    projid_path: str = "/etc/projid"
    default_cidr: str = "10.10.50.0/23"
    anon_fallback_id: int = 65534
    # [runtime]
    state_dir: Optional[Path] = None
    log_file: str = "/var/log/nas-forge.log"


def _config_path() -> Path:
    env = os.environ.get("NASFORGE_CONFIG_PATH")
    if env:
        return Path(env)
    return DEFAULT_CONFIG_PATH


def _read_ini(path: Path) -> configparser.ConfigParser:
    parser = configparser.ConfigParser()
    if path.exists():
        parser.read(path, encoding="utf-8")
    return parser


def load_config() -> NasForgeConfig:
    """
    Load config from `NASFORGE_CONFIG_PATH` or `/etc/nas-forge/nas-forge.conf`.

    Missing files and missing keys are not an error; defaults are returned.
    """
    parser = _read_ini(_config_path())
    defaults = NasForgeConfig()

    def _section(name: str) -> object:
        return parser[name] if parser.has_section(name) else {}

    def _get(section: object, key: str, default: str) -> str:
        if isinstance(section, dict):
            return str(section.get(key, default)).strip()
        return str(section.get(key, fallback=default)).strip()

    def _get_int(section: object, key: str, default: int) -> int:
        raw = _get(section, key, str(default))
        try:
            return int(raw)
        except ValueError:
            return default

    pool = _section("pool")
    shares = _section("shares")
    runtime = _section("runtime")

    state_dir_raw = _get(runtime, "state_dir", "")
    state_dir = Path(state_dir_raw) if state_dir_raw else None

    return NasForgeConfig(
        vg_name=_get(pool, "vg_name", defaults.vg_name),
        lv_name=_get(pool, "lv_name", defaults.lv_name),
        mount_point=_get(pool, "mount_point", defaults.mount_point),
        mdadm_conf=_get(pool, "mdadm_conf", defaults.mdadm_conf),
        fstab_path=_get(pool, "fstab_path", defaults.fstab_path),
        pool_info_path=_get(pool, "pool_info_path", defaults.pool_info_path),
        sync_timeout=_get_int(pool, "sync_timeout", defaults.sync_timeout),
        exports_path=_get(shares, "exports_path", defaults.exports_path),
        smb_conf=_get(shares, "smb_conf", defaults.smb_conf),
        smb_conf_dir=_get(shares, "smb_conf_dir", defaults.smb_conf_dir),
        projects_path=_get(shares, "projects_path", defaults.projects_path),
        projid_path=_get(shares, "projid_path", defaults.projid_path),
        default_cidr=_get(shares, "default_cidr", defaults.default_cidr),
        anon_fallback_id=_get_int(shares, "anon_fallback_id", defaults.anon_fallback_id),
        state_dir=state_dir,
        log_file=_get(runtime, "log_file", defaults.log_file),
    )
