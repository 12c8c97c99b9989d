"""
Local persistent state store for NAS Forge.

Holds the informational pool and share records written after every run, and
the atomic rewrite helper shared by the config file editors.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from nasforge.cli.lib.config import load_config


def get_state_dir() -> Path:
    """
    Resolve the directory used for persistent state.

    Priority:
    1) `NASFORGE_STATE_DIR` env var, if set
    2) `state_dir` from the config file
    3) `/var/lib/nas-forge` if writable
    4) `$XDG_STATE_HOME/nas-forge` or `~/.local/state/nas-forge` as fallback
    """
    env = os.environ.get("NASFORGE_STATE_DIR")
    if env:
        return Path(env)

    cfg = load_config()
    if cfg.state_dir:
        return cfg.state_dir

    candidates: list[Path] = [Path("/var/lib/nas-forge")]
    xdg_state_home = os.environ.get("XDG_STATE_HOME")
    if xdg_state_home:
        candidates.append(Path(xdg_state_home) / "nas-forge")
    else:
        candidates.append(Path.home() / ".local" / "state" / "nas-forge")

    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            probe = candidate / ".write_test"
            probe.write_text("ok", encoding="utf-8")
            probe.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue

    return Path(".nas-forge-state")


def _pools_file() -> Path:
    return get_state_dir() / "pools.json"


def _shares_file() -> Path:
    return get_state_dir() / "shares.json"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _load_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    with open(path, "r", encoding="utf-8") as file:
        return json.load(file)


def atomic_write_text(path: Union[str, Path], content: str, mode: Optional[int] = None) -> None:
    """Write `content` to `path` through a temp file and rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if mode is None and path.exists():
        mode = path.stat().st_mode & 0o7777
    tmp_fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as file:
            file.write(content)
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass


def read_text(path: Union[str, Path]) -> str:
    """Return the file content, or an empty string if it does not exist."""
    path = Path(path)
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8")


def _atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True) + "\n")


def list_pools(name: Optional[str] = None) -> List[Dict[str, Any]]:
    pools = _load_json(_pools_file(), {"items": []}).get("items", [])
    if name:
        pools = [p for p in pools if p.get("name") == name]
    return pools


def upsert_pool(pool: Dict[str, Any]) -> None:
    data = _load_json(_pools_file(), {"items": []})
    items = data.get("items", [])
    items = [i for i in items if i.get("name") != pool.get("name")]
    if "created_at" not in pool:
        pool["created_at"] = _utc_now_iso()
    items.append(pool)
    data["items"] = sorted(items, key=lambda x: x.get("name", ""))
    _atomic_write_json(_pools_file(), data)


def list_shares(name: Optional[str] = None) -> List[Dict[str, Any]]:
    shares = _load_json(_shares_file(), {"items": []}).get("items", [])
    if name:
        shares = [s for s in shares if s.get("name") == name]
    return shares


def upsert_share(share: Dict[str, Any]) -> None:
    data = _load_json(_shares_file(), {"items": []})
    items = data.get("items", [])
    items = [i for i in items if i.get("name") != share.get("name")]
    share["updated_at"] = _utc_now_iso()
    items.append(share)
    data["items"] = sorted(items, key=lambda x: x.get("name", ""))
    _atomic_write_json(_shares_file(), data)

