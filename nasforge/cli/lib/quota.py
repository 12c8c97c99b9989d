"""
XFS project quota management functions.
"""

import hashlib
import subprocess
from typing import List

from nasforge.cli.lib.state import atomic_write_text, read_text

PROJECT_ID_HEX_WIDTH = 8
# xfs project ids are 32-bit; 0 is the default project
_MAX_PROJECT_ID = 0x7FFFFFFF


def project_id_for_path(path: str) -> int:
    """
    Derive a stable numeric project id from the share path.

    The id is the first 8 hex digits of the path's MD5, folded into the
    positive 31-bit range. The same path always yields the same id.
    """
    digest = hashlib.md5(path.encode("utf-8")).hexdigest()[:PROJECT_ID_HEX_WIDTH]
    project_id = int(digest, 16) & _MAX_PROJECT_ID
    return project_id or 1


def upsert_projects(text: str, project_id: int, path: str) -> str:
    """
    Return /etc/projects content with one `<id>:<path>` entry for the share.

    Entries for the same path or the same id are replaced.
    """
    kept: List[str] = []
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if sep and (key.strip() == str(project_id) or value.strip() == path):
            continue
        kept.append(line)
    kept.append(f"{project_id}:{path}")
    return "\n".join(kept) + "\n"


def upsert_projid(text: str, name: str, project_id: int) -> str:
    """
    Return /etc/projid content with one `<name>:<id>` entry.

    Entries for the same name or the same id are replaced.
    """
    kept: List[str] = []
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if sep and (value.strip() == str(project_id) or key.strip() == name):
            continue
        kept.append(line)
    kept.append(f"{name}:{project_id}")
    return "\n".join(kept) + "\n"


def register_project(projects_path: str, projid_path: str, project_id: int, path: str, name: str) -> None:
    """
    Record the path<->id and name<->id mappings.

    Raises:
        OSError: If either mapping file cannot be written
    """
    atomic_write_text(projects_path, upsert_projects(read_text(projects_path), project_id, path))
    atomic_write_text(projid_path, upsert_projid(read_text(projid_path), name, project_id))


def _xfs_quota(command: str, device: str, failure: str) -> None:
    result = subprocess.run(
        ["xfs_quota", "-x", "-c", command, device],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise RuntimeError(f"{failure}: {result.stderr.strip()}")


def setup_project(device: str, path: str, project_id: int) -> None:
    """
    Raises:
        RuntimeError: If xfs_quota fails
    """
    _xfs_quota(f"project -s -p {path} {project_id}", device, f"Failed to setup project quota for {path}")


def set_project_limit(device: str, project_id: int, limit: str) -> None:
    """
    Set the hard block limit of a project (e.g. "500g").

    Raises:
        RuntimeError: If xfs_quota fails
    """
    _xfs_quota(f"limit -p bhard={limit} {project_id}", device, f"Failed to apply quota limit for project {project_id}")
