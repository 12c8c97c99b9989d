"""
POSIX ACL reconciliation between NFS anonymous squash and Samba group access.

NFS clients are squashed to the anonymous identity while Samba users act as
members of the share group. Both identities get rwx on the share root and the
same entries are installed as the default ACL, so anything created through one
protocol stays writable through the other.
"""

import grp
import logging
import os
import pwd
import subprocess
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

ANON_USER = "nobody"
ANON_GROUPS = ("nogroup", "nobody")


@dataclass(frozen=True)
class AnonIdentity:
    uid: int
    gid: int
    fallback: bool = False


def resolve_anon_identity(fallback_id: int = 65534) -> AnonIdentity:
    """
    Resolve the uid/gid NFS squashes remote users to.

    Tries user `nobody`, then group `nogroup`, the group `nobody` and the
    primary group of user `nobody`; anything unresolved uses `fallback_id`.
    """
    fallback = False
    try:
        nobody = pwd.getpwnam(ANON_USER)
        uid = nobody.pw_uid
        primary_gid = nobody.pw_gid
    except KeyError:
        logger.warning("User '%s' not found, using %d", ANON_USER, fallback_id)
        uid = fallback_id
        primary_gid = None
        fallback = True

    gid = None
    for name in ANON_GROUPS:
        try:
            gid = grp.getgrnam(name).gr_gid
            break
        except KeyError:
            continue
    if gid is None:
        gid = primary_gid
    if gid is None:
        logger.warning("Group 'nogroup' or 'nobody' not found, using %d", fallback_id)
        gid = fallback_id
        fallback = True

    return AnonIdentity(uid=uid, gid=gid, fallback=fallback)


def access_acl_entries(anon: AnonIdentity) -> List[str]:
    return [f"u:{anon.uid}:rwx", f"g:{anon.gid}:rwx"]


def default_acl_entries(anon: AnonIdentity, group: str) -> List[str]:
    return [
        "u::rwx",
        "g::rwx",
        f"u:{anon.uid}:rwx",
        f"g:{anon.gid}:rwx",
        f"g:{group}:rwx",
        "m::rwx",
        "o::0",
    ]


def set_acl(path: str, entries: List[str], default: bool = False) -> None:
    """
    Raises:
        RuntimeError: If setfacl fails
    """
    cmd = ["setfacl"]
    if default:
        cmd.append("-d")
    cmd.extend(["-m", ",".join(entries), path])
    result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    if result.returncode != 0:
        kind = "default ACLs" if default else "ACLs"
        raise RuntimeError(f"Failed to set {kind} on {path}: {result.stderr.strip()}")


def apply_share_acls(path: str, group: str, anon: AnonIdentity) -> None:
    """
    Grant the anonymous identity rwx and install the inherited default ACL.

    Raises:
        RuntimeError: If either setfacl call fails
    """
    set_acl(path, access_acl_entries(anon))
    set_acl(path, default_acl_entries(anon, group), default=True)


def set_base_permissions(path: str, group: str) -> None:
    """
    Set root:<group> ownership and mode 2770 on the share root.

    Raises:
        RuntimeError: If chown or chmod fails
    """
    try:
        gid = grp.getgrnam(group).gr_gid
        os.chown(path, 0, gid)
    except (KeyError, OSError) as e:
        raise RuntimeError(f"Failed to change group ownership for {path} to {group}: {e}")
    try:
        os.chmod(path, 0o2770)
    except OSError as e:
        raise RuntimeError(f"Failed to set base permissions (2770) for {path}: {e}")


def allow_parent_traversal(path: str) -> None:
    """
    Add o+x to the parent directory so the share root is reachable.

    Raises:
        RuntimeError: If chmod fails
    """
    parent = os.path.dirname(path.rstrip("/")) or "/"
    try:
        mode = os.stat(parent).st_mode
        os.chmod(parent, (mode & 0o7777) | 0o001)
    except OSError as e:
        raise RuntimeError(f"Failed to allow traversal into {parent}: {e}")
