"""
Input validation functions.
"""

import ipaddress
import os
import re
from typing import List

from nasforge.cli.lib.errors import ValidationError

PROTOCOL_NFS = "nfs"
PROTOCOL_SAMBA = "samba"

_QUOTA_RE = re.compile(r"^[1-9][0-9]*[kmgtpe]?$", re.IGNORECASE)

# Section names smb.conf gives a special meaning
RESERVED_SAMBA_SECTIONS = ("global", "homes", "printers")


def validate_name(name: str, samba: bool = False) -> None:
    """
    Validate a share name.

    Args:
        name: Name to validate
        samba: The name will also be used as an smb.conf section

    Raises:
        ValidationError: If name is invalid
    """
    if not name:
        raise ValidationError("Name cannot be empty")

    if len(name) > 64:
        raise ValidationError("Name must be between 1 and 64 characters")

    # Allow alphanumeric, dots, underscores, hyphens
    if not re.match(r"^[a-zA-Z0-9][a-zA-Z0-9._-]*$", name):
        raise ValidationError(
            "Name must start with alphanumeric and contain only alphanumeric, dots, underscores, or hyphens"
        )

    if samba and name.lower() in RESERVED_SAMBA_SECTIONS:
        raise ValidationError(f"Name '{name}' is a reserved Samba section and cannot be used for a share")


def validate_username(username: str) -> None:
    """
    Validate a POSIX user name.

    Raises:
        ValidationError: If the name cannot be used with useradd
    """
    if not re.match(r"^[a-z_][a-z0-9_-]{0,31}$", username):
        raise ValidationError(f"Invalid user name: {username}")


def validate_absolute_path(path: str) -> str:
    """
    Validate and normalize an absolute directory path.

    Returns:
        Normalized path without trailing slash
    """
    if not path or not path.startswith("/"):
        raise ValidationError("Path must be absolute")
    normalized = os.path.normpath(path)
    if normalized == "/":
        raise ValidationError("Refusing to share the root directory")
    if any(c.isspace() for c in normalized):
        raise ValidationError("Path must not contain whitespace")
    return normalized


def validate_cidr(cidr: str) -> str:
    """
    Validate a client network range.

    Args:
        cidr: Network in CIDR notation (e.g., "192.168.1.0/24")

    Returns:
        Canonical network string

    Raises:
        ValidationError: If the range is invalid
    """
    if "/" not in cidr:
        raise ValidationError(f"CIDR must be in format NETWORK/PREFIX: {cidr}")
    try:
        return str(ipaddress.ip_network(cidr.strip(), strict=False))
    except ValueError as e:
        raise ValidationError(f"Invalid CIDR format: {e}")


def parse_cidrs(raw: str) -> List[str]:
    """Split a comma separated CIDR list, validating each entry."""
    cidrs: List[str] = []
    for token in raw.split(","):
        token = token.strip()
        if not token:
            continue
        cidr = validate_cidr(token)
        if cidr not in cidrs:
            cidrs.append(cidr)
    if not cidrs:
        raise ValidationError("At least one client CIDR is required")
    return cidrs


def parse_protocols(raw: str) -> List[str]:
    """
    Parse a protocol list such as "nfs", "samba", "nfs,samba" or "both".

    Returns:
        Ordered list of protocols, NFS first
    """
    tokens = [t.strip().lower() for t in raw.split(",") if t.strip()]
    if not tokens:
        raise ValidationError("At least one protocol is required")

    selected = set()
    for token in tokens:
        if token == "both":
            selected.update({PROTOCOL_NFS, PROTOCOL_SAMBA})
        elif token in (PROTOCOL_NFS, PROTOCOL_SAMBA):
            selected.add(token)
        else:
            raise ValidationError(f"Invalid protocol: {token} (expected nfs, samba or both)")
    return [p for p in (PROTOCOL_NFS, PROTOCOL_SAMBA) if p in selected]


def validate_quota(quota: str) -> str:
    """
    Validate an xfs_quota block limit such as "500g" or "2T".

    Returns:
        Lower-cased limit string
    """
    if not _QUOTA_RE.match(quota.strip()):
        raise ValidationError(f"Invalid quota: {quota} (expected e.g. 500g, 2t)")
    return quota.strip().lower()
