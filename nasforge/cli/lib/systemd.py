"""
systemd unit management functions.
"""

import subprocess
from typing import Sequence

NFS_UNITS = ("nfs-server",)
SAMBA_UNITS = ("smbd", "nmbd")


def _systemctl(action: Sequence[str], units: Sequence[str]) -> None:
    result = subprocess.run(
        ["systemctl", *action, *units],
        capture_output=True,
        text=True,
        check=False
    )

    if result.returncode != 0:
        raise RuntimeError(f"Failed to {' '.join(action)} {' '.join(units)}: {result.stderr.strip()}")


def enable_now(units: Sequence[str]) -> None:
    """
    Enable and start systemd units.

    Args:
        units: Unit names (e.g., ["smbd", "nmbd"])

    Raises:
        RuntimeError: If systemctl fails
    """
    _systemctl(["enable", "--now"], units)


def restart(units: Sequence[str]) -> None:
    """
    Restart systemd units.

    Raises:
        RuntimeError: If systemctl fails
    """
    _systemctl(["restart"], units)


def is_active(unit_name: str) -> bool:
    """
    Check if a systemd unit is active.

    Args:
        unit_name: Unit name

    Returns:
        True if unit is active, False otherwise
    """
    result = subprocess.run(
        ["systemctl", "is-active", unit_name],
        capture_output=True,
        text=True,
        check=False
    )

    return result.returncode == 0
