"""
Local group, user and Samba credential management functions.
"""

import grp
import pwd
import secrets
import subprocess

NOLOGIN_SHELL = "/usr/sbin/nologin"


def share_group_name(share_name: str) -> str:
    return f"share_{share_name}"


def group_exists(group: str) -> bool:
    try:
        grp.getgrnam(group)
        return True
    except KeyError:
        return False


def user_exists(username: str) -> bool:
    try:
        pwd.getpwnam(username)
        return True
    except KeyError:
        return False


def ensure_group(group: str) -> bool:
    """
    Create a system group if it doesn't exist.

    Returns:
        True if the group was created

    Raises:
        RuntimeError: If groupadd fails
    """
    if group_exists(group):
        return False
    result = subprocess.run(["groupadd", group], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"Failed to create group {group}: {result.stderr.strip()}")
    return True


def ensure_user(username: str, group: str) -> bool:
    """
    Create a no-login user with `group` as primary group, or add an existing
    user to `group`.

    Returns:
        True if the user was created

    Raises:
        RuntimeError: If useradd/usermod fails
    """
    if not user_exists(username):
        result = subprocess.run(
            ["useradd", "-M", "-s", NOLOGIN_SHELL, "-g", group, username],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise RuntimeError(f"Failed to create user {username}: {result.stderr.strip()}")
        return True

    result = subprocess.run(["usermod", "-a", "-G", group, username], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"Failed to add user {username} to group {group}: {result.stderr.strip()}")
    return False


def generate_password(length: int = 16) -> str:
    return secrets.token_urlsafe(length)[:length]


def set_samba_password(username: str, password: str) -> None:
    """
    Add the user to the Samba password database with the given password.

    The password goes through stdin only; it is never written anywhere.

    Raises:
        RuntimeError: If smbpasswd fails
    """
    result = subprocess.run(
        ["smbpasswd", "-s", "-a", username],
        input=f"{password}\n{password}\n",
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise RuntimeError(f"Failed to set Samba password for {username}: {result.stderr.strip()}")
