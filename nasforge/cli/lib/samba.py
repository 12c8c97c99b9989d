"""
Samba share definition management functions.
"""

import subprocess
from pathlib import Path
from typing import List, Optional

from jinja2 import Template

from nasforge.cli.lib.state import atomic_write_text, read_text

SHARE_TEMPLATE = """# Share definition added by nas-forge
[{{ name }}]
   path = {{ path }}
   browseable = yes
   comment = {{ name }} Share
   valid users = @{{ group }}{% if user %} {{ user }}{% endif %}
   guest ok = no
   read only = no
   force group = {{ group }}
   create mask = 0660
   directory mask = 0770
   vfs objects = acl_xattr
"""

COMPAT_FILE_NAME = "zz_compatibility_settings.conf"

COMPAT_SETTINGS = """# Settings added by nas-forge
client min protocol = SMB2_10
server min protocol = SMB2_10
client use spnego = yes
server signing = mandatory
log level = 1
"""

MANAGED_COMMENT = "# Share definition added by nas-forge"


def render_share(name: str, path: str, group: str, user: Optional[str] = None) -> str:
    """
    Render a share definition block.

    Args:
        name: Share name (section header)
        path: Shared directory
        group: Owning group; its members are the valid users
        user: Optional extra user allowed on the share

    Returns:
        The block text, newline terminated
    """
    return Template(SHARE_TEMPLATE, keep_trailing_newline=True).render(
        name=name, path=path, group=group, user=user
    )


def _is_section_header(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith("[") and stripped.endswith("]")


def _leading_comments(skipped: List[str], keep_blank: bool) -> List[str]:
    # Trailing run of comment/blank lines, i.e. the lead-in of the next header
    start = len(skipped)
    while start > 0 and (not skipped[start - 1].strip() or skipped[start - 1].lstrip().startswith(("#", ";"))):
        start -= 1
    tail = skipped[start:]
    if not keep_blank:
        while tail and not tail[0].strip():
            tail.pop(0)
    return tail


def remove_share(text: str, name: str) -> str:
    """
    Remove the section `[name]` (up to the next section header).

    The managed comment line directly above the section goes with it.
    Comment and blank lines directly above the next header belong to the
    next section and are kept.
    """
    header = f"[{name}]"
    lines = text.splitlines()
    kept: List[str] = []
    skipped: List[str] = []
    skipping = False
    for line in lines:
        if line.strip() == header:
            skipping = True
            skipped = []
            if kept and kept[-1].strip() == MANAGED_COMMENT:
                kept.pop()
            continue
        if skipping and _is_section_header(line):
            skipping = False
            kept.extend(_leading_comments(skipped, keep_blank=bool(kept) and bool(kept[-1].strip())))
        if skipping:
            skipped.append(line)
        else:
            kept.append(line)
    while kept and not kept[-1].strip():
        kept.pop()
    return "\n".join(kept) + "\n" if kept else ""


def upsert_share(text: str, name: str, block: str) -> str:
    """Replace any existing `[name]` section with `block`, appended at the end."""
    remaining = remove_share(text, name)
    if remaining:
        return remaining + "\n" + block
    return block


def count_sections(text: str, name: str) -> int:
    header = f"[{name}]"
    return sum(1 for line in text.splitlines() if line.strip() == header)


def ensure_global_include(text: str, include_dir: str) -> str:
    """
    Make sure `[global]` exists and includes `<include_dir>/*.conf`.
    """
    include = f"include = {include_dir.rstrip('/')}/*.conf"
    lines = [line for line in text.splitlines() if line.strip() != include]

    for index, line in enumerate(lines):
        if line.strip() == "[global]":
            lines.insert(index + 1, include)
            return "\n".join(lines) + "\n"

    prefix = "\n".join(lines) + "\n\n" if lines else ""
    return prefix + "[global]\n" + include + "\n"


def write_share(smb_conf: str, name: str, block: str) -> None:
    """
    Raises:
        OSError: If smb.conf cannot be written
    """
    atomic_write_text(smb_conf, upsert_share(read_text(smb_conf), name, block))


def write_compat_settings(smb_conf: str, conf_dir: str) -> Path:
    """
    Install the protocol hardening include and wire it into `[global]`.

    Returns:
        Path of the compatibility settings file
    """
    atomic_write_text(smb_conf, ensure_global_include(read_text(smb_conf), conf_dir))
    compat_path = Path(conf_dir) / COMPAT_FILE_NAME
    atomic_write_text(compat_path, COMPAT_SETTINGS)
    return compat_path


def validate_config() -> None:
    """
    Check smb.conf syntax with testparm.

    Raises:
        RuntimeError: If testparm reports a problem
    """
    result = subprocess.run(["testparm", "-s"], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"testparm reported issues with Samba configuration: {result.stderr.strip()}")
