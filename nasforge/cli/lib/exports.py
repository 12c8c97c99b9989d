"""
Kernel NFS server export table management functions.
"""

import subprocess
from typing import List, Sequence

from jinja2 import Template

from nasforge.cli.lib.acl import AnonIdentity
from nasforge.cli.lib.state import atomic_write_text, read_text

# One line per allowed client range
EXPORT_LINE_TEMPLATE = "{{ path }} {{ client }}({{ options | join(',') }})"


def export_options(anon: AnonIdentity) -> List[str]:
    """Options squashing every remote identity to the anonymous uid/gid."""
    return [
        "rw",
        "sync",
        "no_subtree_check",
        "all_squash",
        f"anonuid={anon.uid}",
        f"anongid={anon.gid}",
        "sec=sys",
    ]


def render_export_lines(path: str, clients: Sequence[str], anon: AnonIdentity) -> List[str]:
    """
    Render the export lines for a share.

    Args:
        path: Exported directory
        clients: Allowed client CIDRs
        anon: Anonymous identity for all_squash

    Returns:
        List of /etc/exports lines
    """
    template = Template(EXPORT_LINE_TEMPLATE)
    options = export_options(anon)
    return [template.render(path=path, client=client, options=options) for client in clients]


def replace_exports(text: str, path: str, new_lines: Sequence[str]) -> str:
    """
    Drop every export line for exactly `path` and append `new_lines`.
    """
    kept = []
    for line in text.splitlines():
        fields = line.split()
        if fields and fields[0] == path:
            continue
        kept.append(line)
    while kept and not kept[-1].strip():
        kept.pop()
    return "\n".join(kept + list(new_lines)) + "\n"


def write_exports(exports_path: str, path: str, new_lines: Sequence[str]) -> None:
    """
    Replace the export lines of `path` in the export table.

    Raises:
        OSError: If the export table cannot be written
    """
    atomic_write_text(exports_path, replace_exports(read_text(exports_path), path, new_lines))


def list_export_lines(exports_path: str, path: str) -> List[str]:
    return [
        line for line in read_text(exports_path).splitlines()
        if line.split() and line.split()[0] == path
    ]


def reload_exports() -> None:
    """
    Re-export everything in the export table.

    Raises:
        RuntimeError: If exportfs fails
    """
    result = subprocess.run(["exportfs", "-ra"], capture_output=True, text=True, check=False)
    if result.returncode != 0:
        raise RuntimeError(f"exportfs command failed: {result.stderr.strip()}")
