"""
NAS Forge - build a redundant storage pool and share it over NFS and Samba.

This package provides the CLI tool and the two provisioning pipelines: the
storage pool builder (mdadm, LVM, optional LVM cache, filesystem) and the
share access controller (POSIX ACLs, NFS exports, Samba shares, XFS project
quotas).
"""

__version__ = "0.1.0"
__all__ = ["cli", "services"]
