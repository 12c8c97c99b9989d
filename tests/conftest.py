"""
Pytest configuration and fixtures.
"""

import logging
import shutil
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from nasforge.cli.lib.acl import AnonIdentity
from nasforge.cli.lib.config import NasForgeConfig


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep config, state and the action log out of /etc and /var."""
    config_path = tmp_path / "nas-forge.conf"
    config_path.write_text(f"[runtime]\nlog_file = {tmp_path / 'nas-forge.log'}\n", encoding="utf-8")
    monkeypatch.setenv("NASFORGE_CONFIG_PATH", str(config_path))
    monkeypatch.setenv("NASFORGE_STATE_DIR", str(tmp_path / "state"))
    yield tmp_path
    root = logging.getLogger("nasforge")
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.propagate = True


@pytest.fixture
def mock_subprocess():
    """Mock subprocess.run for testing."""
    with patch("subprocess.run") as mock:
        mock.return_value = MagicMock(returncode=0, stdout="", stderr="")
        yield mock


@pytest.fixture
def mock_path_exists():
    """Mock os.path.exists for testing."""
    with patch("os.path.exists") as mock:
        yield mock


@pytest.fixture
def anon():
    """Anonymous identity as resolved on Debian (nobody:nogroup)."""
    return AnonIdentity(uid=65534, gid=65534)


@pytest.fixture
def scratch_config(temp_dir):
    """Config pointing every edited system file into a scratch tree."""
    etc = temp_dir / "etc"
    etc.mkdir()
    return NasForgeConfig(
        mount_point=str(temp_dir / "srv" / "storage"),
        mdadm_conf=str(etc / "mdadm.conf"),
        fstab_path=str(etc / "fstab"),
        pool_info_path=str(etc / "qnap_array_info.txt"),
        exports_path=str(etc / "exports"),
        smb_conf=str(etc / "samba" / "smb.conf"),
        smb_conf_dir=str(etc / "samba" / "smb.conf.d"),
        projects_path=str(etc / "projects"),
        projid_path=str(etc / "projid"),
        state_dir=temp_dir / "state",
        log_file=str(temp_dir / "nas-forge.log"),
    )
