"""
Unit tests for systemd module.
"""

from unittest.mock import MagicMock

import pytest

from nasforge.cli.lib.systemd import SAMBA_UNITS, enable_now, is_active, restart


class TestSystemd:
    """Tests for systemctl wrappers."""

    @pytest.mark.unit
    def test_enable_now(self, mock_subprocess):
        enable_now(SAMBA_UNITS)
        mock_subprocess.assert_called_once_with(
            ["systemctl", "enable", "--now", "smbd", "nmbd"], capture_output=True, text=True, check=False
        )

    @pytest.mark.unit
    def test_restart_failure(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(returncode=5, stderr="Unit nfs-server.service not found.")
        with pytest.raises(RuntimeError, match="Failed to restart nfs-server"):
            restart(["nfs-server"])

    @pytest.mark.unit
    def test_is_active(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(returncode=3)
        assert is_active("smbd") is False
