"""
Unit tests for devices module.
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from nasforge.cli.lib.devices import (
    BlockDevice,
    check_device_list,
    list_block_devices,
    require_commands,
    require_root,
    validate_devices,
)
from nasforge.cli.lib.errors import (
    DeviceInUse,
    DeviceNotFound,
    InsufficientDevices,
    MissingCommand,
    NotAuthorized,
    ValidationError,
)
from nasforge.cli.lib.mdadm import RaidLevel


def _lsblk_output(*entries):
    return MagicMock(returncode=0, stdout=json.dumps({"blockdevices": list(entries)}), stderr="")


def _disk(name, rota=True, mountpoint=None, size=4000787030016, model="WDC WD40EFRX"):
    return {
        "name": name,
        "path": f"/dev/{name}",
        "size": size,
        "rota": rota,
        "model": model,
        "mountpoint": mountpoint,
        "type": "disk",
    }


class TestCheckDeviceList:
    """Tests for check_device_list function."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "level,count",
        [
            (RaidLevel.STRIPED, 2),
            (RaidLevel.MIRRORED, 2),
            (RaidLevel.PARITY_SINGLE, 3),
            (RaidLevel.PARITY_DUAL, 4),
            (RaidLevel.MIRRORED_STRIPED, 4),
        ],
    )
    def test_minimum_is_accepted(self, level, count):
        check_device_list([f"/dev/sd{c}" for c in "bcde"[:count]], level)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "level,count,minimum",
        [
            (RaidLevel.MIRRORED, 1, 2),
            (RaidLevel.PARITY_SINGLE, 2, 3),
            (RaidLevel.PARITY_DUAL, 3, 4),
            (RaidLevel.MIRRORED_STRIPED, 3, 4),
        ],
    )
    def test_below_minimum(self, level, count, minimum):
        devices = [f"/dev/sd{c}" for c in "bcd"[:count]]
        with pytest.raises(InsufficientDevices) as exc:
            check_device_list(devices, level)
        assert str(exc.value) == (
            f"RAID {level.value} requires at least {minimum} drives, but only {count} provided"
        )

    @pytest.mark.unit
    def test_no_devices(self):
        with pytest.raises(InsufficientDevices, match="No data drives"):
            check_device_list([], RaidLevel.STRIPED)

    @pytest.mark.unit
    def test_duplicate_device(self):
        with pytest.raises(ValidationError, match="listed twice"):
            check_device_list(["/dev/sdb", "/dev/sdb"], RaidLevel.MIRRORED)

    @pytest.mark.unit
    def test_data_and_cache_overlap(self):
        with pytest.raises(ValidationError, match="both data and cache: /dev/sdc"):
            check_device_list(["/dev/sdb", "/dev/sdc"], RaidLevel.MIRRORED, ["/dev/sdc"])


class TestValidateDevices:
    """Tests for validate_devices function."""

    @pytest.mark.unit
    @patch("nasforge.cli.lib.devices.is_block_device", return_value=True)
    def test_unused_devices(self, mock_is_block, mock_subprocess):
        mock_subprocess.side_effect = [
            _lsblk_output(_disk("sdb")),
            MagicMock(returncode=2, stdout="", stderr=""),  # blkid -p: no signature
            _lsblk_output(_disk("sdc", rota=False, model="Samsung SSD")),
            MagicMock(returncode=2, stdout="", stderr=""),
        ]

        devices = validate_devices(["/dev/sdb", "/dev/sdc"], RaidLevel.MIRRORED)

        assert [d.path for d in devices] == ["/dev/sdb", "/dev/sdc"]
        assert [d.kind for d in devices] == ["HDD", "SSD"]
        assert not any(d.in_use for d in devices)

    @pytest.mark.unit
    @patch("nasforge.cli.lib.devices.is_block_device", return_value=False)
    def test_missing_device(self, mock_is_block, mock_subprocess):
        with pytest.raises(DeviceNotFound, match="/dev/sdz does not exist"):
            validate_devices(["/dev/sdz", "/dev/sdy"], RaidLevel.MIRRORED)
        mock_subprocess.assert_not_called()

    @pytest.mark.unit
    @patch("nasforge.cli.lib.devices.is_block_device", return_value=True)
    def test_device_with_signature_refused(self, mock_is_block, mock_subprocess):
        mock_subprocess.side_effect = [
            _lsblk_output(_disk("sdb")),
            MagicMock(returncode=0, stdout='/dev/sdb: TYPE="linux_raid_member"\n', stderr=""),
            _lsblk_output(_disk("sdc")),
            MagicMock(returncode=2, stdout="", stderr=""),
        ]

        with pytest.raises(DeviceInUse, match="/dev/sdb"):
            validate_devices(["/dev/sdb", "/dev/sdc"], RaidLevel.MIRRORED)

    @pytest.mark.unit
    @patch("nasforge.cli.lib.devices.is_block_device", return_value=True)
    def test_mounted_device_allowed_when_authorized(self, mock_is_block, mock_subprocess):
        mock_subprocess.side_effect = [
            _lsblk_output(_disk("sdb", mountpoint="/mnt/old")),
            MagicMock(returncode=2, stdout="", stderr=""),
            _lsblk_output(_disk("sdc")),
            MagicMock(returncode=2, stdout="", stderr=""),
        ]

        devices = validate_devices(["/dev/sdb", "/dev/sdc"], RaidLevel.MIRRORED, allow_reuse=True)

        assert devices[0].in_use is True

    @pytest.mark.unit
    def test_insufficient_devices_checked_before_inspection(self, mock_subprocess):
        with pytest.raises(InsufficientDevices):
            validate_devices(["/dev/sdb"], RaidLevel.PARITY_SINGLE)
        mock_subprocess.assert_not_called()


class TestListBlockDevices:
    """Tests for list_block_devices function."""

    @pytest.mark.unit
    def test_lists_disks_only(self, mock_subprocess):
        loop = _disk("loop0")
        loop["type"] = "loop"
        mock_subprocess.return_value = _lsblk_output(
            _disk("sda", mountpoint="/"), _disk("nvme0n1", rota=False, model="Samsung 980"), loop
        )

        devices = list_block_devices()

        assert devices == [
            BlockDevice("/dev/sda", 4000787030016, True, "WDC WD40EFRX", True),
            BlockDevice("/dev/nvme0n1", 4000787030016, False, "Samsung 980", False),
        ]
        args = mock_subprocess.call_args[0][0]
        assert args[:3] == ["lsblk", "-J", "-b"]
        assert "-d" in args

    @pytest.mark.unit
    def test_nested_mount_marks_disk_in_use(self, mock_subprocess):
        disk = _disk("sdb")
        disk["children"] = [{"name": "sdb1", "mountpoint": "/boot", "type": "part"}]
        mock_subprocess.return_value = _lsblk_output(disk)

        assert list_block_devices()[0].in_use is True

    @pytest.mark.unit
    def test_lsblk_failure(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(returncode=1, stdout="", stderr="boom")

        with pytest.raises(RuntimeError, match="Failed to list block devices"):
            list_block_devices()


class TestPreconditions:
    """Tests for environment precondition checks."""

    @pytest.mark.unit
    @patch("os.geteuid", return_value=1000)
    def test_require_root_refuses_regular_user(self, mock_geteuid):
        with pytest.raises(NotAuthorized, match="Run as root"):
            require_root()

    @pytest.mark.unit
    @patch("os.geteuid", return_value=0)
    def test_require_root_accepts_root(self, mock_geteuid):
        require_root()

    @pytest.mark.unit
    @patch("shutil.which", side_effect=lambda cmd: None if cmd == "mdadm" else f"/usr/sbin/{cmd}")
    def test_missing_command(self, mock_which):
        with pytest.raises(MissingCommand, match="Missing dependency: mdadm"):
            require_commands(["lsblk", "mdadm", "wipefs"])
