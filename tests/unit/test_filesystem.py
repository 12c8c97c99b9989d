"""
Unit tests for filesystem module.
"""

from unittest.mock import MagicMock

import pytest

from nasforge.cli.lib.errors import FormatFailed, InvalidLevel, MountFailed
from nasforge.cli.lib.filesystem import (
    FsType,
    add_fstab_option,
    ensure_fstab_option,
    format_device,
    mount_all,
    mount_info,
    parse_fs_type,
    read_uuid,
    register_mount,
    upsert_fstab_entry,
)

UUID = "3f1c2a8e-5b7d-4e21-9c0a-1d2e3f4a5b6c"


class TestParseFsType:
    """Tests for parse_fs_type function."""

    @pytest.mark.unit
    @pytest.mark.parametrize("raw,expected", [("xfs", FsType.XFS), ("EXT4", FsType.EXT4), ("btrfs", FsType.BTRFS)])
    def test_valid(self, raw, expected):
        assert parse_fs_type(raw) == expected

    @pytest.mark.unit
    def test_invalid(self):
        with pytest.raises(InvalidLevel, match="Invalid filesystem: zfs"):
            parse_fs_type("zfs")


class TestFormatDevice:
    """Tests for format_device function."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "fs_type,cmd",
        [
            (FsType.XFS, ["mkfs.xfs", "-f", "/dev/qnap-vg/qnap-data"]),
            (FsType.EXT4, ["mkfs.ext4", "-F", "/dev/qnap-vg/qnap-data"]),
            (FsType.BTRFS, ["mkfs.btrfs", "-f", "/dev/qnap-vg/qnap-data"]),
        ],
    )
    def test_format(self, mock_subprocess, mock_path_exists, fs_type, cmd):
        mock_path_exists.return_value = True

        format_device("/dev/qnap-vg/qnap-data", fs_type)

        mock_subprocess.assert_called_once_with(cmd, capture_output=True, text=True, check=False)

    @pytest.mark.unit
    def test_missing_device(self, mock_subprocess, mock_path_exists):
        mock_path_exists.return_value = False

        with pytest.raises(FormatFailed, match="does not exist"):
            format_device("/dev/qnap-vg/qnap-data", FsType.XFS)
        mock_subprocess.assert_not_called()

    @pytest.mark.unit
    def test_mkfs_failure(self, mock_subprocess, mock_path_exists):
        mock_path_exists.return_value = True
        mock_subprocess.return_value = MagicMock(returncode=1, stderr="cannot open: Device or resource busy")

        with pytest.raises(FormatFailed, match="Failed to create filesystem"):
            format_device("/dev/qnap-vg/qnap-data", FsType.XFS)


class TestUuid:
    """Tests for read_uuid function."""

    @pytest.mark.unit
    def test_read_uuid(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(returncode=0, stdout=f"{UUID}\n", stderr="")
        assert read_uuid("/dev/qnap-vg/qnap-data") == UUID

    @pytest.mark.unit
    def test_empty_uuid(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(returncode=2, stdout="", stderr="")
        with pytest.raises(FormatFailed, match="Failed to get UUID"):
            read_uuid("/dev/qnap-vg/qnap-data")


class TestFstab:
    """Tests for fstab handling."""

    @pytest.mark.unit
    def test_append_entry(self):
        existing = "UUID=root / ext4 errors=remount-ro 0 1\n"
        result = upsert_fstab_entry(existing, UUID, "/srv/storage", FsType.XFS)
        assert result == (
            "UUID=root / ext4 errors=remount-ro 0 1\n"
            f"UUID={UUID} /srv/storage xfs defaults 0 2\n"
        )

    @pytest.mark.unit
    def test_replace_entry_in_place(self):
        existing = "\n".join(
            [
                "UUID=root / ext4 errors=remount-ro 0 1",
                f"UUID={UUID} /mnt/old xfs defaults 0 2",
                "/swapfile none swap sw 0 0",
                f"UUID={UUID} /mnt/dup xfs defaults 0 2",
            ]
        )
        result = upsert_fstab_entry(existing, UUID, "/srv/storage", FsType.XFS)
        assert result.splitlines() == [
            "UUID=root / ext4 errors=remount-ro 0 1",
            f"UUID={UUID} /srv/storage xfs defaults 0 2",
            "/swapfile none swap sw 0 0",
        ]

    @pytest.mark.unit
    def test_register_mount(self, temp_dir):
        fstab = temp_dir / "fstab"
        mount_point = temp_dir / "srv" / "storage"

        register_mount(str(fstab), UUID, str(mount_point), FsType.EXT4)
        register_mount(str(fstab), UUID, str(mount_point), FsType.EXT4)

        assert mount_point.is_dir()
        assert fstab.read_text(encoding="utf-8") == f"UUID={UUID} {mount_point} ext4 defaults 0 2\n"

    @pytest.mark.unit
    def test_mount_all_failure(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(returncode=32, stderr="wrong fs type")
        with pytest.raises(MountFailed, match="wrong fs type"):
            mount_all()

    @pytest.mark.unit
    def test_add_option_by_uuid(self):
        text = f"UUID={UUID} /srv/storage xfs defaults 0 2\n/dev/sda1 /boot ext4 defaults 0 2\n"

        result, changed = add_fstab_option(text, ["/dev/mapper/qnap--vg-qnap--data", f"UUID={UUID}"], "prjquota")

        assert changed is True
        assert result.splitlines()[0] == f"UUID={UUID} /srv/storage xfs defaults,prjquota 0 2"
        assert result.splitlines()[1] == "/dev/sda1 /boot ext4 defaults 0 2"

    @pytest.mark.unit
    def test_add_option_already_present(self):
        text = f"UUID={UUID} /srv/storage xfs defaults,prjquota 0 2\n"
        result, changed = add_fstab_option(text, [f"UUID={UUID}"], "prjquota")
        assert changed is False
        assert result == text

    @pytest.mark.unit
    def test_ensure_option_leaves_unmatched_file_alone(self, temp_dir):
        fstab = temp_dir / "fstab"
        fstab.write_text("/dev/sda1 / ext4 defaults 0 1\n", encoding="utf-8")

        assert ensure_fstab_option(str(fstab), [f"UUID={UUID}"], "prjquota") is False
        assert fstab.read_text(encoding="utf-8") == "/dev/sda1 / ext4 defaults 0 1\n"


class TestMountInfo:
    """Tests for mount_info function."""

    @pytest.mark.unit
    def test_parse_findmnt(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(
            returncode=0,
            stdout='SOURCE="/dev/mapper/qnap--vg-qnap--data" FSTYPE="xfs" '
            'OPTIONS="rw,relatime,attr2,inode64,prjquota" TARGET="/srv/storage"\n',
            stderr="",
        )

        info = mount_info("/srv/storage/media")

        assert info.source == "/dev/mapper/qnap--vg-qnap--data"
        assert info.fstype == "xfs"
        assert info.target == "/srv/storage"
        assert info.has_option("prjquota", "pquota")
        assert not info.has_option("usrquota")
        assert mock_subprocess.call_args[0][0][-2:] == ["--target", "/srv/storage/media"]

    @pytest.mark.unit
    def test_findmnt_failure(self, mock_subprocess):
        mock_subprocess.return_value = MagicMock(returncode=1, stdout="", stderr="")
        with pytest.raises(RuntimeError, match="Failed to determine filesystem"):
            mount_info("/nowhere")
