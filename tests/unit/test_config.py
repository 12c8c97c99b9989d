"""
Unit tests for config loader.
"""

import pytest

from nasforge.cli.lib.config import load_config


@pytest.mark.unit
def test_load_config_missing_file(monkeypatch, temp_dir):
    monkeypatch.setenv("NASFORGE_CONFIG_PATH", str(temp_dir / "missing.conf"))

    cfg = load_config()
    assert cfg.vg_name == "qnap-vg"
    assert cfg.lv_name == "qnap-data"
    assert cfg.mount_point == "/srv/storage"
    assert cfg.default_cidr == "10.10.50.0/23"
    assert cfg.sync_timeout == 60
    assert cfg.state_dir is None


@pytest.mark.unit
def test_load_config_reads_values(monkeypatch, temp_dir):
    config_path = temp_dir / "nas-forge.conf"
    config_path.write_text(
        "\n".join(
            [
                "[pool]",
                "vg_name = vg_test",
                "lv_name = data",
                "mount_point = /mnt/pool",
                "sync_timeout = 5",
                "",
                "[shares]",
                "default_cidr = 192.168.1.0/24",
                "smb_conf = /tmp/smb.conf",
                "anon_fallback_id = 99",
                "",
                "[runtime]",
                f"state_dir = {temp_dir / 'state'}",
                "log_file = /tmp/nas-forge.log",
                "",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv("NASFORGE_CONFIG_PATH", str(config_path))

    cfg = load_config()
    assert cfg.vg_name == "vg_test"
    assert cfg.lv_name == "data"
    assert cfg.mount_point == "/mnt/pool"
    assert cfg.sync_timeout == 5
    assert cfg.default_cidr == "192.168.1.0/24"
    assert cfg.smb_conf == "/tmp/smb.conf"
    assert cfg.anon_fallback_id == 99
    assert cfg.state_dir == temp_dir / "state"
    assert cfg.log_file == "/tmp/nas-forge.log"
    # untouched keys keep their defaults
    assert cfg.exports_path == "/etc/exports"


@pytest.mark.unit
def test_invalid_integer_falls_back(monkeypatch, temp_dir):
    config_path = temp_dir / "nas-forge.conf"
    config_path.write_text("[pool]\nsync_timeout = soon\n", encoding="utf-8")
    monkeypatch.setenv("NASFORGE_CONFIG_PATH", str(config_path))

    assert load_config().sync_timeout == 60
