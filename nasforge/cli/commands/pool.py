"""
Storage pool commands.
"""

from typing import Optional

import typer

from nasforge.cli.lib.config import load_config
from nasforge.cli.lib.devices import list_block_devices
from nasforge.cli.lib.errors import NasForgeError
from nasforge.cli.lib.outcome import StepOutcome, StepStatus
from nasforge.cli.lib.state import list_pools as state_list_pools
from nasforge.models import PoolCreate, parse_request
from nasforge.services.pool_service import build_pool

app = typer.Typer(help="Storage pool commands")


def echo_outcome(outcome: StepOutcome) -> None:
    # Fatal outcomes are reported by the command once the run stops
    if outcome.status == StepStatus.SUCCESS:
        typer.echo(f"[INFO] {outcome.message}")
    elif outcome.status == StepStatus.WARNING:
        typer.echo(f"[WARN] {outcome.message}", err=True)


def _human_size(size_bytes: int) -> str:
    size = float(size_bytes)
    for unit in ("B", "K", "M", "G"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


@app.command()
def create(
    data: str = typer.Option(..., "--data", help="Comma-separated data drives (e.g. /dev/sdb,/dev/sdc)"),
    raid: str = typer.Option(..., "--raid", help="RAID level: 0, 1, 5, 6 or 10"),
    cache: Optional[str] = typer.Option(None, "--cache", help="Comma-separated SSD cache drives"),
    fs: str = typer.Option("xfs", "--fs", help="Filesystem: xfs, ext4 or btrfs (default: xfs)"),
    force: bool = typer.Option(False, "--force", help="Do not ask before erasing the drives"),
):
    """
    Build the storage pool.

    Erases the drives, assembles the RAID array, layers LVM (with an optional
    SSD cache) on top, then formats and mounts the data volume.
    """
    try:
        request = parse_request(
            PoolCreate,
            data_devices=data,
            raid_level=raid,
            cache_devices=cache,
            fs_type=fs,
            authorized=force,
        )

        if not force:
            drives = ", ".join([*request.data_devices, *request.cache_devices])
            typer.confirm(f"All data on {drives} will be erased. Continue?", abort=True)
            request = request.model_copy(update={"authorized": True})

        cfg = load_config()
        report = build_pool(request, cfg=cfg, listener=echo_outcome)

        typer.echo(f"Pool created: {report.details['lv_path']} mounted at {report.details['mount_point']}")
        if report.warnings:
            typer.echo(f"Completed with {len(report.warnings)} warning(s)")

    except NasForgeError as e:
        typer.echo(f"[FAIL] {e.category}: {e.message}", err=True)
        raise typer.Exit(1)
    except (typer.Abort, typer.Exit):
        raise
    except Exception as e:
        typer.echo(f"Error creating pool: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def devices():
    """
    List whole disks with their type (HDD/SSD) and usage.
    """
    try:
        found = list_block_devices()
        if not found:
            typer.echo("No block devices found")
            return

        typer.echo(f"{'DEVICE':<16} {'TYPE':<5} {'SIZE':>8}  {'IN USE':<6} MODEL")
        for device in found:
            typer.echo(
                f"{device.path:<16} {device.kind:<5} {_human_size(device.size_bytes):>8}  "
                f"{'yes' if device.in_use else 'no':<6} {device.model}"
            )

    except Exception as e:
        typer.echo(f"Error listing devices: {e}", err=True)
        raise typer.Exit(1)


@app.command("list")
def list_pools():
    """
    Show the pools recorded by previous runs.
    """
    pools = state_list_pools()
    if not pools:
        typer.echo("No pools recorded")
        return

    for pool in pools:
        cache = "cached" if pool.get("cache") else "no cache"
        typer.echo(
            f"{pool.get('name')}: {pool.get('array')} RAID{pool.get('level')} ({pool.get('sync_state')}) "
            f"-> {pool.get('lv_path')} {pool.get('fs_type')} at {pool.get('mount_point')} [{cache}]"
        )
