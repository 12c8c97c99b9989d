"""
Share management commands.
"""

from typing import Optional

import typer

from nasforge.cli.commands.pool import echo_outcome
from nasforge.cli.lib.config import load_config
from nasforge.cli.lib.errors import NasForgeError, ShareSetupFailed
from nasforge.cli.lib.state import list_shares as state_list_shares
from nasforge.models import ShareCreate, parse_request
from nasforge.services.share_service import provision_share

app = typer.Typer(help="Share management commands")


def _prompt_password(user: str) -> str:
    return typer.prompt(f"Samba password for {user}", hide_input=True, confirmation_prompt=True)


@app.command()
def create(
    path: str = typer.Option(..., "--path", help="Directory to share (created if missing)"),
    name: Optional[str] = typer.Option(None, "--name", help="Share name (default: basename of path)"),
    proto: str = typer.Option("both", "--proto", help="nfs, samba or both"),
    cidr: Optional[str] = typer.Option(None, "--cidr", help="Comma-separated client networks (default from config)"),
    user: Optional[str] = typer.Option(None, "--user", help="Restricted user granted access"),
    quota: Optional[str] = typer.Option(None, "--quota", help="XFS project quota hard limit (e.g. 500g)"),
    interactive: bool = typer.Option(
        False, "--interactive/--force", help="Prompt for the Samba password instead of generating one"
    ),
):
    """
    Create or update a share.

    Creates the share group and directory, applies ACLs, writes the NFS export
    and Samba share definitions, and restarts the file services. Running it
    again with the same arguments rewrites the same entries.
    """
    try:
        cfg = load_config()
        request = parse_request(
            ShareCreate,
            path=path,
            name=name,
            protocols=proto,
            cidrs=cidr or cfg.default_cidr,
            user=user,
            quota=quota,
            interactive=interactive,
        )

        typer.echo(f"Provisioning share: {request.name} ({request.path})")
        report = provision_share(
            request,
            cfg=cfg,
            listener=echo_outcome,
            password_prompt=_prompt_password if interactive else None,
        )

        if report.fatal is not None:
            raise ShareSetupFailed(report.fatal.message)

        password = report.details.get("generated_password")
        if password:
            typer.echo(f"Generated Samba password for {request.user}: {password}")
            typer.echo("Store it now; it is not saved anywhere.")

        if report.warnings:
            typer.echo(f"Share {request.name} configured with {len(report.warnings)} warning(s)")
        else:
            typer.echo(f"Share {request.name} configured successfully")

    except NasForgeError as e:
        typer.echo(f"[FAIL] {e.category}: {e.message}", err=True)
        raise typer.Exit(1)
    except (typer.Abort, typer.Exit):
        raise
    except Exception as e:
        typer.echo(f"Error creating share: {e}", err=True)
        raise typer.Exit(1)


@app.command("list")
def list_shares(
    name: Optional[str] = typer.Option(None, "--name", help="Only show this share"),
):
    """
    Show the shares recorded by previous runs.
    """
    shares = state_list_shares(name)
    if not shares:
        typer.echo("No shares recorded")
        return

    for share in shares:
        protocols = ",".join(share.get("protocols") or [])
        line = f"{share.get('name')}: {share.get('path')} [{protocols}] group={share.get('group')}"
        if share.get("user"):
            line += f" user={share['user']}"
        if share.get("quota"):
            line += f" quota={share['quota']}"
        typer.echo(line)
