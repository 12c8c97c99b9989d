#!/usr/bin/env python3
"""
Main CLI entry point using Typer.
"""

import sys

import click
import typer

from nasforge.cli.commands import pool, share
from nasforge.cli.lib.config import load_config
from nasforge.cli.lib.errors import NasForgeError
from nasforge.cli.lib.logs import setup_logging

app = typer.Typer(
    name="nas-forge",
    help="NAS storage pool and share provisioning tool",
    add_completion=False,
)

# Add command groups
app.add_typer(pool.app, name="pool", help="Storage pool commands")
app.add_typer(share.app, name="share", help="Share management commands")


@app.callback()
def setup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress to stderr"),
):
    """Configure logging for every command."""
    cfg = load_config()
    setup_logging(cfg.log_file, verbose=verbose)


def main() -> int:
    """Main entry point."""
    try:
        rv = app(standalone_mode=False)
        return rv if isinstance(rv, int) else 0
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.Abort as e:
        # Click turns Ctrl-C into Abort
        if isinstance(e.__cause__, KeyboardInterrupt):
            typer.echo("\nOperation cancelled by user", err=True)
            return 130
        typer.echo("Aborted.", err=True)
        return 1
    except KeyboardInterrupt:
        typer.echo("\nOperation cancelled by user", err=True)
        return 130
    except NasForgeError as e:
        typer.echo(f"[FAIL] {e.category}: {e.message}", err=True)
        return 1
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
