"""
tbd CLI - main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
import sys

import typer
from rich.console import Console

from tbd import __version__
from tbd.cli import attic, sync
from tbd.core.config.env import load_layered_env
from tbd.utils.project import find_project_root

app = typer.Typer(
    name="tbd",
    help="Git-native issue tracking",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"tbd {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit",
    ),
) -> None:
    """
    tbd - issues that live in your git repository.

    Issues are stored as files on a dedicated sync branch and merged field
    by field when several clones edit them concurrently.

    Common Workflows:
        tbd sync                 # Pull, merge and push issue changes
        tbd sync status          # Compare with the remote
        tbd attic list           # Values discarded by conflict resolution
    """
    # Precedence: OS env > project .env > user .env
    load_layered_env(project_dir=find_project_root())

    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    ctx.obj = {"debug": debug}


app.add_typer(sync.app, name="sync")
app.add_typer(attic.app, name="attic")


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
