"""
tbd CLI - sync command.

Synchronizes the issue branch with the remote: commits local edits, pulls
and merges remote changes field by field, and pushes the result.
"""

import typer
from rich.console import Console
from rich.table import Table

from tbd.cli.errors import ExitCode, report_engine_error
from tbd.core.errors import TbdError
from tbd.core.sync import SyncOptions, SyncOrchestrator, SyncResult
from tbd.core.worktree import WorktreeHealth

console = Console()
app = typer.Typer(
    name="sync",
    help="Sync issues with the remote",
    no_args_is_help=False,
)


def _get_orchestrator() -> SyncOrchestrator:
    try:
        return SyncOrchestrator()
    except TbdError as e:
        raise typer.Exit(report_engine_error(e))


def _print_result(result: SyncResult) -> None:
    if result.local_commits:
        console.print("[green]✓[/green] Committed local changes")

    if result.pulled or result.pushed:
        console.print(f"[green]✓[/green] Synced: {result.summary()}")
    else:
        console.print("[green]✓[/green] Already in sync")

    if result.conflicts_resolved:
        console.print(
            f"[yellow]⚠[/yellow]  Resolved conflicts on {result.conflicts_resolved} issue(s); "
            f"{result.attic_entries_written} discarded value(s) saved (see: tbd attic list)"
        )
    if result.push_retried:
        console.print("[dim]Remote changed during sync; pulled again before pushing[/dim]")


@app.callback(invoke_without_command=True)
def sync(
    ctx: typer.Context,
    push: bool = typer.Option(
        False,
        "--push",
        help="Only push local changes",
    ),
    pull: bool = typer.Option(
        False,
        "--pull",
        help="Only pull and merge remote changes",
    ),
    fix: bool = typer.Option(
        False,
        "--fix",
        help="Repair the sync worktree even if content must be backed up first",
    ),
    show_status: bool = typer.Option(
        False,
        "--status",
        help="Show sync status instead of syncing",
    ),
) -> None:
    """
    Sync issues with the remote.

    Commits local issue edits, pulls remote changes, merges concurrent edits
    field by field (saving every discarded value to the attic), and pushes.

    Examples:
        tbd sync              # Full sync: pull, merge, push
        tbd sync --pull       # Only pull and merge
        tbd sync --push       # Only push
        tbd sync --fix        # Repair a broken sync worktree, then sync
        tbd sync status       # Show ahead/behind counts
    """
    if ctx.invoked_subcommand is not None:
        return

    if show_status:
        status()
        return

    if push and pull:
        console.print("[red]Error:[/red] --push and --pull cannot be combined")
        raise typer.Exit(ExitCode.USER_ERROR)

    orchestrator = _get_orchestrator()
    options = SyncOptions(push_only=push, pull_only=pull, force_repair_worktree=fix)
    try:
        result = orchestrator.sync(options)
    except TbdError as e:
        raise typer.Exit(report_engine_error(e))
    except KeyboardInterrupt:
        console.print(
            "\n[yellow]Sync interrupted[/yellow]; committed changes are kept, run tbd sync again"
        )
        raise typer.Exit(ExitCode.SIGINT)

    _print_result(result)


@app.command()
def status() -> None:
    """
    Show sync status.

    Compares the local sync branch with the last fetched state of the
    remote. Does not contact the remote or change anything.

    Examples:
        tbd sync status
    """
    orchestrator = _get_orchestrator()
    try:
        report = orchestrator.status()
    except TbdError as e:
        raise typer.Exit(report_engine_error(e))

    health_styles = {
        WorktreeHealth.HEALTHY: ("✓", "green"),
        WorktreeHealth.ABSENT: ("○", "dim"),
        WorktreeHealth.PRUNABLE: ("⚠", "yellow"),
        WorktreeHealth.DETACHED: ("⚠", "yellow"),
        WorktreeHealth.DIVERGED: ("⚠", "yellow"),
        WorktreeHealth.CORRUPT: ("✗", "red"),
    }
    icon, color = health_styles[report.worktree_health]

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Branch", report.branch)
    remote = report.remote
    if not report.has_remote_branch:
        remote = f"{remote} (no sync branch yet)"
    table.add_row("Remote", remote)
    table.add_row("Worktree", f"[{color}]{icon} {report.worktree_health.value}[/{color}]")
    table.add_row("Ahead", str(report.ahead_count))
    table.add_row("Behind", str(report.behind_count))
    last = report.last_sync_at.strftime("%Y-%m-%d %H:%M:%S UTC") if report.last_sync_at else "never"
    table.add_row("Last sync", last)
    console.print(table)

    if report.worktree_health is not WorktreeHealth.HEALTHY:
        console.print("[dim]The worktree is repaired automatically on the next sync.[/dim]")
    elif report.in_sync:
        console.print("[green]✓[/green] Up to date")
