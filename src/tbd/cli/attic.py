"""
tbd CLI - attic commands.

The attic holds every field value that conflict resolution discarded.
"""

import json

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tbd.cli.errors import ExitCode, report_engine_error
from tbd.core.attic import AtticEntry
from tbd.core.errors import TbdError
from tbd.core.issues import is_issue_id
from tbd.core.sync import SyncOrchestrator

console = Console()
app = typer.Typer(
    name="attic",
    help="Browse values discarded by conflict resolution",
    no_args_is_help=True,
)


def _get_orchestrator() -> SyncOrchestrator:
    try:
        return SyncOrchestrator()
    except TbdError as e:
        raise typer.Exit(report_engine_error(e))


def _display_ids(orchestrator: SyncOrchestrator) -> dict[str, str]:
    prefix = orchestrator.config.display.id_prefix
    return {issue.id: issue.display_id(prefix) for issue in orchestrator.store}


def _resolve_issue_id(orchestrator: SyncOrchestrator, ref: str) -> str:
    """Accept an internal id, a display id such as ``proj-a1b2``, or a bare short id."""
    if is_issue_id(ref):
        return ref
    prefix = f"{orchestrator.config.display.id_prefix}-"
    short_id = ref[len(prefix) :] if ref.startswith(prefix) else ref
    for issue in orchestrator.store:
        if issue.short_id == short_id:
            return issue.id
    console.print(f"[red]Error:[/red] Issue not found: {ref}")
    raise typer.Exit(ExitCode.USER_ERROR)


def _format_value(value: object, limit: int = 40) -> str:
    text = value if isinstance(value, str) else json.dumps(value)
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[: limit - 1] + "…"


@app.command("list")
def list_entries(
    issue: str | None = typer.Argument(None, help="Only show entries for this issue"),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON",
    ),
) -> None:
    """
    List attic entries, oldest first.

    Examples:
        tbd attic list
        tbd attic list proj-a1b2
        tbd attic list --json
    """
    orchestrator = _get_orchestrator()
    ledger = orchestrator.attic
    if issue is not None:
        entries: list[AtticEntry] = list(ledger.list_for(_resolve_issue_id(orchestrator, issue)))
    else:
        entries = list(ledger.list_all())

    if json_output:
        output = json.dumps([e.model_dump(mode="json") for e in entries], indent=2)
        console.print(output, soft_wrap=True, markup=False, highlight=False)
        return

    if not entries:
        console.print("[dim]The attic is empty[/dim]")
        return

    display_ids = _display_ids(orchestrator)
    table = Table(title=f"Attic ({len(entries)} entries)")
    table.add_column("Resolved", style="dim")
    table.add_column("Issue", style="cyan")
    table.add_column("Field")
    table.add_column("Lost value", style="yellow")
    table.add_column("Kept value", style="green")
    table.add_column("Rule")
    for entry in entries:
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            display_ids.get(entry.entity_id, entry.entity_id),
            entry.field,
            _format_value(entry.lost_value),
            _format_value(entry.winner_value),
            entry.rule.value,
        )
    console.print(table)


@app.command()
def show(
    issue: str = typer.Argument(..., help="Issue id (internal or display)"),
) -> None:
    """
    Show full attic entries for one issue.

    Examples:
        tbd attic show proj-a1b2
    """
    orchestrator = _get_orchestrator()
    entity_id = _resolve_issue_id(orchestrator, issue)
    entries = list(orchestrator.attic.list_for(entity_id))
    if not entries:
        console.print(f"[dim]No attic entries for {issue}[/dim]")
        return

    for entry in entries:
        body = yaml.safe_dump(
            {"lost_value": entry.lost_value, "kept_value": entry.winner_value},
            sort_keys=False,
            allow_unicode=True,
        ).rstrip()
        details = (
            f"{body}\n\n[dim]{entry.context}\n"
            f"winner: {entry.winner_source[:12]}  loser: {entry.loser_source[:12]}[/dim]"
        )
        title = f"{entry.field} @ {entry.timestamp.strftime('%Y-%m-%d %H:%M:%S')}"
        console.print(Panel(details, title=title, title_align="left"))
