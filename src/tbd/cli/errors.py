"""
Standardized error handling and exit codes for the tbd CLI.

Engine exceptions are turned into a short problem statement, the reason,
and a suggested next step.
"""

from enum import IntEnum

from rich.console import Console

from tbd.core.config.loader import ConfigError
from tbd.core.errors import TbdError
from tbd.core.issues.store import StaleWriteError
from tbd.core.sync.errors import (
    NetworkFatalError,
    NetworkTransientError,
    RejectedPushError,
    SyncInProgressError,
)
from tbd.core.worktree.manager import WorktreeCorruptError, WorktreeDirtyError

console = Console()


class ExitCode(IntEnum):
    """Standard exit codes for tbd CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Sync or git failure."""

    USER_ERROR = 2
    """Configuration or input error (actionable by user)."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Example:
        >>> print_error(
        ...     "Another sync is already running",
        ...     solution="wait for it to finish, then run: tbd sync",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{reason}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def report_engine_error(error: TbdError) -> ExitCode:
    """Print guidance for an engine error and return the exit code to use."""
    if isinstance(error, SyncInProgressError):
        print_error(
            "Another sync is already running for this repository",
            solution="wait for it to finish, then run: tbd sync",
        )
    elif isinstance(error, WorktreeDirtyError):
        print_error(
            "Uncommitted changes in the sync worktree block its repair",
            reason=str(error),
            solution="tbd sync --fix  # backs up the changes, then repairs",
        )
    elif isinstance(error, WorktreeCorruptError):
        print_error(
            "The sync worktree cannot be repaired without losing data",
            reason=str(error),
            solution="tbd sync --fix  # backs up conflicting content, then repairs",
        )
    elif isinstance(error, NetworkFatalError):
        print_error(
            "Cannot reach the remote",
            reason=error.stderr or str(error),
            solution="check the remote URL and credentials: git remote -v",
        )
    elif isinstance(error, NetworkTransientError):
        print_error(
            "Network error while syncing (gave up after retrying)",
            reason=error.stderr or str(error),
            solution="tbd sync  # local changes are committed and safe",
        )
    elif isinstance(error, RejectedPushError):
        print_error(
            "The remote kept changing while syncing",
            reason="The push was rejected twice; merged changes are committed locally",
            solution="tbd sync",
        )
    elif isinstance(error, StaleWriteError):
        print_error(
            "The issue was changed by someone else since it was loaded",
            reason=str(error),
            solution="reload the issue and apply the edit again",
        )
    elif isinstance(error, ConfigError):
        print_error("Invalid configuration", reason=str(error), solution="check .tbd/config.yml")
        return ExitCode.USER_ERROR
    else:
        print_error(str(error))
    return ExitCode.GENERAL_ERROR
