"""
Data models for the sync engine.

Defines Pydantic models for sync options, results, status and the local
sync metadata persisted between runs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from tbd.core.worktree.manager import WorktreeHealth


class SyncPhase(str, Enum):
    """States a sync passes through, in order."""

    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    WORKTREE_VERIFIED = "worktree_verified"
    LOCAL_CHANGES_STAGED = "local_changes_staged"
    PULLED = "pulled"
    RECONCILED = "reconciled"
    PUSHED = "pushed"
    METADATA_UPDATED = "metadata_updated"


class SyncOptions(BaseModel):
    """Caller-selected variations of a sync run."""

    push_only: bool = Field(default=False, description="Skip fetching and reconciling")
    pull_only: bool = Field(default=False, description="Skip pushing")
    force_repair_worktree: bool = Field(
        default=False,
        description="Allow worktree repairs that first back up conflicting content",
    )


class SyncResult(BaseModel):
    """
    Result of a sync run.

    Counts are of issue records unless noted otherwise.
    """

    pulled: int = Field(default=0, description="Records changed by incoming remote commits")
    pushed: int = Field(default=0, description="Records sent to the remote")
    conflicts_resolved: int = Field(
        default=0,
        description="Records whose field-level conflicts were resolved",
    )
    attic_entries_written: int = Field(default=0, description="New attic entries")

    local_commits: int = Field(default=0, description="Commits made from local edits")
    commit_sha: str | None = Field(default=None, description="Sync branch tip after the run")
    push_retried: bool = Field(
        default=False,
        description="Whether a rejected push was retried after re-pulling",
    )
    phases: list[SyncPhase] = Field(default_factory=list, description="Phases reached")

    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)

    @property
    def duration_seconds(self) -> float | None:
        """Calculate operation duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def enter(self, phase: SyncPhase) -> None:
        self.phases.append(phase)

    def summary(self) -> str:
        """Generate a human-readable summary of the result."""
        parts = []
        if self.pulled:
            parts.append(f"received {self.pulled}")
        if self.pushed:
            parts.append(f"sent {self.pushed}")
        if self.conflicts_resolved:
            parts.append(f"resolved {self.conflicts_resolved} conflicts")
        if self.attic_entries_written:
            parts.append(f"{self.attic_entries_written} values saved to attic")
        if not parts:
            return "Already in sync"
        return ", ".join(parts)


class SyncStatusReport(BaseModel):
    """Read-only view of where the sync branch stands."""

    ahead_count: int = Field(default=0, description="Local commits not on the remote")
    behind_count: int = Field(default=0, description="Remote commits not yet pulled")
    worktree_health: WorktreeHealth = Field(description="Current worktree state")
    branch: str = Field(description="Sync branch name")
    remote: str = Field(description="Remote name")
    has_remote_branch: bool = Field(default=False)
    last_sync_at: datetime | None = Field(default=None)

    @property
    def in_sync(self) -> bool:
        return self.ahead_count == 0 and self.behind_count == 0


class SyncState(BaseModel):
    """
    Local sync metadata stored in `.tbd/cache/sync-state.json`.

    Never committed; each clone keeps its own.
    """

    last_sync_at: datetime | None = Field(default=None, description="Last completed sync")
    last_commit_sha: str | None = Field(
        default=None,
        description="Sync branch tip after the last completed sync",
    )
    last_push_sha: str | None = Field(default=None, description="Last commit pushed")
    last_push_at: datetime | None = Field(default=None)

    def mark_synced(self, commit_sha: str | None) -> None:
        """Update state after a successful sync."""
        self.last_commit_sha = commit_sha
        self.last_sync_at = datetime.now(timezone.utc)

    def mark_pushed(self, commit_sha: str) -> None:
        """Update state after a successful push."""
        self.last_push_sha = commit_sha
        self.last_push_at = datetime.now(timezone.utc)
