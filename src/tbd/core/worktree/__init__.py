"""
Sync worktree management.

The sync branch is checked out in its own worktree, independent of the
branch the user has checked out. SyncWorktreeManager detects and repairs
missing, detached, diverged and corrupted worktrees.

Example:
    >>> from tbd.core.worktree import SyncWorktreeManager
    >>> manager = SyncWorktreeManager(branch="tbd-sync", remote="origin")
    >>> manager.ensure_healthy()
"""

from tbd.core.worktree.manager import (
    SyncWorktreeManager,
    Worktree,
    WorktreeCorruptError,
    WorktreeDirtyError,
    WorktreeError,
    WorktreeHealth,
)

__all__ = [
    "SyncWorktreeManager",
    "Worktree",
    "WorktreeCorruptError",
    "WorktreeDirtyError",
    "WorktreeError",
    "WorktreeHealth",
]
