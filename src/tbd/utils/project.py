"""
Project root discovery and the on-disk layout tbd uses.

The user's repository holds a ``.tbd/`` directory. Synced data lives on the
sync branch, which is checked out in a separate worktree so the user's own
checkout is never touched::

    <repo>/.tbd/config.yml                  project configuration
    <repo>/.tbd/cache/sync-state.json       local sync metadata (not synced)
    <repo>/.tbd/backups/                    copies made by worktree repair
    <repo>/.tbd/data-sync-worktree/         worktree on the sync branch
        .tbd/data-sync/issues/<id>.md       one file per issue
        .tbd/data-sync/attic/<id>/*.yml     attic entries
        .tbd/data-sync/meta.yml             sync branch metadata
"""

from pathlib import Path

TBD_DIR = ".tbd"
CONFIG_FILE = f"{TBD_DIR}/config.yml"
STATE_FILE = f"{TBD_DIR}/cache/sync-state.json"
BACKUPS_DIR = f"{TBD_DIR}/backups"
WORKTREE_DIR = f"{TBD_DIR}/data-sync-worktree"

# Relative to the worktree root (and to the sync branch tree)
DATA_SYNC_DIR = f"{TBD_DIR}/data-sync"
ISSUES_DIR = f"{DATA_SYNC_DIR}/issues"
ATTIC_DIR = f"{DATA_SYNC_DIR}/attic"
META_FILE = f"{DATA_SYNC_DIR}/meta.yml"

# Markers that indicate a project root, in order of priority
PROJECT_ROOT_MARKERS = [
    TBD_DIR,
    ".git",
]


def find_project_root(start: Path | None = None) -> Path | None:
    """
    Find the project root directory by searching upward for marker files.

    Args:
        start: Directory to start searching from. Defaults to current working directory.

    Returns:
        Path to the project root directory, or None if not found.
    """
    if start is None:
        start = Path.cwd()

    current = start.resolve()
    for candidate in (current, *current.parents):
        for marker in PROJECT_ROOT_MARKERS:
            if (candidate / marker).exists():
                return candidate
    return None
