"""Core engine for tbd: record storage, attic, worktree and sync."""
