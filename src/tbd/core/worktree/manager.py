"""
Sync worktree manager.

The sync branch is checked out in a dedicated worktree at
``.tbd/data-sync-worktree/`` so the user's own checkout is never touched.
This module detects the health of that worktree and repairs it:

- absent: create it from the local branch, the remote branch, or a fresh
  sync branch
- prunable: git still lists it but the directory is gone; prune and recreate
- detached: HEAD is not on the sync branch; reattach without losing content
- diverged: HEAD is on some other branch, or the sync branch was moved
  outside the worktree and its files were left behind; switch back or
  catch up if clean
- corrupt: the directory exists but is not a usable worktree; move it aside
  and recreate

Checks are read-only and idempotent. Repairs never discard uncommitted
content silently: they either carry it over, back it up first (when forced),
or raise WorktreeCorruptError.
"""

from __future__ import annotations

import builtins
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from git import Git, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from tbd.core.errors import TbdError
from tbd.utils.project import ATTIC_DIR, BACKUPS_DIR, ISSUES_DIR, META_FILE, WORKTREE_DIR

logger = logging.getLogger(__name__)

INIT_COMMIT_MESSAGE = "tbd: initialize sync branch"
META_TEMPLATE = "schema_version: 1\n"

# Commit the worktree files were last written from
TIP_REF = "refs/tbd/worktree-tip"

# Kept out of the user's branch by .tbd/.gitignore
LOCAL_ONLY_ENTRIES = ["cache/", "backups/", "data-sync-worktree/"]


class WorktreeError(TbdError):
    """Base exception for worktree operations."""


class WorktreeCorruptError(WorktreeError):
    """Raised when the worktree cannot be repaired without losing data."""


class WorktreeDirtyError(WorktreeCorruptError):
    """
    Raised when uncommitted changes in the worktree block a repair.

    Recoverable: commit or discard the changes in the worktree, or rerun
    with force to back them up and repair.
    """


class WorktreeHealth(str, Enum):
    """Health states of the sync worktree."""

    HEALTHY = "healthy"
    ABSENT = "absent"
    PRUNABLE = "prunable"
    DETACHED = "detached"
    DIVERGED = "diverged"
    CORRUPT = "corrupt"


@dataclass
class Worktree:
    """
    Represents a git worktree.

    Attributes:
        path: Absolute path to the worktree directory
        branch: Full branch ref (None for detached HEAD)
        commit: Commit SHA
        is_bare: Whether this is the bare repository
        is_prunable: Whether git considers the entry stale
    """

    path: Path
    branch: str | None
    commit: str
    is_bare: bool = False
    is_prunable: bool = False


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


class SyncWorktreeManager:
    """
    Owns the worktree bound to the sync branch.

    Example:
        >>> manager = SyncWorktreeManager(Path("."), branch="tbd-sync")
        >>> manager.check()
        <WorktreeHealth.ABSENT: 'absent'>
        >>> manager.ensure_healthy()
        >>> manager.check()
        <WorktreeHealth.HEALTHY: 'healthy'>
    """

    def __init__(
        self,
        repo_path: Path | None = None,
        branch: str = "tbd-sync",
        remote: str = "origin",
    ) -> None:
        """
        Initialize the worktree manager.

        Args:
            repo_path: Path inside the git repository (defaults to current directory)
            branch: Name of the sync branch
            remote: Name of the remote the sync branch tracks

        Raises:
            WorktreeError: If not in a git repository
        """
        self.repo_path = repo_path or Path.cwd()
        try:
            self.repo = Repo(self.repo_path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise WorktreeError(f"Not a git repository: {self.repo_path}") from e
        if self.repo.working_tree_dir is None:
            raise WorktreeError(f"Bare repositories are not supported: {self.repo_path}")

        self.root = Path(self.repo.working_tree_dir).resolve()
        self.path = self.root / WORKTREE_DIR
        self.backups_dir = self.root / BACKUPS_DIR
        self.branch = branch
        self.remote = remote

    @property
    def branch_ref(self) -> str:
        return f"refs/heads/{self.branch}"

    @property
    def remote_ref(self) -> str:
        return f"refs/remotes/{self.remote}/{self.branch}"

    @property
    def git_common_dir(self) -> Path:
        """Git directory shared by all worktrees of the repository."""
        return Path(self.repo.common_dir).resolve()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def list(self) -> builtins.list[Worktree]:
        """
        List all worktrees registered in the repository.

        Raises:
            WorktreeError: If listing worktrees fails
        """
        try:
            output = self.repo.git.worktree("list", "--porcelain")
        except GitCommandError as e:
            raise WorktreeError(f"Failed to list worktrees: {e.stderr}") from e

        worktrees: builtins.list[Worktree] = []
        current: dict[str, str | bool] = {}
        for line in output.splitlines() + [""]:
            line = line.strip()
            if not line:
                if current:
                    worktrees.append(self._parse_worktree(current))
                    current = {}
                continue
            if line.startswith("worktree "):
                current["path"] = line[len("worktree ") :]
            elif line.startswith("HEAD "):
                current["commit"] = line[len("HEAD ") :]
            elif line.startswith("branch "):
                current["branch"] = line[len("branch ") :]
            elif line == "bare":
                current["is_bare"] = True
            elif line.startswith("prunable"):
                current["is_prunable"] = True
        return worktrees

    def _parse_worktree(self, data: dict[str, str | bool]) -> Worktree:
        return Worktree(
            path=Path(str(data.get("path", ""))),
            branch=str(data["branch"]) if "branch" in data else None,
            commit=str(data.get("commit", "")),
            is_bare=bool(data.get("is_bare", False)),
            is_prunable=bool(data.get("is_prunable", False)),
        )

    def registered(self) -> Worktree | None:
        """The registry entry for the sync worktree, if git has one."""
        target = self.path.resolve()
        for worktree in self.list():
            if worktree.path.resolve() == target:
                return worktree
        return None

    def _ref_sha(self, ref: str) -> str | None:
        try:
            return self.repo.git.rev_parse("--verify", "--quiet", f"{ref}^{{commit}}")
        except GitCommandError:
            return None

    def _is_ancestor(self, ancestor: str, descendant: str) -> bool:
        try:
            self.repo.git.merge_base("--is-ancestor", ancestor, descendant)
            return True
        except GitCommandError:
            return False

    def _worktree_git(self) -> Git:
        return Git(str(self.path))

    def recorded_tip(self) -> str | None:
        return self._ref_sha(TIP_REF)

    def record_tip(self) -> None:
        """Remember the sync branch commit the worktree files now reflect."""
        sha = self._ref_sha(self.branch_ref)
        if sha is not None:
            self.repo.git.update_ref(TIP_REF, sha)

    def _index_matches_head(self) -> bool:
        try:
            self._worktree_git().diff("--cached", "--quiet", "HEAD")
            return True
        except GitCommandError:
            return False

    def _branch_moved(self) -> bool:
        """Whether the sync branch moved without the worktree's index and files following."""
        tip = self.recorded_tip()
        if tip is not None and tip == self._ref_sha(self.branch_ref):
            return False
        return not self._index_matches_head()

    def _has_unstaged_edits(self) -> bool:
        wt = self._worktree_git()
        try:
            wt.diff("--quiet")
        except GitCommandError:
            return True
        return bool(wt.ls_files("--others", "--exclude-standard"))

    def check(self) -> WorktreeHealth:
        """Determine the worktree's health without changing anything."""
        entry = self.registered()
        if entry is None:
            if self.path.exists() and any(self.path.iterdir()):
                return WorktreeHealth.CORRUPT
            return WorktreeHealth.ABSENT

        if not self.path.exists():
            return WorktreeHealth.PRUNABLE
        if not (self.path / ".git").exists():
            return WorktreeHealth.CORRUPT
        try:
            self._worktree_git().rev_parse("--verify", "HEAD")
        except GitCommandError:
            return WorktreeHealth.CORRUPT

        if entry.branch is None:
            return WorktreeHealth.DETACHED
        if entry.branch != self.branch_ref:
            return WorktreeHealth.DIVERGED
        if self._branch_moved():
            return WorktreeHealth.DIVERGED
        return WorktreeHealth.HEALTHY

    def is_dirty(self) -> bool:
        """Whether the worktree has uncommitted changes (including untracked files)."""
        return bool(self._worktree_git().status("--porcelain"))

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def ensure_healthy(self, force: bool = False) -> WorktreeHealth:
        """
        Bring the worktree to the healthy state.

        Safe to call on every sync: a healthy worktree is left untouched.

        Args:
            force: Allow repairs that first back up content which would
                otherwise block the repair

        Returns:
            The state found before any repair

        Raises:
            WorktreeCorruptError: If repair would lose uncommitted data
            WorktreeDirtyError: If the worktree is on the wrong branch with
                local changes and force is not set
        """
        health = self.check()
        if health is WorktreeHealth.HEALTHY:
            if self.recorded_tip() is None:
                self.record_tip()
            return health

        logger.info("Sync worktree is %s; repairing", health.value)
        try:
            if health is WorktreeHealth.ABSENT:
                self._create()
            elif health is WorktreeHealth.PRUNABLE:
                self.prune()
                self._create()
            elif health is WorktreeHealth.CORRUPT:
                self._recreate_corrupt()
            elif health is WorktreeHealth.DETACHED:
                self._reattach(force)
            elif health is WorktreeHealth.DIVERGED:
                entry = self.registered()
                if entry is not None and entry.branch == self.branch_ref:
                    self._catch_up(force)
                else:
                    self._switch_back(force)
        except GitCommandError as e:
            raise WorktreeError(
                f"Failed to repair {health.value} sync worktree: {e.stderr}",
                operation="repair_worktree",
            ) from e

        final = self.check()
        if final is not WorktreeHealth.HEALTHY:
            raise WorktreeCorruptError(
                f"Sync worktree is still {final.value} after repair: {self.path}",
                operation="repair_worktree",
            )
        self.record_tip()
        logger.info("Sync worktree repaired (%s -> healthy)", health.value)
        return health

    def _create(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_gitignore()

        if self._ref_sha(self.branch_ref):
            logger.debug("Creating worktree from local branch %s", self.branch)
            self.repo.git.worktree("add", str(self.path), self.branch)
        elif self._ref_sha(self.remote_ref):
            logger.debug("Creating worktree tracking %s/%s", self.remote, self.branch)
            self.repo.git.worktree(
                "add", "--track", "-b", self.branch, str(self.path), f"{self.remote}/{self.branch}"
            )
        else:
            logger.info("Initializing new sync branch %s", self.branch)
            self._init_branch()

    def _ensure_gitignore(self) -> None:
        gitignore = self.path.parent / ".gitignore"
        existing = gitignore.read_text().splitlines() if gitignore.exists() else []
        missing = [entry for entry in LOCAL_ONLY_ENTRIES if entry not in existing]
        if missing:
            with gitignore.open("a") as f:
                f.write("".join(f"{entry}\n" for entry in missing))

    def _init_branch(self) -> None:
        empty_tree = self.repo.git.hash_object("-t", "tree", "-w", os.devnull)
        root_commit = self.repo.git.commit_tree(empty_tree, "-m", INIT_COMMIT_MESSAGE)
        self.repo.git.update_ref(self.branch_ref, root_commit)
        self.repo.git.worktree("add", str(self.path), self.branch)

        for directory in (ISSUES_DIR, ATTIC_DIR):
            keep = self.path / directory / ".gitkeep"
            keep.parent.mkdir(parents=True, exist_ok=True)
            keep.touch()
        (self.path / META_FILE).write_text(META_TEMPLATE)

        wt = self._worktree_git()
        wt.add("-A")
        wt.commit("--no-verify", "-m", INIT_COMMIT_MESSAGE)

    def _reattach(self, force: bool) -> None:
        wt = self._worktree_git()
        head = wt.rev_parse("HEAD")
        branch_sha = self._ref_sha(self.branch_ref)

        if branch_sha is None:
            self.repo.git.update_ref(self.branch_ref, head)
        elif head != branch_sha and not self._is_ancestor(head, branch_sha):
            if self._is_ancestor(branch_sha, head):
                logger.info("Fast-forwarding %s to detached worktree HEAD", self.branch)
                self.repo.git.update_ref(self.branch_ref, head, branch_sha)
            elif force:
                backup_ref = f"refs/tbd/backup/{_timestamp()}"
                self.repo.git.update_ref(backup_ref, head)
                logger.warning("Saved detached worktree HEAD as %s", backup_ref)
                if self.is_dirty():
                    self._backup_dirty_files()
                wt.checkout("-f", self.branch)
                wt.clean("-fd")
                return
            else:
                raise WorktreeCorruptError(
                    f"Sync worktree HEAD {head[:8]} has commits that are not on "
                    f"{self.branch}; rerun with --fix to back them up and reattach",
                    operation="reattach_worktree",
                )

        try:
            wt.checkout(self.branch)
        except GitCommandError as e:
            raise WorktreeCorruptError(
                f"Reattaching the sync worktree to {self.branch} would overwrite "
                f"uncommitted changes in {self.path}: {e.stderr}",
                operation="reattach_worktree",
            ) from e

    def _switch_back(self, force: bool) -> None:
        wt = self._worktree_git()
        if self.is_dirty():
            if not force:
                raise WorktreeDirtyError(
                    f"Sync worktree {self.path} is on another branch and has uncommitted "
                    f"changes; commit or discard them, or rerun with --fix to back them up",
                    operation="switch_worktree",
                )
            self._backup_dirty_files()
            wt.checkout("-f", self.branch)
            wt.clean("-fd")
            return
        if self._ref_sha(self.branch_ref) is None:
            wt.checkout("-b", self.branch)
        else:
            wt.checkout(self.branch)

    def _catch_up(self, force: bool) -> None:
        """
        Bring the index and files up to a sync branch that was moved externally.

        Safe only when the files still match the recorded tip exactly;
        anything else may be a local edit made against the old commit.
        """
        wt = self._worktree_git()
        tip = self.recorded_tip()
        at_tip = tip is not None and wt.write_tree() == self.repo.git.rev_parse(f"{tip}^{{tree}}")
        if at_tip and not self._has_unstaged_edits():
            logger.info("Sync branch %s moved outside tbd; updating worktree files", self.branch)
            wt.reset("--hard", "--quiet", "HEAD")
            return
        if not force:
            raise WorktreeDirtyError(
                f"Branch {self.branch} was moved outside tbd while {self.path} had "
                f"uncommitted changes; commit or discard them, or rerun with --fix to back them up",
                operation="catch_up_worktree",
            )
        self._backup_dirty_files()
        wt.reset("--hard", "--quiet", "HEAD")
        wt.clean("-fd")

    def _recreate_corrupt(self) -> None:
        self.backups_dir.mkdir(parents=True, exist_ok=True)
        backup = self.backups_dir / f"corrupted-worktree-{_timestamp()}"
        shutil.move(str(self.path), str(backup))
        logger.warning("Moved corrupted sync worktree to %s", backup)
        self.prune()
        self._create()

    def _backup_dirty_files(self) -> Path:
        backup = self.backups_dir / f"worktree-changes-{_timestamp()}"
        output = self._worktree_git().status("--porcelain", "-uall")
        for line in output.splitlines():
            rel = line[3:].split(" -> ")[-1].strip('"')
            source = self.path / rel
            if source.is_file():
                target = backup / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, target)
        logger.warning("Backed up uncommitted sync worktree changes to %s", backup)
        return backup

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def prune(self) -> None:
        """
        Prune stale worktree administrative data.

        Raises:
            WorktreeError: If prune operation fails
        """
        try:
            self.repo.git.worktree("prune")
        except GitCommandError as e:
            raise WorktreeError(f"Failed to prune worktrees: {e.stderr}") from e

    def remove(self) -> None:
        """
        Remove the sync worktree. The sync branch itself is kept.

        Raises:
            WorktreeError: If removal fails
        """
        if self.registered() is None:
            if self.path.exists():
                shutil.rmtree(self.path)
            return
        try:
            self.repo.git.worktree("remove", "--force", str(self.path))
        except GitCommandError as e:
            raise WorktreeError(f"Failed to remove worktree: {e.stderr}") from e
        self.prune()
