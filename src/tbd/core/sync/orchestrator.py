"""
End-to-end sync of the issue branch.

A sync runs through these phases while holding the repository lock:

    Idle -> LockAcquired -> WorktreeVerified -> LocalChangesStaged
         -> Pulled -> Reconciled -> Pushed -> MetadataUpdated -> Idle

Every step after WorktreeVerified works on committed git history, so an
interrupted sync leaves nothing to roll back: the next run repairs the
worktree if needed and carries on from whatever was committed.

Reconciliation of diverged histories is done per file. Files changed on
one side only are taken from that side. Issue records changed on both
sides go through the ConflictResolver, and every discarded value is
written to the attic before the merged record is written. The result is
committed as a merge commit with both tips as parents.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from tbd.core.attic.ledger import AtticLedger
from tbd.core.config.loader import load_config
from tbd.core.config.models import TbdConfig
from tbd.core.errors import GitError, TbdError
from tbd.core.issues.ids import generate_short_id
from tbd.core.issues.models import Issue
from tbd.core.issues.parser import IssueParseError, parse_issue_text
from tbd.core.issues.store import RecordStore
from tbd.core.sync.errors import RejectedPushError, SyncError, network_error_from
from tbd.core.sync.git import GitRunner
from tbd.core.sync.lock import SyncLock
from tbd.core.sync.models import SyncOptions, SyncPhase, SyncResult, SyncStatusReport
from tbd.core.sync.resolver import ConflictResolver, MergeOutcome
from tbd.core.sync.retry import RetryPolicy, retry_transient
from tbd.core.sync.state import LocalStateStore
from tbd.core.worktree.manager import SyncWorktreeManager
from tbd.utils.project import ATTIC_DIR, DATA_SYNC_DIR, ISSUES_DIR

logger = logging.getLogger(__name__)


def is_record_path(path: str) -> bool:
    """Whether a repository path is an issue record file."""
    prefix = f"{ISSUES_DIR}/"
    if not path.startswith(prefix) or not path.endswith(".md"):
        return False
    name = path[len(prefix) :]
    return "/" not in name and name.startswith("is-")


def record_id_from_path(path: str) -> str:
    return path.rsplit("/", 1)[-1][: -len(".md")]


@dataclass
class _RecordMerge:
    """Outcome of reconciling one record changed on both sides."""

    path: str
    record_id: str
    outcome: MergeOutcome | None = None
    take_remote: bool = False


class SyncOrchestrator:
    """
    Drives sync between the local sync branch and the remote.

    Example:
        >>> orchestrator = SyncOrchestrator(Path("."))
        >>> orchestrator.stage_local_change(issue)
        >>> result = orchestrator.sync()
        >>> print(result.summary())
        received 2, sent 1, resolved 1 conflicts, 1 values saved to attic
    """

    def __init__(
        self,
        project_dir: Path | None = None,
        config: TbdConfig | None = None,
        resolver: ConflictResolver | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            project_dir: Path inside the git repository (defaults to cwd)
            config: Configuration; loaded from the project when omitted
            resolver: Conflict resolver to use
            sleep: Called with the backoff delay between network retries
        """
        self.worktrees = SyncWorktreeManager(project_dir)
        self.root = self.worktrees.root
        self.config = config or load_config(self.root)

        sync_config = self.config.sync
        self.branch = sync_config.branch
        self.remote = sync_config.remote
        self.worktrees.branch = self.branch
        self.worktrees.remote = self.remote

        self.git = GitRunner(self.root, network_timeout=sync_config.network_timeout_seconds)
        self.worktree_git = GitRunner(
            self.worktrees.path, network_timeout=sync_config.network_timeout_seconds
        )
        self.retry_policy = RetryPolicy(
            max_attempts=sync_config.max_attempts,
            initial_delay=sync_config.backoff_initial_seconds,
            max_delay=sync_config.backoff_max_seconds,
        )
        self.max_workers = sync_config.parallel_workers
        self.resolver = resolver or ConflictResolver()
        self.state_store = LocalStateStore(self.root)
        self._sleep = sleep

    @property
    def branch_ref(self) -> str:
        return f"refs/heads/{self.branch}"

    @property
    def remote_ref(self) -> str:
        return f"refs/remotes/{self.remote}/{self.branch}"

    @property
    def store(self) -> RecordStore:
        """Record store inside the sync worktree."""
        return RecordStore(self.worktrees.path / ISSUES_DIR)

    @property
    def attic(self) -> AtticLedger:
        """Attic ledger inside the sync worktree."""
        return AtticLedger(self.worktrees.path / ATTIC_DIR)

    def lock(self) -> SyncLock:
        return SyncLock(self.worktrees.git_common_dir)

    def _local_tip(self) -> str | None:
        return self.git.rev_parse(self.branch_ref)

    def _remote_tip(self) -> str | None:
        return self.git.rev_parse(self.remote_ref)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def stage_local_change(self, issue: Issue) -> Issue:
        """
        Save a locally edited issue into the sync worktree.

        The change is committed by the next sync. New issues without a
        short id get one that is unused in this clone.

        Raises:
            SyncInProgressError: If a sync is running
            StaleWriteError: If the issue changed since it was loaded
        """
        with self.lock():
            self.worktrees.ensure_healthy()
            store = self.store
            if issue.short_id is None:
                taken = {existing.short_id for existing in store}
                issue = issue.model_copy(update={"short_id": generate_short_id(taken)})
            return store.save(issue)

    def sync(self, options: SyncOptions | None = None) -> SyncResult:
        """
        Run a full sync (or a pull-only / push-only variant).

        Raises:
            SyncInProgressError: If another sync holds the lock
            NetworkFatalError: On authentication or missing-remote failures
            NetworkTransientError: If the retry budget is exhausted
            RejectedPushError: If the remote advanced again after one retry
            WorktreeCorruptError: If the worktree cannot be repaired safely
            AtticWriteError: If a discarded value cannot be recorded
        """
        options = options or SyncOptions()
        if options.push_only and options.pull_only:
            raise SyncError("push_only and pull_only cannot be combined", operation="sync")

        result = SyncResult(started_at=datetime.now(timezone.utc))
        result.enter(SyncPhase.IDLE)

        with self.lock():
            result.enter(SyncPhase.LOCK_ACQUIRED)
            state = self.state_store.load()
            logger.debug("Starting sync; last sync at %s", state.last_sync_at)

            self.worktrees.ensure_healthy(force=options.force_repair_worktree)
            result.enter(SyncPhase.WORKTREE_VERIFIED)

            result.local_commits = self._commit_local_changes()
            result.enter(SyncPhase.LOCAL_CHANGES_STAGED)

            if options.push_only:
                remote_tip = self._remote_tip()
            else:
                remote_tip = self._fetch()
                result.enter(SyncPhase.PULLED)
                self._reconcile(remote_tip, result)
                result.enter(SyncPhase.RECONCILED)

            pushed_sha = None
            if not options.pull_only:
                pushed_sha = self._push(remote_tip, result)
                result.enter(SyncPhase.PUSHED)

            result.commit_sha = self._local_tip()
            state.mark_synced(result.commit_sha)
            if pushed_sha:
                state.mark_pushed(pushed_sha)
            self.state_store.save(state)
            result.enter(SyncPhase.METADATA_UPDATED)

        result.enter(SyncPhase.IDLE)
        result.completed_at = datetime.now(timezone.utc)
        logger.info("Sync complete: %s", result.summary())
        return result

    def status(self) -> SyncStatusReport:
        """
        Report how the local sync branch relates to the last fetched remote.

        Read-only: does not fetch, repair or write anything.
        """
        health = self.worktrees.check()
        local_tip = self._local_tip()
        remote_tip = self._remote_tip()

        ahead = behind = 0
        if local_tip and remote_tip:
            counts = self.git.run(
                ["rev-list", "--left-right", "--count", f"{local_tip}...{remote_tip}"]
            ).split()
            ahead, behind = int(counts[0]), int(counts[1])
        elif local_tip:
            ahead = self.git.count_commits(local_tip)
        elif remote_tip:
            behind = self.git.count_commits(remote_tip)

        return SyncStatusReport(
            ahead_count=ahead,
            behind_count=behind,
            worktree_health=health,
            branch=self.branch,
            remote=self.remote,
            has_remote_branch=remote_tip is not None,
            last_sync_at=self.state_store.read_last_sync_at(),
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _commit_local_changes(self) -> int:
        """Commit everything pending in the worktree. Returns the number of commits made."""
        if not self.worktree_git.is_dirty():
            return 0
        self.worktree_git.run(["add", "-A"])
        files = self.worktree_git.run(["diff", "--cached", "--name-only"]).splitlines()
        if not files:
            return 0
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        message = f"tbd sync: {stamp} ({len(files)} file{'s' if len(files) != 1 else ''})"
        self.worktree_git.run(["commit", "--no-verify", "--quiet", "-m", message])
        self.worktrees.record_tip()
        logger.info("Committed %d local change(s) to %s", len(files), self.branch)
        return 1

    def _fetch(self) -> str | None:
        """
        Fetch the remote sync branch.

        Returns:
            The remote tip, or None if the remote has no sync branch yet
        """
        refspec = f"+{self.branch_ref}:{self.remote_ref}"

        def attempt() -> bool:
            try:
                self.git.run_network(["fetch", "--no-tags", "--quiet", self.remote, refspec])
            except GitError as e:
                if "couldn't find remote ref" in e.stderr.lower():
                    return False
                raise network_error_from(e, "fetch") from e
            return True

        found = retry_transient(attempt, self.retry_policy, "fetch", sleep=self._sleep)
        if not found:
            logger.info("Remote %s has no %s branch yet", self.remote, self.branch)
            return None
        return self._remote_tip()

    def _reconcile(self, remote_tip: str | None, result: SyncResult) -> None:
        local_tip = self._local_tip()
        if remote_tip is None or local_tip is None or local_tip == remote_tip:
            return
        if self.git.is_ancestor(remote_tip, local_tip):
            logger.debug("Local %s is ahead of remote; nothing to pull", self.branch)
            return

        if self.git.is_ancestor(local_tip, remote_tip):
            changed = self._record_changes(local_tip, remote_tip)
            self.worktree_git.run(["merge", "--ff-only", "--quiet", remote_tip])
            self.worktrees.record_tip()
            result.pulled += len(changed)
            logger.info("Fast-forwarded %s (%d record(s) changed)", self.branch, len(changed))
            return

        self._merge_diverged(local_tip, remote_tip, result)

    def _record_changes(self, base: str | None, commit: str) -> set[str]:
        return {p for p in self.git.changed_paths(base, commit, ISSUES_DIR) if is_record_path(p)}

    def _merge_diverged(self, local_tip: str, remote_tip: str, result: SyncResult) -> None:
        base = self.git.merge_base(local_tip, remote_tip)
        local_changed = self.git.changed_paths(base, local_tip, DATA_SYNC_DIR)
        remote_changed = self.git.changed_paths(base, remote_tip, DATA_SYNC_DIR)
        logger.info(
            "Reconciling diverged %s: %d local and %d remote path(s) changed",
            self.branch,
            len(local_changed),
            len(remote_changed),
        )

        for path in sorted(remote_changed - local_changed):
            self._take_remote(path, remote_tip)
            if is_record_path(path):
                result.pulled += 1

        record_paths: list[str] = []
        for path in sorted(local_changed & remote_changed):
            if self.git.blob_id(local_tip, path) == self.git.blob_id(remote_tip, path):
                continue
            if is_record_path(path):
                record_paths.append(path)
            elif self.git.blob_id(local_tip, path) is None:
                self._take_remote(path, remote_tip)
            else:
                logger.warning("Both sides changed %s; keeping the local copy", path)

        merges = self._resolve_records(record_paths, base, local_tip, remote_tip)

        # Every discarded value reaches the attic before any merged record is written
        for merge in merges:
            if merge.outcome is None:
                continue
            for entry in merge.outcome.attic_entries:
                if self.attic.append(entry):
                    result.attic_entries_written += 1

        store = self.store
        for merge in merges:
            if merge.take_remote:
                self._take_remote(merge.path, remote_tip)
                result.pulled += 1
            elif merge.outcome is not None:
                store.write(merge.outcome.merged)
                result.pulled += 1
                if merge.outcome.has_conflicts:
                    result.conflicts_resolved += 1

        self._commit_merge(local_tip, remote_tip, len(merges))

    def _resolve_records(
        self,
        paths: list[str],
        base: str | None,
        local_tip: str,
        remote_tip: str,
    ) -> list[_RecordMerge]:
        """Resolve records changed on both sides, in parallel, returned in path order."""
        if not paths:
            return []

        merges: dict[str, _RecordMerge] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures: dict[Future[_RecordMerge], str] = {
                executor.submit(self._resolve_record, path, base, local_tip, remote_tip): path
                for path in paths
            }
            for future in as_completed(futures):
                merges[futures[future]] = future.result()
        return [merges[path] for path in paths]

    def _parse_side(self, commit: str | None, path: str) -> Issue | None:
        if commit is None:
            return None
        text = self.git.show_file(commit, path)
        if text is None:
            return None
        try:
            return parse_issue_text(text, source=f"{commit[:8]}:{path}")
        except IssueParseError as e:
            logger.warning("Unparseable record %s at %s: %s", path, commit[:8], e)
            return None

    def _resolve_record(
        self,
        path: str,
        base: str | None,
        local_tip: str,
        remote_tip: str,
    ) -> _RecordMerge:
        record_id = record_id_from_path(path)
        merge = _RecordMerge(path=path, record_id=record_id)
        local = self._parse_side(local_tip, path)
        remote = self._parse_side(remote_tip, path)

        if local is None and remote is None:
            return merge
        if local is None:
            if self.git.blob_id(local_tip, path) is not None:
                logger.warning("Local copy of %s is unreadable; taking the remote copy", record_id)
            else:
                logger.warning("%s was deleted locally but changed remotely; keeping it", record_id)
            merge.take_remote = True
            return merge
        if remote is None:
            logger.warning("%s was deleted or unreadable remotely; keeping local copy", record_id)
            return merge

        ancestor = self._parse_side(base, path)
        merge.outcome = self.resolver.resolve(local, remote, ancestor, local_tip, remote_tip)
        return merge

    def _take_remote(self, path: str, remote_tip: str) -> None:
        target = self.worktrees.path / path
        content = self.git.show_file(remote_tip, path)
        try:
            if content is None:
                target.unlink(missing_ok=True)
                return
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise TbdError(
                f"Failed to update {path} from {self.remote}/{self.branch}: {e}",
                operation="take_remote",
                record_id=record_id_from_path(path) if is_record_path(path) else None,
            ) from e

    def _commit_merge(self, local_tip: str, remote_tip: str, merged_records: int) -> str:
        self.worktree_git.run(["add", "-A"])
        tree = self.worktree_git.run(["write-tree"])
        message = (
            f"tbd sync: merge {self.remote}/{self.branch} "
            f"({merged_records} record{'s' if merged_records != 1 else ''} merged)"
        )
        commit = self.worktree_git.run(
            ["commit-tree", tree, "-p", local_tip, "-p", remote_tip, "-m", message]
        )
        self.worktree_git.run(["update-ref", "-m", message, self.branch_ref, commit, local_tip])
        self.worktrees.record_tip()
        logger.info("Created merge commit %s", commit[:8])
        return commit

    def _push(self, remote_tip: str | None, result: SyncResult) -> str | None:
        """
        Push the local sync branch.

        On a rejected push the remote is fetched and reconciled once more
        before a second and final attempt.

        Returns:
            The pushed commit, or None if there was nothing to push
        """
        local_tip = self._local_tip()
        if local_tip is None or not self._has_unpushed(local_tip, remote_tip):
            return None

        pushed = len(self._record_changes(remote_tip, local_tip))
        try:
            self._push_once()
        except RejectedPushError:
            logger.warning("Push rejected: remote %s advanced; pulling again", self.branch)
            result.push_retried = True
            remote_tip = self._fetch()
            self._reconcile(remote_tip, result)
            local_tip = self._local_tip()
            if local_tip is None or not self._has_unpushed(local_tip, remote_tip):
                return None
            pushed = len(self._record_changes(remote_tip, local_tip))
            self._push_once()

        result.pushed = pushed
        logger.info("Pushed %s to %s (%d record(s))", self.branch, self.remote, pushed)
        return local_tip

    def _has_unpushed(self, local_tip: str, remote_tip: str | None) -> bool:
        if remote_tip is None:
            return True
        if local_tip == remote_tip:
            return False
        return not self.git.is_ancestor(local_tip, remote_tip)

    def _push_once(self) -> None:
        def attempt() -> None:
            try:
                self.git.run_network(
                    ["push", "--quiet", self.remote, f"{self.branch_ref}:{self.branch_ref}"]
                )
            except GitError as e:
                raise network_error_from(e, "push") from e

        retry_transient(attempt, self.retry_policy, "push", sleep=self._sleep)

