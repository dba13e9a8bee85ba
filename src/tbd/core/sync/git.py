"""
Thin subprocess wrapper around the git CLI used by the sync engine.

Local plumbing runs without a timeout. Network commands (fetch, push) run
with the configured network timeout; a timeout is reported as a GitError
whose stderr says so, which classifies as a transient failure.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from tbd.core.errors import GitError

logger = logging.getLogger(__name__)


class GitRunner:
    """
    Runs git commands in a fixed working directory.

    Example:
        >>> git = GitRunner(Path("."))
        >>> git.run(["rev-parse", "HEAD"])
        '3f9a0c1d...'
    """

    def __init__(self, cwd: Path, network_timeout: float = 60.0) -> None:
        self.cwd = Path(cwd)
        self.network_timeout = network_timeout

    def run(
        self,
        args: list[str],
        *,
        check: bool = True,
        input_data: str | None = None,
        timeout: float | None = None,
        strip: bool = True,
    ) -> str:
        """
        Run a git command and return its stdout.

        Args:
            args: Git command arguments (without "git" prefix).
            check: Whether to raise on non-zero exit code.
            input_data: Optional stdin data to pass to the command.
            timeout: Seconds before the command is killed (None for no limit).
            strip: Whether to strip surrounding whitespace from stdout.

        Raises:
            GitError: If the command fails and check=True.
        """
        cmd = ["git"] + args
        logger.debug("Running git command: %s (cwd=%s)", " ".join(cmd), self.cwd)

        try:
            result = subprocess.run(
                cmd,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=timeout,
                input=input_data,
            )
        except subprocess.TimeoutExpired as e:
            raise GitError(
                f"Git command timed out: {' '.join(cmd)}",
                command=cmd,
                stderr=f"timed out after {timeout} seconds",
            ) from e
        except FileNotFoundError as e:
            raise GitError("git not found in PATH", command=cmd) from e

        if check and result.returncode != 0:
            stderr = result.stderr.strip() if result.stderr else ""
            raise GitError(
                f"Git command failed: {' '.join(cmd)}: {stderr}",
                command=cmd,
                stderr=stderr,
            )

        stdout = result.stdout or ""
        return stdout.strip() if strip else stdout

    def run_network(self, args: list[str]) -> str:
        """Run a command that talks to a remote, with the network timeout."""
        return self.run(args, timeout=self.network_timeout)

    def succeeds(self, args: list[str]) -> bool:
        """Run a command and report whether it exited with status 0."""
        try:
            self.run(args)
            return True
        except GitError:
            return False

    def rev_parse(self, ref: str) -> str | None:
        """Resolve a ref to a commit SHA, or None if it does not exist."""
        try:
            return self.run(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])
        except GitError:
            return None

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return self.succeeds(["merge-base", "--is-ancestor", ancestor, descendant])

    def merge_base(self, a: str, b: str) -> str | None:
        try:
            return self.run(["merge-base", a, b]) or None
        except GitError:
            # Unrelated histories
            return None

    def show_file(self, commit: str, path: str) -> str | None:
        """Content of a file at a commit, or None if it does not exist there."""
        try:
            return self.run(["show", f"{commit}:{path}"], strip=False)
        except GitError:
            return None

    def blob_id(self, commit: str, path: str) -> str | None:
        """Blob SHA of a file at a commit, or None if absent."""
        try:
            return self.run(["rev-parse", "--verify", "--quiet", f"{commit}:{path}"]) or None
        except GitError:
            return None

    def changed_paths(self, base: str | None, commit: str, prefix: str) -> set[str]:
        """
        Paths under prefix that differ between base and commit.

        With no base every file under prefix in commit counts as changed.
        """
        if base is None:
            return self.list_files(commit, prefix)
        output = self.run(["diff", "--name-only", "--no-renames", base, commit, "--", prefix])
        return {line for line in output.splitlines() if line}

    def list_files(self, commit: str, prefix: str) -> set[str]:
        output = self.run(["ls-tree", "-r", "--name-only", commit, "--", prefix])
        return {line for line in output.splitlines() if line}

    def count_commits(self, range_spec: str) -> int:
        output = self.run(["rev-list", "--count", range_spec])
        return int(output or "0")

    def is_dirty(self) -> bool:
        return bool(self.run(["status", "--porcelain"]))
