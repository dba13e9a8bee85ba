"""
File-backed issue record store.

Each issue lives at ``<issues_dir>/<id>.md``. ``save`` implements the local
optimistic-concurrency guard: the caller must hand back the version it
loaded, and the stored version is then bumped by exactly one. ``write``
stores a record verbatim and is used only for merge output, whose version
has already been computed.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from tbd.core.errors import TbdError
from tbd.core.issues.models import Issue, utc_now
from tbd.core.issues.parser import IssueParseError, parse_issue_text, serialize_issue

logger = logging.getLogger(__name__)


class RecordNotFoundError(TbdError):
    """Raised when an issue record does not exist."""


class StaleWriteError(TbdError):
    """Raised when a save is based on an outdated version of the record."""

    def __init__(self, issue_id: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Stale write: record is at version {actual} but the edit is based on "
            f"version {expected}; reload and retry",
            operation="save",
            record_id=issue_id,
        )
        self.expected = expected
        self.actual = actual


class RecordStore:
    """
    Reads and writes issue records in a directory.

    Example:
        >>> store = RecordStore(worktree / ".tbd" / "data-sync" / "issues")
        >>> issue = store.save(Issue(id=generate_issue_id(), title="New"))
        >>> issue.version
        1
    """

    def __init__(self, issues_dir: Path) -> None:
        self.issues_dir = Path(issues_dir)

    def path_for(self, issue_id: str) -> Path:
        """Path of the file holding an issue."""
        return self.issues_dir / f"{issue_id}.md"

    def exists(self, issue_id: str) -> bool:
        return self.path_for(issue_id).exists()

    def load(self, issue_id: str) -> Issue:
        """
        Load an issue by internal id.

        Raises:
            RecordNotFoundError: If no record exists for the id
            IssueParseError: If the file is malformed
        """
        path = self.path_for(issue_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise RecordNotFoundError(
                f"Issue not found: {issue_id}", operation="load", record_id=issue_id
            ) from e
        return parse_issue_text(text, source=str(path))

    def _stored_version(self, issue_id: str) -> int:
        try:
            return self.load(issue_id).version
        except RecordNotFoundError:
            return 0

    def save(self, issue: Issue) -> Issue:
        """
        Save a local edit.

        The issue's ``version`` must equal the currently stored version (0 for
        a new record). The stored record gets ``version + 1`` and a fresh
        ``updated_at``.

        Returns:
            The record as stored

        Raises:
            StaleWriteError: If the record changed since it was loaded
        """
        stored_version = self._stored_version(issue.id)
        if issue.version != stored_version:
            raise StaleWriteError(issue.id, expected=issue.version, actual=stored_version)

        updated = issue.model_copy(
            update={"version": stored_version + 1, "updated_at": utc_now()}
        )
        self.write(updated)
        logger.debug("Saved %s at version %d", issue.id, updated.version)
        return updated

    def write(self, issue: Issue) -> Path:
        """Write a record verbatim, atomically replacing any existing file."""
        path = self.path_for(issue.id)
        path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            temp_path.write_text(serialize_issue(issue), encoding="utf-8")
            temp_path.replace(path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise TbdError(
                f"Failed to write issue file {path}: {e}",
                operation="write",
                record_id=issue.id,
            ) from e
        return path

    def delete(self, issue_id: str) -> None:
        """Remove a record. Missing records are ignored."""
        self.path_for(issue_id).unlink(missing_ok=True)

    def ids(self) -> list[str]:
        """Internal ids of all stored records, sorted."""
        if not self.issues_dir.exists():
            return []
        return sorted(p.stem for p in self.issues_dir.glob("is-*.md"))

    def __iter__(self) -> Iterator[Issue]:
        for issue_id in self.ids():
            try:
                yield self.load(issue_id)
            except IssueParseError as e:
                logger.warning("Skipping malformed issue file: %s", e)

    def list(self) -> list[Issue]:
        """All parseable records, sorted by id (creation order)."""
        return list(self)
