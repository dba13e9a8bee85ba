"""
Sync error taxonomy and classification of git failures.

Git reports network problems only through stderr text, so failures are
classified by matching well-known messages:

- transient: timeouts and connectivity problems, retried with backoff
- fatal: authentication failures and missing remotes, surfaced at once
- rejected: the remote moved during the sync (non-fast-forward push)
"""

from __future__ import annotations

import re
from enum import Enum

from tbd.core.errors import GitError, TbdError


class SyncError(TbdError):
    """Base exception for sync orchestration failures."""


class SyncInProgressError(SyncError):
    """Raised when another sync already holds the repository lock."""


class NetworkTransientError(GitError):
    """A network operation failed in a way that may succeed on retry."""


class NetworkFatalError(GitError):
    """A network operation failed and retrying will not help."""


class RejectedPushError(GitError):
    """The remote rejected a push because it advanced during the sync."""


class GitFailureKind(str, Enum):
    """Classification of a failed git invocation."""

    TRANSIENT = "transient"
    FATAL = "fatal"
    REJECTED = "rejected"
    OTHER = "other"


_REJECTED_PATTERNS = [
    r"\[rejected\]",
    r"non-fast-forward",
    r"fetch first",
    r"\[remote rejected\].*(cannot lock ref|incorrect old value)",
    r"failed to update ref",
]

_FATAL_PATTERNS = [
    r"authentication failed",
    r"permission denied",
    r"could not read username",
    r"invalid username or password",
    r"\b403\b",
    r"repository not found",
    r"does not appear to be a git repository",
    r"no such remote",
    r"could not read from remote repository",
]

_TRANSIENT_PATTERNS = [
    r"timed out",
    r"timeout",
    r"could not resolve host",
    r"connection (reset|refused|closed)",
    r"early eof",
    r"the remote end hung up unexpectedly",
    r"network is unreachable",
    r"temporary failure in name resolution",
    r"\b50[0-4]\b",
    r"rpc failed",
]


def _matches(patterns: list[str], text: str) -> bool:
    return any(re.search(pattern, text) for pattern in patterns)


def classify_git_error(stderr: str) -> GitFailureKind:
    """
    Classify git stderr output.

    Rejections are checked first, then transient patterns, then fatal ones.
    Git appends "Could not read from remote repository" to dropped
    connections as well as to authentication failures.
    """
    text = stderr.lower()
    if _matches(_REJECTED_PATTERNS, text):
        return GitFailureKind.REJECTED
    if _matches(_TRANSIENT_PATTERNS, text):
        return GitFailureKind.TRANSIENT
    if _matches(_FATAL_PATTERNS, text):
        return GitFailureKind.FATAL
    return GitFailureKind.OTHER


def network_error_from(error: GitError, operation: str) -> GitError:
    """
    Convert a failed network git call into the matching taxonomy error.

    Unrecognised failures are treated as fatal.
    """
    kind = classify_git_error(error.stderr)
    detail = error.stderr or error.message
    error_cls: type[GitError]
    if kind is GitFailureKind.TRANSIENT:
        error_cls = NetworkTransientError
    elif kind is GitFailureKind.REJECTED:
        error_cls = RejectedPushError
    else:
        error_cls = NetworkFatalError
    return error_cls(
        f"git {operation} failed: {detail}",
        command=error.command,
        stderr=error.stderr,
        operation=operation,
    )
