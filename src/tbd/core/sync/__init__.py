"""
Sync and conflict resolution for the issue branch.

Example:
    >>> from tbd.core.sync import SyncOrchestrator, SyncOptions
    >>> orchestrator = SyncOrchestrator(Path("."))
    >>> result = orchestrator.sync(SyncOptions(pull_only=True))
    >>> if result.conflicts_resolved:
    ...     print(f"Resolved conflicts on {result.conflicts_resolved} issues")
"""

from tbd.core.sync.errors import (
    GitFailureKind,
    NetworkFatalError,
    NetworkTransientError,
    RejectedPushError,
    SyncError,
    SyncInProgressError,
    classify_git_error,
)
from tbd.core.sync.lock import SyncLock
from tbd.core.sync.models import (
    SyncOptions,
    SyncPhase,
    SyncResult,
    SyncState,
    SyncStatusReport,
)
from tbd.core.sync.orchestrator import SyncOrchestrator
from tbd.core.sync.resolver import ConflictResolver, MergeOutcome
from tbd.core.sync.retry import RetryPolicy, retry_transient
from tbd.core.sync.state import LocalStateStore

__all__ = [
    "ConflictResolver",
    "GitFailureKind",
    "LocalStateStore",
    "MergeOutcome",
    "NetworkFatalError",
    "NetworkTransientError",
    "RejectedPushError",
    "RetryPolicy",
    "SyncError",
    "SyncInProgressError",
    "SyncLock",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncPhase",
    "SyncResult",
    "SyncState",
    "SyncStatusReport",
    "classify_git_error",
    "retry_transient",
]
