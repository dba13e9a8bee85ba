"""
Repository-scoped sync lock.

Only one mutating sync may run per repository. The lock is a file in the
repository's common git directory, so every worktree of the repository
shares it. Acquisition never waits: contention raises SyncInProgressError
and the caller decides whether to retry.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import TracebackType

from filelock import FileLock, Timeout

from tbd.core.sync.errors import SyncInProgressError

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "tbd-sync.lock"


class SyncLock:
    """
    Non-blocking exclusive lock keyed to a repository.

    Example:
        >>> with SyncLock(Path(".git")):
        ...     run_sync()
    """

    def __init__(self, git_common_dir: Path) -> None:
        self.path = Path(git_common_dir) / LOCK_FILE_NAME
        self._lock = FileLock(str(self.path), timeout=0)

    @property
    def is_locked(self) -> bool:
        return self._lock.is_locked

    def acquire(self) -> None:
        """
        Take the lock.

        Raises:
            SyncInProgressError: If another sync holds it
        """
        try:
            self._lock.acquire(timeout=0)
        except Timeout as e:
            raise SyncInProgressError(
                f"Another sync is already running for this repository (lock: {self.path})",
                operation="acquire_lock",
            ) from e
        logger.debug("Acquired sync lock %s", self.path)

    def release(self) -> None:
        if self._lock.is_locked:
            self._lock.release()
            logger.debug("Released sync lock %s", self.path)

    def __enter__(self) -> SyncLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
