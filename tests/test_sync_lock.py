"""
Tests for the repository-scoped sync lock.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from tbd.core.sync import SyncInProgressError, SyncLock


class TestSyncLock:
    """Tests for SyncLock."""

    def test_acquire_and_release(self, tmp_path: Path) -> None:
        lock = SyncLock(tmp_path)

        with lock:
            assert lock.is_locked
        assert not lock.is_locked

    def test_contention_raises(self, tmp_path: Path) -> None:
        """A second holder fails immediately instead of waiting."""
        first = SyncLock(tmp_path)
        second = SyncLock(tmp_path)

        with first:
            with pytest.raises(SyncInProgressError) as exc_info:
                second.acquire()
            assert exc_info.value.operation == "acquire_lock"

    def test_reacquire_after_release(self, tmp_path: Path) -> None:
        first = SyncLock(tmp_path)
        second = SyncLock(tmp_path)

        with first:
            pass
        with second:
            assert second.is_locked

    def test_release_when_not_held(self, tmp_path: Path) -> None:
        SyncLock(tmp_path).release()
