"""
Tests for the local sync state file.
"""

from __future__ import annotations

import errno
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tbd.core.errors import TbdError
from tbd.core.sync import LocalStateStore, SyncState


class TestLocalStateStore:
    """Tests for LocalStateStore."""

    def test_defaults_when_missing(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path)
        assert store.load() == SyncState()
        assert store.read_last_sync_at() is None

    def test_write_and_read_last_sync(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path)
        when = datetime(2025, 1, 7, 10, 0, tzinfo=timezone.utc)

        store.write_last_sync_at(when)

        assert store.read_last_sync_at() == when
        assert store.path == tmp_path / ".tbd" / "cache" / "sync-state.json"

    def test_save_keeps_other_fields(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path)
        state = SyncState()
        state.mark_pushed("3f9a0c1")
        store.save(state)

        store.write_last_sync_at(datetime(2025, 1, 7, tzinfo=timezone.utc))

        assert store.load().last_push_sha == "3f9a0c1"

    def test_corrupt_file_ignored(self, tmp_path: Path) -> None:
        store = LocalStateStore(tmp_path)
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json")
        assert store.load() == SyncState()

    def test_write_failure_is_wrapped(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        store = LocalStateStore(tmp_path)

        def read_only(self, target):
            raise OSError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(Path, "replace", read_only)

        with pytest.raises(TbdError) as excinfo:
            store.save(SyncState())

        assert excinfo.value.operation == "save_state"
        assert "Permission denied" in str(excinfo.value)
        assert not store.path.with_suffix(".tmp").exists()
