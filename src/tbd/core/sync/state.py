"""
Persistence of local sync metadata.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from tbd.core.errors import TbdError
from tbd.core.sync.models import SyncState
from tbd.utils.project import STATE_FILE

logger = logging.getLogger(__name__)


class LocalStateStore:
    """
    Reads and writes the local sync state file.

    The file is owned by the sync orchestrator: read at sync start and
    written at sync completion.
    """

    def __init__(self, project_dir: Path) -> None:
        self.path = Path(project_dir) / STATE_FILE

    def load(self) -> SyncState:
        """Load sync state from file or return default state."""
        if self.path.exists():
            try:
                return SyncState.model_validate_json(self.path.read_text())
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning("Failed to load sync state: %s", e)
        return SyncState()

    def save(self, state: SyncState) -> None:
        """Save sync state to file atomically."""
        temp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(state.model_dump_json(indent=2))
            temp_path.replace(self.path)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise TbdError(
                f"Failed to save sync state {self.path}: {e}",
                operation="save_state",
            ) from e

    def read_last_sync_at(self) -> datetime | None:
        return self.load().last_sync_at

    def write_last_sync_at(self, timestamp: datetime) -> None:
        state = self.load()
        state.last_sync_at = timestamp
        self.save(state)
