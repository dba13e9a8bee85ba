"""
Append-only attic ledger.

Each entry is its own YAML file under ``<attic_dir>/<entity_id>/``::

    20250107T100000123456Z_priority_3f9a0c1d2e4b5a69.yml

The name starts with the resolution timestamp so a directory listing is
already in timestamp order, and ends with the entry digest so appending the
same discarded value twice is a no-op. Files are created exclusively and
never rewritten. Because every entry is a separate file, attic entries made
in different clones never collide when the sync branch is merged.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from pathlib import Path

import yaml
from pydantic import ValidationError

from tbd.core.attic.models import AtticEntry
from tbd.core.errors import TbdError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class AtticWriteError(TbdError):
    """Raised when an attic entry cannot be persisted."""


class AtticView:
    """
    Lazy, restartable view over attic entries.

    Iterating reads files on demand; iterating again starts over and picks
    up entries appended in between.
    """

    def __init__(self, ledger: AtticLedger, entity_id: str | None = None) -> None:
        self._ledger = ledger
        self._entity_id = entity_id

    def __iter__(self) -> Iterator[AtticEntry]:
        for path in self._ledger._entry_paths(self._entity_id):
            entry = self._ledger._read(path)
            if entry is not None:
                yield entry

    def __len__(self) -> int:
        return len(self._ledger._entry_paths(self._entity_id))


class AtticLedger:
    """
    Durable store of values displaced by conflict resolution.

    There is no update or delete operation.

    Example:
        >>> ledger = AtticLedger(worktree / ".tbd" / "data-sync" / "attic")
        >>> ledger.append(entry)
        True
        >>> [e.field for e in ledger.list_for(entry.entity_id)]
        ['priority']
    """

    def __init__(self, attic_dir: Path) -> None:
        self.attic_dir = Path(attic_dir)

    def _entry_name(self, entry: AtticEntry) -> str:
        stamp = entry.timestamp.strftime("%Y%m%dT%H%M%S%fZ")
        field = _UNSAFE_CHARS.sub("-", entry.field)
        return f"{stamp}_{field}_{entry.digest()}.yml"

    def contains(self, entry: AtticEntry) -> bool:
        """Whether an entry with the same digest was already appended."""
        entity_dir = self.attic_dir / entry.entity_id
        return any(entity_dir.glob(f"*_{entry.digest()}.yml"))

    def append(self, entry: AtticEntry) -> bool:
        """
        Persist an entry.

        Returns:
            True if the entry was written, False if it was already present

        Raises:
            AtticWriteError: On any I/O failure
        """
        if self.contains(entry):
            logger.debug("Attic entry for %s.%s already recorded", entry.entity_id, entry.field)
            return False

        entity_dir = self.attic_dir / entry.entity_id
        path = entity_dir / self._entry_name(entry)
        content = yaml.safe_dump(
            entry.model_dump(mode="json"),
            sort_keys=True,
            allow_unicode=True,
            default_flow_style=False,
        )
        try:
            entity_dir.mkdir(parents=True, exist_ok=True)
            with path.open("x", encoding="utf-8") as f:
                f.write(content)
        except FileExistsError:
            return False
        except OSError as e:
            raise AtticWriteError(
                f"Failed to write attic entry {path}: {e}",
                operation="attic_append",
                record_id=entry.entity_id,
            ) from e

        logger.info(
            "Attic: saved lost %s value for %s (%s)", entry.field, entry.entity_id, entry.rule.value
        )
        return True

    def list_for(self, entity_id: str) -> AtticView:
        """Entries for one record, ordered by timestamp."""
        return AtticView(self, entity_id)

    def list_all(self) -> AtticView:
        """Entries for every record, ordered by timestamp."""
        return AtticView(self)

    def _entry_paths(self, entity_id: str | None) -> list[Path]:
        if not self.attic_dir.exists():
            return []
        if entity_id is not None:
            paths = list((self.attic_dir / entity_id).glob("*.yml"))
        else:
            paths = list(self.attic_dir.glob("*/*.yml"))
        # File names start with the timestamp
        return sorted(paths, key=lambda p: (p.name, p.parent.name))

    def _read(self, path: Path) -> AtticEntry | None:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            return AtticEntry.model_validate(data)
        except FileNotFoundError:
            return None
        except (yaml.YAMLError, ValidationError) as e:
            logger.warning("Skipping unreadable attic entry %s: %s", path, e)
            return None
