"""
Field-level three-way merge of issue records.

Given the local version ``L``, the remote version ``R`` and their common
ancestor ``A`` (or none when the record was created on both sides), every
field is merged independently:

1. If only one side changed the field since ``A``, that side's value wins.
2. If both sides changed it to different values, the winner is the side with
   the higher ``version``; on a tie the later ``updated_at``; on a further
   tie the side whose source identifier sorts first.
3. Every value discarded under rule 2 becomes one attic entry.

List and map fields (labels, dependencies, extensions) are compared as
whole values. The merged record gets ``version = max(L, R) + 1`` and the
later of the two ``updated_at`` values, so two clones merging the same pair
of commits produce the same record.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tbd.core.attic.models import AtticContext, AtticEntry, ResolutionRule
from tbd.core.issues.models import Issue, utc_now

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = frozenset({"id", "type"})
BOOKKEEPING_FIELDS = frozenset({"version", "updated_at"})


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING: Any = _Missing()


@dataclass
class MergeOutcome:
    """Merged record plus the attic entries for every discarded value."""

    merged: Issue
    attic_entries: list[AtticEntry] = field(default_factory=list)
    conflicted_fields: list[str] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicted_fields)


@dataclass(frozen=True)
class _Side:
    name: str
    issue: Issue
    source: str


class ConflictResolver:
    """
    Computes deterministic field-level merges.

    The resolver holds no state between calls and is safe to use from
    several threads at once.

    Example:
        >>> resolver = ConflictResolver()
        >>> outcome = resolver.resolve(local, remote, ancestor, "3f9a0c1", "8b2e4d7")
        >>> outcome.merged.version
        5
        >>> [e.field for e in outcome.attic_entries]
        ['priority']
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    def pick_winner(
        self,
        local: Issue,
        remote: Issue,
        local_source: str,
        remote_source: str,
    ) -> tuple[str, ResolutionRule]:
        """
        Decide which side wins two-sided field conflicts.

        Returns:
            ("local" or "remote", the rule that decided)
        """
        if local.version != remote.version:
            winner = "local" if local.version > remote.version else "remote"
            return winner, ResolutionRule.VERSION
        if local.updated_at != remote.updated_at:
            winner = "local" if local.updated_at > remote.updated_at else "remote"
            return winner, ResolutionRule.UPDATED_AT
        winner = "local" if local_source <= remote_source else "remote"
        return winner, ResolutionRule.SOURCE_ID

    def resolve(
        self,
        local: Issue,
        remote: Issue,
        ancestor: Issue | None,
        local_source: str,
        remote_source: str,
    ) -> MergeOutcome:
        """
        Merge two divergent versions of one record.

        Args:
            local: The local version
            remote: The remote version
            ancestor: Version at the merge base, or None if the record did
                not exist there
            local_source: Identifier of the local side (sync branch tip SHA)
            remote_source: Identifier of the remote side

        Returns:
            MergeOutcome with the merged record and attic entries
        """
        if local.id != remote.id:
            raise ValueError(f"Cannot merge different records: {local.id} and {remote.id}")

        local_values = local.field_values()
        remote_values = remote.field_values()
        base_values = ancestor.field_values() if ancestor is not None else None

        names = set(local_values) | set(remote_values)
        if base_values is not None:
            names |= set(base_values)
        names -= IDENTITY_FIELDS | BOOKKEEPING_FIELDS

        winner_name, rule = self.pick_winner(local, remote, local_source, remote_source)
        sides = {
            "local": _Side("local", local, local_source),
            "remote": _Side("remote", remote, remote_source),
        }
        winner = sides[winner_name]
        loser = sides["remote" if winner_name == "local" else "local"]
        values = {"local": local_values, "remote": remote_values}

        merged = dict(local_values)
        entries: list[AtticEntry] = []
        conflicted: list[str] = []
        timestamp = self._clock()

        for name in sorted(names):
            local_value = local_values.get(name, MISSING)
            remote_value = remote_values.get(name, MISSING)
            base_value = MISSING if base_values is None else base_values.get(name, MISSING)

            if local_value == remote_value:
                value = local_value
            elif base_values is not None and local_value == base_value:
                value = remote_value
            elif base_values is not None and remote_value == base_value:
                value = local_value
            else:
                value = values[winner.name].get(name, MISSING)
                lost = values[loser.name].get(name, MISSING)
                conflicted.append(name)
                entries.append(
                    self._attic_entry(local, remote, name, value, lost, winner, loser, rule,
                                      timestamp, has_ancestor=ancestor is not None)
                )

            if value is MISSING:
                merged.pop(name, None)
            else:
                merged[name] = value

        merged["version"] = max(local.version, remote.version) + 1
        merged["updated_at"] = max(local.updated_at, remote.updated_at)

        if conflicted:
            logger.warning(
                "Resolved %d conflicting field(s) on %s by %s: %s",
                len(conflicted),
                local.id,
                rule.value,
                ", ".join(conflicted),
            )

        return MergeOutcome(
            merged=Issue.model_validate(merged),
            attic_entries=entries,
            conflicted_fields=conflicted,
        )

    def _attic_entry(
        self,
        local: Issue,
        remote: Issue,
        name: str,
        kept: Any,
        lost: Any,
        winner: _Side,
        loser: _Side,
        rule: ResolutionRule,
        timestamp: datetime,
        has_ancestor: bool,
    ) -> AtticEntry:
        if has_ancestor:
            reason = f"both sides modified {name} since common ancestor"
        else:
            reason = f"{name} differs and the record has no common ancestor"
        context = (
            f"{reason}; kept {winner.name} value by {rule.value} rule "
            f"(local v{local.version}, remote v{remote.version})"
        )
        return AtticEntry(
            entity_id=local.id,
            timestamp=timestamp,
            field=name,
            lost_value=None if lost is MISSING else lost,
            winner_value=None if kept is MISSING else kept,
            winner_source=winner.source,
            loser_source=loser.source,
            rule=rule,
            context=context,
            versions=AtticContext(
                local_version=local.version,
                remote_version=remote.version,
                local_updated_at=local.updated_at,
                remote_updated_at=remote.updated_at,
            ),
        )
