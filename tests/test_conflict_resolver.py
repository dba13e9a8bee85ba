"""
Tests for the field-level three-way merge.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tbd.core.attic import ResolutionRule
from tbd.core.issues import Dependency, Issue, IssueStatus
from tbd.core.sync import ConflictResolver

ISSUE_ID = "is-01hx5zzkbkactav9wevgemmvrz"
T0 = datetime(2025, 1, 7, 10, 0, tzinfo=timezone.utc)
RESOLVED_AT = datetime(2025, 1, 7, 12, 0, tzinfo=timezone.utc)

LOCAL_SHA = "b" * 40
REMOTE_SHA = "a" * 40


def _base(**fields: object) -> Issue:
    defaults: dict[str, object] = {
        "id": ISSUE_ID,
        "title": "Login fails on Safari",
        "priority": 2,
        "version": 3,
        "created_at": T0,
        "updated_at": T0,
    }
    defaults.update(fields)
    return Issue(**defaults)


def _edit(issue: Issue, minutes: int, versions: int = 1, **fields: object) -> Issue:
    return issue.model_copy(
        update={
            **fields,
            "version": issue.version + versions,
            "updated_at": T0 + timedelta(minutes=minutes),
        }
    )


@pytest.fixture
def resolver() -> ConflictResolver:
    return ConflictResolver(clock=lambda: RESOLVED_AT)


class TestPickWinner:
    """Tests for the winner tie-break chain."""

    def test_higher_version_wins(self, resolver: ConflictResolver) -> None:
        local = _base(version=5, updated_at=T0)
        remote = _base(version=4, updated_at=T0 + timedelta(hours=1))
        assert resolver.pick_winner(local, remote, LOCAL_SHA, REMOTE_SHA) == (
            "local",
            ResolutionRule.VERSION,
        )

    def test_later_updated_at_breaks_version_tie(self, resolver: ConflictResolver) -> None:
        local = _base(version=4, updated_at=T0)
        remote = _base(version=4, updated_at=T0 + timedelta(seconds=1))
        assert resolver.pick_winner(local, remote, LOCAL_SHA, REMOTE_SHA) == (
            "remote",
            ResolutionRule.UPDATED_AT,
        )

    def test_source_id_breaks_full_tie(self, resolver: ConflictResolver) -> None:
        local = _base()
        remote = _base()
        assert resolver.pick_winner(local, remote, LOCAL_SHA, REMOTE_SHA) == (
            "remote",
            ResolutionRule.SOURCE_ID,
        )
        assert resolver.pick_winner(local, remote, REMOTE_SHA, LOCAL_SHA) == (
            "local",
            ResolutionRule.SOURCE_ID,
        )


class TestResolve:
    """Tests for merging two divergent records."""

    def test_same_field_conflict(self, resolver: ConflictResolver) -> None:
        """Both sides change priority; the later edit wins and the other is kept in the attic."""
        ancestor = _base()
        local = _edit(ancestor, minutes=10, priority=1)
        remote = _edit(ancestor, minutes=5, priority=3)

        outcome = resolver.resolve(local, remote, ancestor, LOCAL_SHA, REMOTE_SHA)

        assert outcome.merged.priority == 1
        assert outcome.merged.version == 5
        assert outcome.merged.updated_at == local.updated_at
        assert outcome.conflicted_fields == ["priority"]

        (entry,) = outcome.attic_entries
        assert entry.entity_id == ISSUE_ID
        assert entry.field == "priority"
        assert entry.lost_value == 3
        assert entry.winner_value == 1
        assert entry.winner_source == LOCAL_SHA
        assert entry.loser_source == REMOTE_SHA
        assert entry.rule is ResolutionRule.UPDATED_AT
        assert entry.timestamp == RESOLVED_AT
        assert "since common ancestor" in entry.context
        assert entry.versions is not None
        assert entry.versions.local_version == 4

    def test_disjoint_fields_merge_cleanly(self, resolver: ConflictResolver) -> None:
        ancestor = _base()
        local = _edit(ancestor, minutes=1, status=IssueStatus.IN_PROGRESS)
        remote = _edit(ancestor, minutes=2, title="Login fails on Safari 17")

        outcome = resolver.resolve(local, remote, ancestor, LOCAL_SHA, REMOTE_SHA)

        assert outcome.merged.status is IssueStatus.IN_PROGRESS
        assert outcome.merged.title == "Login fails on Safari 17"
        assert outcome.attic_entries == []
        assert not outcome.has_conflicts

    def test_identical_changes_do_not_conflict(self, resolver: ConflictResolver) -> None:
        ancestor = _base()
        local = _edit(ancestor, minutes=1, priority=0)
        remote = _edit(ancestor, minutes=2, priority=0)

        outcome = resolver.resolve(local, remote, ancestor, LOCAL_SHA, REMOTE_SHA)

        assert outcome.merged.priority == 0
        assert outcome.attic_entries == []

    def test_version_is_max_plus_one(self, resolver: ConflictResolver) -> None:
        ancestor = _base()
        local = _edit(ancestor, minutes=1, versions=4, notes="local note")
        remote = _edit(ancestor, minutes=2, versions=1, assignee="sam")

        outcome = resolver.resolve(local, remote, ancestor, LOCAL_SHA, REMOTE_SHA)

        assert outcome.merged.version == max(local.version, remote.version) + 1
        assert outcome.merged.version > local.version
        assert outcome.merged.version > remote.version

    def test_lists_compared_as_whole_values(self, resolver: ConflictResolver) -> None:
        """Concurrent label changes are not unioned; one list wins whole."""
        ancestor = _base(labels=["bug"])
        local = _edit(ancestor, minutes=1, labels=["bug", "ios"])
        remote = _edit(ancestor, minutes=2, labels=["bug", "safari"])

        outcome = resolver.resolve(local, remote, ancestor, LOCAL_SHA, REMOTE_SHA)

        assert outcome.merged.labels == ["bug", "safari"]
        (entry,) = outcome.attic_entries
        assert entry.lost_value == ["bug", "ios"]

    def test_cleared_field_is_a_change(self, resolver: ConflictResolver) -> None:
        ancestor = _base(assignee="sam")
        local = _edit(ancestor, minutes=1, assignee=None)
        remote = _edit(ancestor, minutes=2, title="Renamed")

        outcome = resolver.resolve(local, remote, ancestor, LOCAL_SHA, REMOTE_SHA)

        assert outcome.merged.assignee is None
        assert outcome.merged.title == "Renamed"

    def test_nested_values_round_trip(self, resolver: ConflictResolver) -> None:
        target = "is-01hx5zzkbkactav9wevgemmvr0"
        ancestor = _base()
        local = _edit(ancestor, minutes=1, dependencies=[Dependency(target=target)])
        remote = _edit(ancestor, minutes=2, extensions={"github": {"issue": 7}})

        outcome = resolver.resolve(local, remote, ancestor, LOCAL_SHA, REMOTE_SHA)

        assert [d.target for d in outcome.merged.dependencies] == [target]
        assert outcome.merged.extensions == {"github": {"issue": 7}}

    def test_unknown_fields_merged(self, resolver: ConflictResolver) -> None:
        ancestor = _base()
        local = Issue.model_validate({**_edit(ancestor, minutes=1).field_values(), "estimate": 3})
        remote = _edit(ancestor, minutes=2, priority=4)

        outcome = resolver.resolve(local, remote, ancestor, LOCAL_SHA, REMOTE_SHA)

        assert outcome.merged.model_extra == {"estimate": 3}
        assert outcome.merged.priority == 4

    def test_no_common_ancestor(self, resolver: ConflictResolver) -> None:
        """Without an ancestor every differing field is a conflict."""
        local = _base(version=1, title="From clone A", updated_at=T0 + timedelta(minutes=1))
        remote = _base(version=2, title="From clone B", priority=0)

        outcome = resolver.resolve(local, remote, None, LOCAL_SHA, REMOTE_SHA)

        assert outcome.merged.title == "From clone B"
        assert outcome.merged.priority == 0
        assert sorted(outcome.conflicted_fields) == ["priority", "title"]
        assert all(e.rule is ResolutionRule.VERSION for e in outcome.attic_entries)
        assert all("no common ancestor" in e.context for e in outcome.attic_entries)

    def test_deterministic_across_sides(self, resolver: ConflictResolver) -> None:
        """Swapping local and remote yields the same merged record."""
        ancestor = _base()
        one = _edit(ancestor, minutes=3, priority=1, labels=["a"])
        two = _edit(ancestor, minutes=3, priority=3, title="Other")

        forward = resolver.resolve(one, two, ancestor, LOCAL_SHA, REMOTE_SHA)
        backward = resolver.resolve(two, one, ancestor, REMOTE_SHA, LOCAL_SHA)

        assert forward.merged == backward.merged
        assert [e.lost_value for e in forward.attic_entries] == [
            e.lost_value for e in backward.attic_entries
        ]

    def test_mismatched_ids_rejected(self, resolver: ConflictResolver) -> None:
        other = _base(id="is-01hx5zzkbkactav9wevgemmvr0")
        with pytest.raises(ValueError):
            resolver.resolve(_base(), other, None, LOCAL_SHA, REMOTE_SHA)
