"""
Tests for issue serialization.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from tbd.core.issues import (
    Dependency,
    Issue,
    IssueKind,
    IssueParseError,
    IssueStatus,
    parse_issue_text,
    serialize_issue,
)


def _full_issue() -> Issue:
    return Issue(
        id="is-01hx5zzkbkactav9wevgemmvrz",
        short_id="a1b2",
        version=3,
        title="Login fails on Safari",
        description="Steps to reproduce:\n\n1. Open Safari\n2. Log in",
        notes="Looks like a cookie issue.",
        kind=IssueKind.BUG,
        status=IssueStatus.IN_PROGRESS,
        priority=1,
        assignee="alice",
        labels=["frontend", "auth"],
        dependencies=[Dependency(target="is-01hx5zzkbkactav9wevgemmvr0")],
        parent_id="is-01hx5zzkbkactav9wevgemmvr1",
        due_date="2025-03-01",
        created_by="bob",
        created_at=datetime(2025, 1, 7, 10, 0, tzinfo=timezone.utc),
        updated_at=datetime(2025, 1, 8, 12, 30, 15, 123000, tzinfo=timezone.utc),
        extensions={"github": {"issue": 42, "synced": True}},
    )


class TestSerializeIssue:
    """Tests for the on-disk format."""

    def test_round_trip(self) -> None:
        """Parsing a serialized issue gives back an equal issue."""
        issue = _full_issue()
        assert parse_issue_text(serialize_issue(issue)) == issue

    def test_keys_sorted(self) -> None:
        """Frontmatter keys are written in sorted order."""
        text = serialize_issue(_full_issue())
        frontmatter = text.split("---")[1]
        keys = [
            line.split(":", 1)[0]
            for line in frontmatter.splitlines()
            if line and not line.startswith((" ", "-"))
        ]
        assert keys == sorted(keys)

    def test_body_layout(self) -> None:
        """Description is the body and notes follow a Notes heading."""
        text = serialize_issue(_full_issue())
        body = text.split("---", 2)[2]

        assert body.index("Steps to reproduce") < body.index("## Notes")
        assert body.index("## Notes") < body.index("cookie issue")
        assert "description:" not in text
        assert "notes:" not in text

    def test_unset_optional_fields_omitted(self) -> None:
        issue = Issue(id="is-01hx5zzkbkactav9wevgemmvrz", title="Minimal")
        text = serialize_issue(issue)

        assert "assignee" not in text
        assert "closed_at" not in text
        assert parse_issue_text(text) == issue

    def test_deterministic(self) -> None:
        """Serializing the same issue twice gives identical text."""
        issue = _full_issue()
        assert serialize_issue(issue) == serialize_issue(issue.model_copy())


class TestForwardCompatibility:
    """Unknown keys pass through unchanged."""

    def test_unknown_top_level_keys_preserved(self) -> None:
        issue = Issue.model_validate(
            {
                "id": "is-01hx5zzkbkactav9wevgemmvrz",
                "title": "From the future",
                "story_points": 5,
                "reviewers": ["carol", "dave"],
            }
        )
        parsed = parse_issue_text(serialize_issue(issue))

        assert parsed.model_extra == {"story_points": 5, "reviewers": ["carol", "dave"]}
        assert parsed == issue

    def test_extension_map_preserved(self) -> None:
        issue = _full_issue()
        parsed = parse_issue_text(serialize_issue(issue))
        assert parsed.extensions == {"github": {"issue": 42, "synced": True}}


class TestParseIssueText:
    """Tests for parse failures."""

    def test_missing_frontmatter(self) -> None:
        with pytest.raises(IssueParseError, match="Missing frontmatter"):
            parse_issue_text("Just some text")

    def test_invalid_yaml(self) -> None:
        with pytest.raises(IssueParseError):
            parse_issue_text("---\nid: [unclosed\n---\nbody\n")

    def test_invalid_fields(self) -> None:
        text = "---\nid: is-01hx5zzkbkactav9wevgemmvrz\ntitle: X\npriority: 9\n---\n"
        with pytest.raises(IssueParseError, match="Invalid issue"):
            parse_issue_text(text, source="x.md")

    def test_notes_only(self) -> None:
        text = (
            "---\nid: is-01hx5zzkbkactav9wevgemmvrz\ntitle: X\n---\n\n"
            "## Notes\n\nremember this\n"
        )
        issue = parse_issue_text(text)
        assert issue.description == ""
        assert issue.notes == "remember this"
