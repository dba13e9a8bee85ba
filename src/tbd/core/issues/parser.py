"""
Serialization of issues to and from Markdown with YAML frontmatter.

Layout of an issue file::

    ---
    created_at: '2025-01-07T10:00:00Z'
    id: is-01hx5zzkbkactav9wevgemmvrz
    ...
    ---
    Description text.

    ## Notes

    Working notes.

Frontmatter keys are sorted so files diff cleanly and serialize the same
way in every clone. Unknown keys are written back unchanged.
"""

from __future__ import annotations

from typing import Any

import frontmatter
import yaml
from pydantic import ValidationError

from tbd.core.issues.models import Issue

NOTES_HEADING = "## Notes"

# Known optional fields that are omitted from the file when unset
_OMIT_WHEN_NONE = {
    "short_id",
    "assignee",
    "parent_id",
    "due_date",
    "deferred_until",
    "created_by",
    "closed_at",
    "close_reason",
}


class IssueParseError(ValueError):
    """Raised when an issue file cannot be parsed."""


def serialize_issue(issue: Issue) -> str:
    """Render an issue as Markdown with sorted YAML frontmatter."""
    data = issue.model_dump(mode="json", exclude={"description", "notes"})
    metadata = {
        key: value
        for key, value in data.items()
        if not (key in _OMIT_WHEN_NONE and value is None)
    }

    body = issue.description.strip()
    notes = issue.notes.strip()
    if notes:
        body = f"{body}\n\n{NOTES_HEADING}\n\n{notes}" if body else f"{NOTES_HEADING}\n\n{notes}"

    post = frontmatter.Post(body)
    post.metadata = metadata
    return frontmatter.dumps(post, sort_keys=True) + "\n"


def _split_body(content: str) -> tuple[str, str]:
    lines = content.splitlines()
    for index, line in enumerate(lines):
        if line.strip() == NOTES_HEADING:
            description = "\n".join(lines[:index]).strip()
            notes = "\n".join(lines[index + 1 :]).strip()
            return description, notes
    return content.strip(), ""


def parse_issue_text(text: str, source: str = "<string>") -> Issue:
    """
    Parse issue file content.

    Args:
        text: Full file content
        source: Where the text came from, used in error messages

    Raises:
        IssueParseError: If the frontmatter or fields are invalid
    """
    try:
        post = frontmatter.loads(text)
    except yaml.YAMLError as e:
        raise IssueParseError(f"Invalid YAML frontmatter in {source}: {e}") from e

    metadata: dict[str, Any] = dict(post.metadata)
    if not metadata:
        raise IssueParseError(f"Missing frontmatter in {source}")

    description, notes = _split_body(post.content)
    metadata["description"] = description
    metadata["notes"] = notes

    try:
        return Issue.model_validate(metadata)
    except ValidationError as e:
        raise IssueParseError(f"Invalid issue in {source}: {e}") from e
