"""
Data models for issue records.

An issue is the unit of synchronization. Each record is stored as one
Markdown file with YAML frontmatter on the sync branch. Fields the engine
does not know about are kept on the model (``extra="allow"``) so records
written by newer versions of tbd survive a round trip unchanged.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current time in UTC with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


class IssueKind(str, Enum):
    """Kind of work an issue describes."""

    BUG = "bug"
    FEATURE = "feature"
    TASK = "task"
    EPIC = "epic"
    CHORE = "chore"


class IssueStatus(str, Enum):
    """Workflow status of an issue."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DEFERRED = "deferred"
    CLOSED = "closed"


class DependencyType(str, Enum):
    """Relationship type between two issues."""

    BLOCKS = "blocks"


class Dependency(BaseModel):
    """A directed dependency on another issue."""

    type: DependencyType = Field(
        default=DependencyType.BLOCKS,
        description="Relationship type",
    )
    target: str = Field(description="Internal id of the issue this one points at")


class Issue(BaseModel):
    """
    A single issue record.

    ``version`` counts saves: a record at version ``v`` was produced by ``v``
    sequential edits since creation. ``id`` and ``type`` never change once
    assigned.

    Example:
        >>> issue = Issue(id=generate_issue_id(), title="Fix login")
        >>> issue.status
        <IssueStatus.OPEN: 'open'>
    """

    model_config = ConfigDict(extra="allow", use_enum_values=False)

    # Identity
    type: Literal["is"] = Field(default="is", description="Entity type tag")
    id: str = Field(description="Internal id: 'is-' plus a lowercase ULID")
    short_id: str | None = Field(
        default=None,
        description="Short base36 code used for display ids",
    )
    version: int = Field(default=0, ge=0, description="Number of saves so far")

    # Content
    title: str = Field(min_length=1, description="One-line summary")
    description: str = Field(default="", description="Markdown body")
    notes: str = Field(default="", description="Working notes")

    # Classification
    kind: IssueKind = Field(default=IssueKind.TASK)
    status: IssueStatus = Field(default=IssueStatus.OPEN)
    priority: int = Field(default=2, ge=0, le=4, description="0 is highest")
    assignee: str | None = Field(default=None)
    labels: list[str] = Field(default_factory=list)
    dependencies: list[Dependency] = Field(default_factory=list)

    # Hierarchy and scheduling
    parent_id: str | None = Field(default=None)
    due_date: str | None = Field(default=None)
    deferred_until: str | None = Field(default=None)

    # Provenance and timestamps
    created_by: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    closed_at: datetime | None = Field(default=None)
    close_reason: str | None = Field(default=None)

    # Forward compatibility
    extensions: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not value.startswith("is-"):
            raise ValueError(f"issue id must start with 'is-': {value!r}")
        return value

    @field_validator("created_at", "updated_at", "closed_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("due_date", "deferred_until", mode="before")
    @classmethod
    def _date_as_string(cls, value: Any) -> Any:
        # YAML loads bare dates as date objects
        if value is not None and not isinstance(value, str):
            return value.isoformat()
        return value

    def display_id(self, prefix: str) -> str:
        """Human-facing id, e.g. ``proj-a1b2``."""
        if self.short_id:
            return f"{prefix}-{self.short_id}"
        return self.id

    def field_values(self) -> dict[str, Any]:
        """All fields, including unknown pass-through keys, as plain values."""
        return self.model_dump(mode="json")
