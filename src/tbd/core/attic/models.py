"""
Data models for the attic.

An attic entry records one field value that conflict resolution discarded.
Entries are written once and never changed.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResolutionRule(str, Enum):
    """Which tie-break decided the winner of a field conflict."""

    VERSION = "version"
    UPDATED_AT = "updated_at"
    SOURCE_ID = "source_id"


class AtticContext(BaseModel):
    """Versions and timestamps of both sides at resolution time."""

    local_version: int
    remote_version: int
    local_updated_at: datetime
    remote_updated_at: datetime


class AtticEntry(BaseModel):
    """
    A discarded field value.

    ``winner_source`` and ``loser_source`` identify the two sides of the
    merge (commit SHAs of the sync branch tips being reconciled).
    """

    model_config = ConfigDict(frozen=True)

    entity_id: str = Field(description="Internal id of the issue")
    timestamp: datetime = Field(description="When the conflict was resolved (UTC)")
    field: str = Field(description="Name of the conflicting field")
    lost_value: Any = Field(default=None, description="The value that was not kept")
    winner_value: Any = Field(default=None, description="The value that was kept")
    winner_source: str = Field(description="Identifier of the winning side")
    loser_source: str = Field(description="Identifier of the losing side")
    rule: ResolutionRule = Field(description="Tie-break that decided the winner")
    context: str = Field(default="", description="Human-readable explanation")
    versions: AtticContext | None = Field(default=None)

    def digest(self) -> str:
        """
        Content hash identifying the discarded value.

        Two entries describing the same loss (same record, field, value and
        sides) share a digest regardless of when they were produced.
        """
        identity = {
            "entity_id": self.entity_id,
            "field": self.field,
            "lost_value": self.lost_value,
            "winner_source": self.winner_source,
            "loser_source": self.loser_source,
            "local_version": self.versions.local_version if self.versions else None,
            "remote_version": self.versions.remote_version if self.versions else None,
        }
        encoded = json.dumps(identity, sort_keys=True, default=str)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:16]
