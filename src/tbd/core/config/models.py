"""
Configuration data models for tbd.

These models define the structure of .tbd/config.yml and
~/.config/tbd/config.yml files, with validation and type safety via Pydantic.
"""

from pydantic import BaseModel, ConfigDict, Field


class SyncConfig(BaseModel):
    """
    Where and how issue data is synchronized.

    Network settings apply only to fetch and push.
    """
    branch: str = Field(
        default="tbd-sync",
        pattern=r"^[a-zA-Z0-9._/-]+$",
        description="Branch holding issue records"
    )
    remote: str = Field(
        default="origin",
        pattern=r"^[a-zA-Z0-9._-]+$",
        description="Remote the sync branch is pushed to and pulled from"
    )
    max_attempts: int = Field(
        default=4,
        ge=1,
        le=20,
        description="Attempts per network operation before giving up on transient errors"
    )
    backoff_initial_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Wait before the first retry"
    )
    backoff_max_seconds: float = Field(
        default=8.0,
        ge=0.0,
        description="Cap on any single retry wait"
    )
    network_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Timeout for a single fetch or push"
    )
    parallel_workers: int = Field(
        default=4,
        ge=1,
        description="Threads used to resolve conflicting records"
    )


class DisplayConfig(BaseModel):
    """How issues are shown to people."""
    id_prefix: str = Field(
        default="tbd",
        pattern=r"^[a-zA-Z][a-zA-Z0-9]*$",
        description="Prefix of display ids, e.g. 'proj' in 'proj-a1b2'"
    )


class TbdConfig(BaseModel):
    """
    Top-level tbd configuration.

    Loaded from defaults, user config, project config, and env vars.

    Example:
        >>> config = TbdConfig(sync=SyncConfig(remote="upstream"))
        >>> config.sync.branch
        'tbd-sync'
    """
    model_config = ConfigDict(extra="ignore")

    sync: SyncConfig = Field(
        default_factory=SyncConfig,
        description="Sync branch and network settings"
    )
    display: DisplayConfig = Field(
        default_factory=DisplayConfig,
        description="Display settings"
    )
