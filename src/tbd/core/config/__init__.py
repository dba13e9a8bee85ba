"""
Configuration for tbd.

Example:
    >>> from tbd.core.config import load_config
    >>> config = load_config()
    >>> config.sync.remote
    'origin'
"""

from tbd.core.config.loader import ConfigError, clear_cache, load_config
from tbd.core.config.models import DisplayConfig, SyncConfig, TbdConfig

__all__ = [
    "ConfigError",
    "DisplayConfig",
    "SyncConfig",
    "TbdConfig",
    "clear_cache",
    "load_config",
]
