"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars

Config files are YAML: ``~/.config/tbd/config.yml`` for the user and
``.tbd/config.yml`` in the project.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from tbd.core.errors import TbdError
from tbd.utils.project import CONFIG_FILE

from .models import TbdConfig

logger = logging.getLogger(__name__)

# Loaded configs keyed by project directory
_config_cache: dict[Path, TbdConfig] = {}


class ConfigError(TbdError):
    """Raised when the merged configuration is invalid."""


def get_xdg_config_home() -> Path:
    """Get XDG config home directory (defaults to ~/.config)."""
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """Path to ~/.config/tbd/config.yml (or XDG equivalent)."""
    return get_xdg_config_home() / "tbd" / "config.yml"


def get_project_config_path(project_dir: Path | None = None) -> Path:
    """Path to .tbd/config.yml in the project root."""
    return (project_dir or Path.cwd()) / CONFIG_FILE


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Recursively merge two dictionaries; values in override win.

    Example:
        >>> deep_merge({"sync": {"branch": "a", "remote": "o"}}, {"sync": {"branch": "b"}})
        {'sync': {'branch': 'b', 'remote': 'o'}}
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_file(path: Path) -> dict[str, Any] | None:
    """
    Load a YAML mapping, returning None if the file is missing or unusable.
    """
    if not path.exists():
        return None
    try:
        data = yaml.safe_load(path.read_text())
    except (yaml.YAMLError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config at %s: top level must be a mapping", path)
        return None
    return data


def _set(config: dict[str, Any], section: str, key: str, value: Any) -> None:
    config.setdefault(section, {})
    config[section] = {**config[section], key: value}


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Supported env vars:
        TBD_SYNC_BRANCH - overrides sync.branch
        TBD_SYNC_REMOTE - overrides sync.remote
        TBD_SYNC_MAX_ATTEMPTS - overrides sync.max_attempts
        TBD_SYNC_TIMEOUT - overrides sync.network_timeout_seconds
    """
    result = config_dict.copy()

    if branch := os.environ.get("TBD_SYNC_BRANCH"):
        _set(result, "sync", "branch", branch)

    if remote := os.environ.get("TBD_SYNC_REMOTE"):
        _set(result, "sync", "remote", remote)

    if attempts_str := os.environ.get("TBD_SYNC_MAX_ATTEMPTS"):
        try:
            _set(result, "sync", "max_attempts", int(attempts_str))
        except ValueError:
            logger.warning("Invalid TBD_SYNC_MAX_ATTEMPTS value '%s', ignoring", attempts_str)

    if timeout_str := os.environ.get("TBD_SYNC_TIMEOUT"):
        try:
            _set(result, "sync", "network_timeout_seconds", float(timeout_str))
        except ValueError:
            logger.warning("Invalid TBD_SYNC_TIMEOUT value '%s', ignoring", timeout_str)

    return result


def get_default_config() -> dict[str, Any]:
    """Hardcoded defaults (the model defaults, spelled out for merging)."""
    return TbdConfig().model_dump()


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> TbdConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (TBD_*)
        2. Project config (.tbd/config.yml)
        3. User config (~/.config/tbd/config.yml)
        4. Hardcoded defaults

    Raises:
        ConfigError: If the merged config fails validation
    """
    key = (project_dir or Path.cwd()).resolve()
    if use_cache and key in _config_cache:
        return _config_cache[key]

    merged = get_default_config()

    if user_config := load_yaml_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_yaml_file(get_project_config_path(key)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    try:
        config = TbdConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid tbd configuration: {e}", operation="load_config") from e

    _config_cache[key] = config
    return config


def clear_cache() -> None:
    """Clear cached configuration (for tests or after config files change)."""
    _config_cache.clear()
