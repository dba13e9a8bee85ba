"""
Unit tests for configuration loader.

Tests multi-layer config merging, environment variable overrides,
.env loading and caching.
"""

import os
from pathlib import Path

import pytest

from tbd.core.config import ConfigError, TbdConfig, clear_cache, load_config
from tbd.core.config.env import load_layered_env, user_env_path
from tbd.core.config.loader import (
    apply_env_overrides,
    deep_merge,
    get_default_config,
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    load_yaml_file,
)

# ==============================================================================
# Helper Functions Tests
# ==============================================================================


class TestDeepMerge:
    """Test the deep_merge helper function."""

    def test_nested_merge(self):
        base = {"sync": {"branch": "tbd-sync", "remote": "origin"}}
        override = {"sync": {"remote": "upstream"}, "display": {"id_prefix": "proj"}}
        assert deep_merge(base, override) == {
            "sync": {"branch": "tbd-sync", "remote": "upstream"},
            "display": {"id_prefix": "proj"},
        }

    def test_does_not_mutate_base(self):
        base = {"sync": {"branch": "a"}}
        deep_merge(base, {"sync": {"branch": "b"}})
        assert base == {"sync": {"branch": "a"}}

    def test_override_replaces_non_dict(self):
        assert deep_merge({"a": [1, 2]}, {"a": [3]}) == {"a": [3]}


class TestPaths:
    """Test config path helpers."""

    def test_xdg_config_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert get_xdg_config_home() == tmp_path
        assert get_user_config_path() == tmp_path / "tbd" / "config.yml"
        assert user_env_path() == tmp_path / "tbd" / ".env"

    def test_xdg_default(self, monkeypatch):
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        assert get_xdg_config_home() == Path.home() / ".config"

    def test_project_config_path(self, tmp_path):
        assert get_project_config_path(tmp_path) == tmp_path / ".tbd" / "config.yml"


class TestLoadYamlFile:
    """Test load_yaml_file."""

    def test_missing(self, tmp_path):
        assert load_yaml_file(tmp_path / "nope.yml") is None

    def test_empty(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("")
        assert load_yaml_file(path) == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("sync: [unclosed\n")
        assert load_yaml_file(path) is None

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- a\n- b\n")
        assert load_yaml_file(path) is None


class TestEnvOverrides:
    """Test apply_env_overrides."""

    def test_branch_and_remote(self, monkeypatch):
        monkeypatch.setenv("TBD_SYNC_BRANCH", "issues")
        monkeypatch.setenv("TBD_SYNC_REMOTE", "upstream")
        result = apply_env_overrides(get_default_config())
        assert result["sync"]["branch"] == "issues"
        assert result["sync"]["remote"] == "upstream"

    def test_numeric(self, monkeypatch):
        monkeypatch.setenv("TBD_SYNC_MAX_ATTEMPTS", "7")
        monkeypatch.setenv("TBD_SYNC_TIMEOUT", "12.5")
        result = apply_env_overrides(get_default_config())
        assert result["sync"]["max_attempts"] == 7
        assert result["sync"]["network_timeout_seconds"] == 12.5

    def test_invalid_number_ignored(self, monkeypatch):
        monkeypatch.setenv("TBD_SYNC_MAX_ATTEMPTS", "lots")
        result = apply_env_overrides(get_default_config())
        assert result["sync"]["max_attempts"] == 4


# ==============================================================================
# load_config Tests
# ==============================================================================


class TestLoadConfig:
    """Test the layered load_config."""

    def test_defaults(self, tmp_path):
        config = load_config(tmp_path)
        assert config == TbdConfig()
        assert config.sync.branch == "tbd-sync"
        assert config.sync.remote == "origin"

    def test_precedence(self, tmp_path, isolated_config, monkeypatch):
        """env > project > user > defaults"""
        user_config = isolated_config / "tbd" / "config.yml"
        user_config.parent.mkdir(parents=True)
        user_config.write_text(
            "sync:\n  branch: user-branch\n  remote: user-remote\n  max_attempts: 2\n"
        )
        project_config = tmp_path / ".tbd" / "config.yml"
        project_config.parent.mkdir(parents=True)
        project_config.write_text("sync:\n  remote: project-remote\n  max_attempts: 3\n")
        monkeypatch.setenv("TBD_SYNC_MAX_ATTEMPTS", "5")

        config = load_config(tmp_path, use_cache=False)

        assert config.sync.branch == "user-branch"
        assert config.sync.remote == "project-remote"
        assert config.sync.max_attempts == 5

    def test_unknown_sections_ignored(self, tmp_path):
        project_config = tmp_path / ".tbd" / "config.yml"
        project_config.parent.mkdir(parents=True)
        project_config.write_text("future_feature:\n  enabled: true\n")
        assert load_config(tmp_path) == TbdConfig()

    def test_invalid_value(self, tmp_path):
        project_config = tmp_path / ".tbd" / "config.yml"
        project_config.parent.mkdir(parents=True)
        project_config.write_text("sync:\n  max_attempts: 0\n")
        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_cached(self, tmp_path):
        first = load_config(tmp_path)
        project_config = tmp_path / ".tbd" / "config.yml"
        project_config.parent.mkdir(parents=True)
        project_config.write_text("sync:\n  branch: changed\n")

        assert load_config(tmp_path) is first
        clear_cache()
        assert load_config(tmp_path).sync.branch == "changed"


# ==============================================================================
# .env Tests
# ==============================================================================


class TestLayeredEnv:
    """Test load_layered_env."""

    def test_project_overrides_user(self, tmp_path, isolated_config):
        user_env = isolated_config / "tbd" / ".env"
        user_env.parent.mkdir(parents=True)
        user_env.write_text("TBD_SYNC_REMOTE=user\nTBD_SYNC_BRANCH=user-branch\n")
        (tmp_path / ".env").write_text("TBD_SYNC_REMOTE=project\n")
        (tmp_path / ".env.local").write_text("TBD_SYNC_REMOTE=local\n")

        applied = load_layered_env(project_dir=tmp_path)

        assert applied == {"TBD_SYNC_REMOTE": "local", "TBD_SYNC_BRANCH": "user-branch"}
        assert os.environ["TBD_SYNC_REMOTE"] == "local"

    def test_shell_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TBD_SYNC_REMOTE", "shell")
        (tmp_path / ".env").write_text("TBD_SYNC_REMOTE=project\n")

        assert load_layered_env(project_dir=tmp_path) == {}
        assert os.environ["TBD_SYNC_REMOTE"] == "shell"

    def test_feeds_load_config(self, tmp_path):
        (tmp_path / ".env").write_text("TBD_SYNC_BRANCH=from-dotenv\n")
        load_layered_env(project_dir=tmp_path)
        assert load_config(tmp_path, use_cache=False).sync.branch == "from-dotenv"
