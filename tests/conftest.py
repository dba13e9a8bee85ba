"""
Pytest configuration and shared fixtures.

Provides real git repositories (a bare remote plus clones), isolated config
directories, and helpers for building issues.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

import pytest

from tbd.core.config import SyncConfig, TbdConfig, clear_cache
from tbd.core.issues import Issue, generate_issue_id
from tbd.core.sync import SyncOrchestrator

TBD_ENV_VARS = ("TBD_SYNC_BRANCH", "TBD_SYNC_REMOTE", "TBD_SYNC_MAX_ATTEMPTS", "TBD_SYNC_TIMEOUT")

# ==============================================================================
# Helpers
# ==============================================================================


def run_git(cwd: Path, *args: str) -> str:
    """Run a git command in cwd and return stripped stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def configure_identity(repo: Path) -> None:
    run_git(repo, "config", "user.email", "test@example.com")
    run_git(repo, "config", "user.name", "Test User")
    run_git(repo, "config", "commit.gpgsign", "false")


def make_clone(remote: Path, target: Path) -> Path:
    """Clone the bare remote and configure a committer identity."""
    subprocess.run(
        ["git", "clone", "--quiet", str(remote), str(target)],
        capture_output=True,
        check=True,
    )
    configure_identity(target)
    return target


def fast_config(**overrides: object) -> TbdConfig:
    """Config with no backoff delay, for tests."""
    sync = SyncConfig(backoff_initial_seconds=0.0, backoff_max_seconds=0.0, **overrides)
    return TbdConfig(sync=sync)


def new_issue(title: str = "Test issue", **fields: object) -> Issue:
    return Issue(id=generate_issue_id(), title=title, **fields)


# ==============================================================================
# Environment isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch):
    """Keep user config and TBD_* variables from leaking into tests."""
    xdg = tmp_path_factory.mktemp("xdg")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    for name in TBD_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_cache()
    yield xdg
    # load_layered_env writes to os.environ directly
    for name in TBD_ENV_VARS:
        os.environ.pop(name, None)
    clear_cache()


# ==============================================================================
# Repository fixtures
# ==============================================================================


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository with an initial commit."""
    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(["git", "init", "--quiet"], cwd=repo, capture_output=True, check=True)
    configure_identity(repo)

    (repo / "README.md").write_text("# Test Repo\n")
    run_git(repo, "add", "README.md")
    run_git(repo, "commit", "--quiet", "-m", "Initial commit")
    return repo


@pytest.fixture
def remote_repo(tmp_path: Path, git_repo: Path) -> Path:
    """A bare remote seeded from git_repo's main branch."""
    remote = tmp_path / "remote.git"
    subprocess.run(
        ["git", "init", "--bare", "--quiet", str(remote)],
        capture_output=True,
        check=True,
    )
    run_git(git_repo, "remote", "add", "origin", str(remote))
    run_git(git_repo, "push", "--quiet", "origin", "HEAD")
    return remote


@pytest.fixture
def clone_a(remote_repo: Path, git_repo: Path) -> Path:
    """First clone: the seeded repository itself."""
    return git_repo


@pytest.fixture
def orchestrator_a(clone_a: Path) -> SyncOrchestrator:
    return SyncOrchestrator(clone_a, config=fast_config())


@pytest.fixture
def clone_b(tmp_path: Path, remote_repo: Path, orchestrator_a: SyncOrchestrator) -> Path:
    """
    Second clone, made after clone A published the sync branch.

    Clone A runs one sync first so the remote already has the sync branch.
    """
    orchestrator_a.sync()
    return make_clone(remote_repo, tmp_path / "clone_b")


@pytest.fixture
def orchestrator_b(clone_b: Path) -> SyncOrchestrator:
    return SyncOrchestrator(clone_b, config=fast_config())
