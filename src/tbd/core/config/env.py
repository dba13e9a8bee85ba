"""Layered ``.env`` loading.

``TBD_*`` overrides (see ``loader.apply_env_overrides``) may come from the
shell or from ``.env`` files. Precedence, highest first:

  shell environment > project .env.local > project .env > user .env

Values already present in the process environment are never replaced, so
an exported variable always wins over a file.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

from dotenv import dotenv_values

logger = logging.getLogger(__name__)


def user_env_path() -> Path:
    """``$XDG_CONFIG_HOME/tbd/.env`` (``~/.config/tbd/.env`` by default)."""
    xdg_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(xdg_home) / "tbd" / ".env"


def _env_file_values(path: Path) -> dict[str, str]:
    if not path.is_file():
        return {}
    return {str(k): str(v) for k, v in dotenv_values(path).items() if k and v is not None}


def load_layered_env(
    *,
    project_dir: Path | None = None,
    env_files: Iterable[Path] | None = None,
) -> dict[str, str]:
    """Apply ``.env`` files to ``os.environ``.

    Args:
        project_dir: Directory holding the project ``.env`` files (defaults to cwd)
        env_files: Files in increasing precedence; defaults to the user file,
            then ``<project>/.env``, then ``<project>/.env.local``

    Returns:
        The variables that were set by this call
    """
    if env_files is None:
        base = project_dir or Path.cwd()
        env_files = [user_env_path(), base / ".env", base / ".env.local"]

    merged: dict[str, str] = {}
    for path in env_files:
        merged.update(_env_file_values(Path(path)))

    applied = {key: value for key, value in merged.items() if key not in os.environ}
    os.environ.update(applied)
    if applied:
        logger.debug("Loaded %d variable(s) from .env files", len(applied))
    return applied
