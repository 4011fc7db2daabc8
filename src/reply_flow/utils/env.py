"""Locating and loading the project's .env file."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_FILE_VAR = "REPLY_FLOW_ENV_FILE"

_REPO_ROOT = Path(__file__).resolve().parents[3]


def resolve_env_path() -> Path:
    """``$REPLY_FLOW_ENV_FILE`` when set, else ``.env`` at the repository root."""

    override = os.environ.get(ENV_FILE_VAR)
    if override:
        return Path(override).expanduser()
    return _REPO_ROOT / ".env"


@lru_cache(maxsize=1)
def load_repo_dotenv() -> Optional[Path]:
    """Load backend settings from the env file once; returns the file used.

    Values already present in the process environment win.
    """

    env_path = resolve_env_path()
    if not env_path.is_file():
        return None
    load_dotenv(env_path, override=False)
    return env_path


__all__ = ["ENV_FILE_VAR", "load_repo_dotenv", "resolve_env_path"]
