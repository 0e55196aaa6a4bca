"""Locations of the user-state and cache directories."""

from __future__ import annotations

import os
import platform
from pathlib import Path

APP_NAME = "fetchcache"
HOME_ENV_VAR = "FETCHCACHE_HOME"
CACHE_SUBDIR = "cache"


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def user_state_dir() -> Path:
    """Return the per-user state directory without creating it.

    ``$FETCHCACHE_HOME`` wins when set. On Linux/BSD the directory is
    ``$XDG_STATE_HOME/fetchcache`` (default ``~/.local/state/fetchcache``),
    elsewhere ``~/.fetchcache``.
    """

    override = os.environ.get(HOME_ENV_VAR, "")
    if override:
        return Path(override).expanduser()
    if _is_xdg_platform():
        base = os.environ.get("XDG_STATE_HOME", "")
        root = Path(base) if base else Path.home() / ".local" / "state"
        return root / APP_NAME
    return Path.home() / f".{APP_NAME}"


def default_cache_dir() -> Path:
    return user_state_dir() / CACHE_SUBDIR


__all__ = ["APP_NAME", "CACHE_SUBDIR", "HOME_ENV_VAR", "default_cache_dir", "user_state_dir"]
