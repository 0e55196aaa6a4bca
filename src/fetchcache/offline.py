"""Sources for the process-wide offline state."""

from __future__ import annotations

import os
import threading
from typing import Protocol

OFFLINE_ENV_VAR = "FETCHCACHE_OFFLINE"
_TRUTHY = {"1", "true", "yes", "on"}


class OfflineState(Protocol):
    def is_offline(self) -> bool:  # pragma: no cover - structural contract
        ...


class OfflineFlag:
    """Offline state toggled programmatically."""

    def __init__(self, offline: bool = False) -> None:
        self._lock = threading.Lock()
        self._offline = offline

    def is_offline(self) -> bool:
        with self._lock:
            return self._offline

    def set_offline(self, offline: bool) -> None:
        with self._lock:
            self._offline = offline


class EnvironmentOffline:
    """Offline state read from an environment variable on every call."""

    def __init__(self, variable: str = OFFLINE_ENV_VAR) -> None:
        self.variable = variable

    def is_offline(self) -> bool:
        return os.environ.get(self.variable, "").strip().lower() in _TRUTHY


__all__ = ["EnvironmentOffline", "OFFLINE_ENV_VAR", "OfflineFlag", "OfflineState"]
