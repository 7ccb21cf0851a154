"""
Harvest configuration (``harvest_config``).

The single runtime entry point is :func:`get_active_config`, which loads the
configuration once per process and caches it.  Tests swap configurations with
:func:`set_active_config` / :func:`reset_config`.
"""

from __future__ import annotations

import threading

from harvest_config.loader import load_config
from harvest_config.schema import (
    SYSTEM_ACTOR_ID,
    ApiConfig,
    BatchingConfig,
    DatabaseConfig,
    EngineConfig,
    LoggingConfig,
)

__all__ = [
    "ApiConfig",
    "BatchingConfig",
    "DatabaseConfig",
    "EngineConfig",
    "LoggingConfig",
    "SYSTEM_ACTOR_ID",
    "get_active_config",
    "load_config",
    "reset_config",
    "set_active_config",
]

_active: EngineConfig | None = None
_lock = threading.Lock()


def get_active_config() -> EngineConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _active
    with _lock:
        if _active is None:
            _active = load_config()
        return _active


def set_active_config(config: EngineConfig) -> None:
    """Install an explicit configuration (tests, embedding applications)."""
    global _active
    with _lock:
        _active = config


def reset_config() -> None:
    """Drop the cached configuration. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None
