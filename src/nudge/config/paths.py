"""Centralized path management for Nudge.

All state (config, job store, logs) is stored under a single base directory.
The base directory can be overridden with the NUDGE_HOME environment variable.

Default location: ~/.nudge
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "NUDGE_HOME"


@lru_cache(maxsize=1)
def get_nudge_home() -> Path:
    """Get the base directory for all Nudge data.

    Resolution order:
    1. NUDGE_HOME environment variable (if set)
    2. ~/.nudge
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()
    return Path.home() / ".nudge"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_nudge_home() / "config.toml"


def get_data_path() -> Path:
    """Get the directory used by the file store."""
    return get_nudge_home() / "data"


def get_database_path() -> Path:
    """Get the default SQLite database path."""
    return get_nudge_home() / "nudge.db"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_nudge_home() / "logs"
