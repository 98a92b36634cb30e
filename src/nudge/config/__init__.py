"""Configuration module."""

from nudge.config.loader import get_default_config, load_config, load_config_or_default
from nudge.config.models import (
    ConfigError,
    DestinationConfig,
    DispatcherConfig,
    NudgeConfig,
    SchedulerConfig,
    ServerConfig,
    StoreConfig,
)
from nudge.config.paths import get_config_path, get_nudge_home

__all__ = [
    "ConfigError",
    "DestinationConfig",
    "DispatcherConfig",
    "NudgeConfig",
    "SchedulerConfig",
    "ServerConfig",
    "StoreConfig",
    "get_config_path",
    "get_default_config",
    "get_nudge_home",
    "load_config",
    "load_config_or_default",
]
