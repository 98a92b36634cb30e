"""Configuration loading from TOML files and environment variables."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from nudge.config.models import NudgeConfig
from nudge.config.paths import get_config_path

DESTINATION_ENV_PREFIX = "NUDGE_DESTINATION_"


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.nudge/config.toml (or NUDGE_HOME)
        Path("/etc/nudge/config.toml"),  # System-wide
    ]


def _destination_env_var(name: str) -> str:
    return f"{DESTINATION_ENV_PREFIX}{name.upper().replace('-', '_')}_URL"


def _resolve_env_secrets(config: dict[str, Any]) -> dict[str, Any]:
    """Fill destination webhook URLs from the environment where not set in config.

    ``[dispatcher.destinations.team-chat]`` reads
    ``NUDGE_DESTINATION_TEAM_CHAT_URL``.
    """
    dispatcher = config.get("dispatcher")
    if not isinstance(dispatcher, dict):
        return config
    destinations = dispatcher.get("destinations")
    if not isinstance(destinations, dict):
        return config

    for name, section in destinations.items():
        if not isinstance(section, dict) or section.get("url") is not None:
            continue
        if value := os.environ.get(_destination_env_var(name)):
            section["url"] = SecretStr(value)
    return config


def load_config(path: Path | None = None) -> NudgeConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Validated NudgeConfig instance.

    Raises:
        FileNotFoundError: If no config file is found.
        ValueError: If config file is invalid.
    """
    config_path: Path | None = None
    default_paths = _get_default_config_paths()

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in default_paths:
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    if config_path is None:
        raise FileNotFoundError(
            f"No config file found. Searched: {', '.join(str(p) for p in default_paths)}"
        )

    with config_path.open("rb") as f:
        raw_config = tomllib.load(f)

    raw_config = _resolve_env_secrets(raw_config)
    return NudgeConfig.model_validate(raw_config)


def load_config_or_default(path: Path | None = None) -> NudgeConfig:
    """Load configuration, falling back to defaults when no file exists.

    An explicit ``path`` that does not exist is still an error.
    """
    try:
        return load_config(path)
    except FileNotFoundError:
        if path is not None:
            raise
        return get_default_config()


def get_default_config() -> NudgeConfig:
    """Get a default configuration for development/testing."""
    return NudgeConfig()
