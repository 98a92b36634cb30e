"""Configuration models using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator

from nudge.config.paths import get_data_path, get_database_path


class ConfigError(Exception):
    """Configuration error."""


class SchedulerConfig(BaseModel):
    """Configuration for the scheduler core."""

    # Entries kept in memory for history queries and retained by stores
    history_limit: int = Field(default=100, ge=1)
    # Seconds between re-reads of a shared store; 0 disables polling
    poll_interval: float = Field(default=30.0, ge=0)


class StoreConfig(BaseModel):
    """Where jobs and history are persisted.

    ``path`` defaults to $NUDGE_HOME/data for the file backend and
    $NUDGE_HOME/nudge.db for sqlite.
    """

    backend: Literal["memory", "file", "sqlite"] = "file"
    path: Path | None = None
    # Full SQLAlchemy async URL; overrides path for the sqlite backend
    database_url: str | None = None

    def resolve_path(self) -> Path:
        """Return the on-disk location for this backend.

        Raises:
            ConfigError: If the backend keeps nothing on disk.
        """
        if self.backend == "memory":
            raise ConfigError("The memory store has no path")
        if self.path is not None:
            return self.path.expanduser()
        if self.backend == "sqlite":
            return get_database_path()
        return get_data_path()


class DestinationConfig(BaseModel):
    """A named webhook destination."""

    url: SecretStr | None = None
    format: Literal["json", "teams"] = "json"


class DispatcherConfig(BaseModel):
    """How notifications are delivered."""

    backend: Literal["webhook", "log"] = "log"
    timeout: float = Field(default=10.0, gt=0)
    destinations: dict[str, DestinationConfig] = Field(default_factory=dict)


class ServerConfig(BaseModel):
    """Configuration for HTTP server."""

    host: str = "127.0.0.1"
    port: int = 8080


class NudgeConfig(BaseModel):
    """Root configuration model."""

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @model_validator(mode="after")
    def _check_destinations(self) -> "NudgeConfig":
        if self.dispatcher.backend != "webhook":
            return self
        missing = [
            name
            for name, destination in self.dispatcher.destinations.items()
            if destination.url is None
        ]
        if missing:
            raise ValueError(
                f"Webhook destinations missing url: {', '.join(sorted(missing))}"
            )
        return self
