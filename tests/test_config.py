"""Tests for configuration loading and models."""

from pathlib import Path

import pytest
from pydantic import SecretStr, ValidationError

from nudge.config.loader import (
    _destination_env_var,
    _resolve_env_secrets,
    get_default_config,
    load_config,
    load_config_or_default,
)
from nudge.config.models import (
    ConfigError,
    DestinationConfig,
    DispatcherConfig,
    NudgeConfig,
    SchedulerConfig,
    StoreConfig,
)


class TestSchedulerConfig:
    """Tests for SchedulerConfig model."""

    def test_defaults(self):
        assert SchedulerConfig().history_limit == 100
        assert SchedulerConfig().poll_interval == 30.0

    def test_rejects_zero_history(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(history_limit=0)

    def test_rejects_negative_poll(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(poll_interval=-1)


class TestStoreConfig:
    """Tests for StoreConfig model."""

    def test_defaults_to_file_backend(self, nudge_home: Path):
        config = StoreConfig()
        assert config.backend == "file"
        assert config.resolve_path() == nudge_home.resolve() / "data"

    def test_sqlite_default_path(self, nudge_home: Path):
        config = StoreConfig(backend="sqlite")
        assert config.resolve_path() == nudge_home.resolve() / "nudge.db"

    def test_explicit_path(self, tmp_path: Path):
        config = StoreConfig(path=tmp_path / "jobs")
        assert config.resolve_path() == tmp_path / "jobs"

    def test_memory_has_no_path(self):
        with pytest.raises(ConfigError):
            StoreConfig(backend="memory").resolve_path()

    def test_rejects_unknown_backend(self):
        with pytest.raises(ValidationError):
            StoreConfig(backend="redis")  # type: ignore[arg-type]


class TestDispatcherConfig:
    """Tests for DispatcherConfig and destination validation."""

    def test_defaults(self):
        config = DispatcherConfig()
        assert config.backend == "log"
        assert config.timeout == 10.0
        assert config.destinations == {}

    def test_url_is_secret(self):
        destination = DestinationConfig(url="https://hooks.example.com/abc")
        assert isinstance(destination.url, SecretStr)
        assert "hooks.example.com" not in repr(destination)

    def test_webhook_destinations_need_urls(self):
        with pytest.raises(ValidationError, match="missing url: team"):
            NudgeConfig.model_validate(
                {
                    "dispatcher": {
                        "backend": "webhook",
                        "destinations": {"team": {"format": "teams"}},
                    }
                }
            )

    def test_log_backend_allows_missing_urls(self):
        config = NudgeConfig.model_validate(
            {"dispatcher": {"destinations": {"team": {}}}}
        )
        assert config.dispatcher.destinations["team"].url is None


class TestEnvSecrets:
    """Tests for filling destination URLs from the environment."""

    def test_env_var_name(self):
        assert _destination_env_var("team-chat") == "NUDGE_DESTINATION_TEAM_CHAT_URL"

    def test_fills_missing_url(self, monkeypatch):
        monkeypatch.setenv("NUDGE_DESTINATION_TEAM_URL", "https://hooks.example.com/t")
        raw = {"dispatcher": {"destinations": {"team": {"format": "json"}}}}

        resolved = _resolve_env_secrets(raw)

        url = resolved["dispatcher"]["destinations"]["team"]["url"]
        assert url.get_secret_value() == "https://hooks.example.com/t"

    def test_config_value_wins(self, monkeypatch):
        monkeypatch.setenv("NUDGE_DESTINATION_TEAM_URL", "https://env.example.com")
        raw = {
            "dispatcher": {"destinations": {"team": {"url": "https://file.example.com"}}}
        }

        resolved = _resolve_env_secrets(raw)

        assert resolved["dispatcher"]["destinations"]["team"]["url"] == (
            "https://file.example.com"
        )

    def test_no_dispatcher_section(self):
        assert _resolve_env_secrets({"server": {"port": 9000}}) == {
            "server": {"port": 9000}
        }


class TestLoadConfig:
    """Tests for load_config()."""

    def test_loads_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("NUDGE_DESTINATION_OPS_URL", "https://hooks.example.com/ops")
        config_file = tmp_path / "config.toml"
        config_file.write_text(
            """
[scheduler]
history_limit = 25

[store]
backend = "sqlite"
path = "/var/lib/nudge/nudge.db"

[dispatcher]
backend = "webhook"
timeout = 5

[dispatcher.destinations.team]
url = "https://hooks.example.com/team"

[dispatcher.destinations.ops]
format = "teams"

[server]
port = 9090
"""
        )

        config = load_config(config_file)

        assert config.scheduler.history_limit == 25
        assert config.store.backend == "sqlite"
        assert config.store.path == Path("/var/lib/nudge/nudge.db")
        assert config.dispatcher.timeout == 5.0
        ops = config.dispatcher.destinations["ops"]
        assert ops.format == "teams"
        assert ops.url is not None
        assert ops.url.get_secret_value() == "https://hooks.example.com/ops"
        assert config.server.port == 9090
        assert config.server.host == "127.0.0.1"

    def test_missing_explicit_path(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")

    def test_invalid_values(self, tmp_path: Path):
        config_file = tmp_path / "config.toml"
        config_file.write_text('[server]\nport = "not-a-port"\n')

        with pytest.raises(ValidationError):
            load_config(config_file)

    def test_searches_default_locations(self, nudge_home: Path, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        nudge_home.mkdir(parents=True, exist_ok=True)
        (nudge_home / "config.toml").write_text("[server]\nport = 7000\n")

        config = load_config()

        assert config.server.port == 7000


class TestLoadConfigOrDefault:
    """Tests for load_config_or_default()."""

    def test_falls_back_to_defaults(self, nudge_home: Path, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config_or_default()
        assert config == get_default_config()

    def test_explicit_missing_path_still_fails(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config_or_default(tmp_path / "missing.toml")
