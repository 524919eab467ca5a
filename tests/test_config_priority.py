from __future__ import annotations

import pytest

from ctrlglobal.config import Settings, load_settings
from ctrlglobal.errors import ConfigurationError


def test_priority_cli_over_env_over_config(tmp_path, monkeypatch):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        "\n".join([
            'db_driver: "pgsql"',
            'db_host: "1.1.1.1"',
            "db_port: 1111",
            'db_user: "cfg_user"',
            'pc_location: "CFG-PC"',
            'integrator_url: "https://cfg.local"',
        ]),
        encoding="utf-8",
    )

    # ENV overrides config
    monkeypatch.setenv("DB_HOST", "2.2.2.2")
    monkeypatch.setenv("DB_PORT", "2222")
    monkeypatch.setenv("DB_USER", "env_user")

    # CLI overrides env
    loaded = load_settings(
        config_path=str(cfg),
        cli_overrides={"db_host": "3.3.3.3", "db_port": None, "db_user": None},
    )

    settings = loaded.settings
    assert settings.db_driver == "pgsql"
    assert settings.db_host == "3.3.3.3"
    assert settings.db_port == 2222
    assert settings.db_user == "env_user"
    assert settings.pc_location == "CFG-PC"
    assert settings.integrator_url == "https://cfg.local"
    assert loaded.sources_used == ["config", "env", "cli"]


def test_defaults_without_any_source():
    loaded = load_settings(config_path=None, cli_overrides={"db_host": None})

    assert loaded.settings == Settings()
    assert loaded.sources_used == []


def test_missing_config_file_is_ignored(tmp_path):
    loaded = load_settings(config_path=str(tmp_path / "absent.yml"), cli_overrides={})

    assert loaded.settings == Settings()


def test_env_values_are_coerced(monkeypatch):
    monkeypatch.setenv("HTTP_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("HTTP_TLS_SKIP_VERIFY", "yes")

    settings = load_settings(config_path=None, cli_overrides={}).settings

    assert settings.http_timeout_seconds == 2.5
    assert settings.tls_skip_verify is True


@pytest.mark.parametrize(("name", "value"), [("DB_PORT", "abc"), ("HTTP_TLS_SKIP_VERIFY", "maybe")])
def test_invalid_env_values_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError):
        load_settings(config_path=None, cli_overrides={})


def test_db_config_feeds_connection_factory():
    settings = Settings(db_driver="sqlite", db_name=":memory:", db_user="u", db_password="p")

    assert settings.db_config() == {
        "driver": "sqlite",
        "host": "127.0.0.1",
        "port": None,
        "name": ":memory:",
        "charset": "utf8mb4",
        "username": "u",
        "password": "p",
    }


def test_logger_config_adds_file_handler_when_log_file_set():
    assert Settings().logger_config() == {"format": "json", "handlers": [{"type": "console", "level": "info"}]}

    handlers = Settings(log_level="debug", log_file="/tmp/x.log").logger_config()["handlers"]
    assert handlers[1] == {"type": "file", "level": "debug", "path": "/tmp/x.log"}


def test_yaml_scalars_for_string_fields_become_strings(tmp_path):
    cfg = tmp_path / "config.yml"
    cfg.write_text("encryption_key: 12345\ndb_password: 0042\npc_location: 7\ndb_port: '3307'\n", encoding="utf-8")

    settings = load_settings(config_path=str(cfg), cli_overrides={}).settings

    assert settings.encryption_key == "12345"
    assert isinstance(settings.db_password, str)
    assert settings.pc_location == "7"
    assert settings.db_port == 3307
