"""Tests for YAML settings loading."""
import pytest
from pydantic import ValidationError

from medisales.config import AppConfig, get_config, load_config, reset_config


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


def test_missing_file_uses_defaults(tmp_path):
    config = load_config(tmp_path / "absent.yaml")

    assert config.server.port == 8000
    assert config.chat.max_message_length == 1000
    assert config.chat.send_timeout_seconds == 5.0
    assert config.database.path == str(tmp_path / "medisales.duckdb")


def test_yaml_sections_override_defaults(tmp_path):
    settings = tmp_path / "medisales.settings.yaml"
    settings.write_text(
        "server:\n"
        "  port: 9100\n"
        "  allowed_origins: ['http://pos.local']\n"
        "database:\n"
        "  path: ':memory:'\n"
        "chat:\n"
        "  max_message_length: 500\n"
        "  send_timeout_seconds: null\n"
        "logging:\n"
        "  level: DEBUG\n"
    )

    config = load_config(settings)

    assert config.server.port == 9100
    assert config.server.allowed_origins == ["http://pos.local"]
    assert config.database.path == ":memory:"
    assert config.chat.max_message_length == 500
    assert config.chat.send_timeout_seconds is None
    assert config.logging.level == "debug"


def test_relative_database_path_resolves_next_to_settings(tmp_path):
    settings = tmp_path / "conf" / "medisales.settings.yaml"
    settings.parent.mkdir()
    settings.write_text("database:\n  path: data/pos.duckdb\n")

    config = load_config(settings)

    assert config.database.path == str(settings.parent / "data/pos.duckdb")


def test_absolute_database_path_is_kept(tmp_path):
    target = tmp_path / "elsewhere.duckdb"
    settings = tmp_path / "medisales.settings.yaml"
    settings.write_text(f"database:\n  path: '{target}'\n")

    assert load_config(settings).database.path == str(target)


def test_env_var_selects_settings_file(tmp_path, monkeypatch):
    settings = tmp_path / "custom.yaml"
    settings.write_text("server:\n  port: 8111\n")
    monkeypatch.setenv("MEDISALES_SETTINGS", str(settings))

    assert get_config().server.port == 8111
    assert get_config() is get_config()


def test_unknown_log_level_is_rejected():
    with pytest.raises(ValidationError):
        AppConfig(logging={"level": "chatty"})


def test_invalid_message_length_is_rejected():
    with pytest.raises(ValidationError):
        AppConfig(chat={"max_message_length": 0})
    with pytest.raises(ValidationError):
        AppConfig(chat={"max_message_length": 1001})
