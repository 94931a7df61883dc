"""Tests for configuration defaults, environment overrides and persistence."""

import json

import pytest

from harmony_installer.config import settings
from harmony_installer.config.settings import (
    AppConfig, HdcConfig, LogLevel, PollingConfig, init_config, get_config
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("HDC_BINARY_PATH", "HARMONY_INSTALLER_DEBUG", "HARMONY_INSTALLER_LOG_LEVEL",
                 "HARMONY_INSTALLER_COMMAND_TIMEOUT", "HARMONY_INSTALLER_POLL_INTERVAL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(settings, "_global_config", None)


def test_defaults():
    config = AppConfig()

    assert config.hdc.command_timeout is None
    assert config.staging.preferred_unit_name == "entry-default.hap"
    assert config.installation.verify_on_ambiguous
    assert config.polling.interval_seconds == 3.0
    assert config.log_level == LogLevel.INFO


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("HDC_BINARY_PATH", "/opt/hdc/hdc")
    monkeypatch.setenv("HARMONY_INSTALLER_DEBUG", "yes")
    monkeypatch.setenv("HARMONY_INSTALLER_LOG_LEVEL", "debug")
    monkeypatch.setenv("HARMONY_INSTALLER_COMMAND_TIMEOUT", "45")

    config = AppConfig()

    assert config.hdc.binary_path == "/opt/hdc/hdc"
    assert config.debug_mode
    assert config.log_level == LogLevel.DEBUG
    assert config.hdc.command_timeout == 45.0


def test_invalid_environment_values_are_ignored(monkeypatch):
    monkeypatch.setenv("HARMONY_INSTALLER_COMMAND_TIMEOUT", "soon")
    monkeypatch.setenv("HARMONY_INSTALLER_LOG_LEVEL", "chatty")

    config = AppConfig()

    assert config.hdc.command_timeout is None
    assert config.log_level == LogLevel.INFO


@pytest.mark.parametrize("kwargs", [
    {"hdc": HdcConfig(command_timeout=0)},
    {"polling": PollingConfig(interval_seconds=-1)},
])
def test_validation(kwargs):
    with pytest.raises(ValueError):
        AppConfig(**kwargs)


def test_save_and_load(tmp_path):
    config = AppConfig()
    config.hdc.binary_path = "/custom/hdc"
    config.installation.failure_markers = ["[Fail]"]
    config.log_level = LogLevel.WARNING
    path = tmp_path / "config.json"

    config.save_to_file(path)
    loaded = AppConfig.load_from_file(path)

    assert json.loads(path.read_text())["log_level"] == "WARNING"
    assert loaded.hdc.binary_path == "/custom/hdc"
    assert loaded.installation.failure_markers == ["[Fail]"]
    assert loaded.log_level == LogLevel.WARNING


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load_from_file(tmp_path / "absent.json")


def test_get_config_requires_init():
    with pytest.raises(RuntimeError):
        get_config()


def test_init_config_falls_back_to_defaults_on_bad_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken")

    config = init_config(path)

    assert isinstance(config, AppConfig)
    assert get_config() is config


def test_init_config_with_missing_explicit_file(tmp_path):
    config = init_config(tmp_path / "absent.json")

    assert config.hdc.command_timeout is None
    assert get_config() is config
