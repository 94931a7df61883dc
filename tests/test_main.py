"""End-to-end tests of the command line front end against a fake hdc script."""

import json
import logging
import os

import pytest

import main
from harmony_installer.config import settings
from harmony_installer.config.settings import AppConfig
from harmony_installer.utils import logger as logger_module

pytestmark = pytest.mark.skipif(os.name == "nt", reason="fake hdc is a shell script")

FAKE_HDC = """#!/bin/sh
if [ "$1" = "-t" ]; then
    shift 2
fi
case "$1" in
    list) echo "FAKE123 device" ;;
    uninstall) echo "[Fail]uninstall bundle failed" ;;
    *) echo "ok" ;;
esac
"""


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for name in ("HDC_BINARY_PATH", "HARMONY_INSTALLER_DEBUG", "HARMONY_INSTALLER_LOG_LEVEL",
                 "HARMONY_INSTALLER_COMMAND_TIMEOUT", "HARMONY_INSTALLER_POLL_INTERVAL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(settings, "_global_config", None)
    monkeypatch.setattr(logger_module, "_configured_logger", None)

    hdc = tmp_path / "bin" / "hdc"
    hdc.parent.mkdir()
    hdc.write_text(FAKE_HDC)
    hdc.chmod(0o755)

    config_path = tmp_path / "config.json"
    config = AppConfig()
    config.staging.temp_root = str(tmp_path / "staging")
    config.save_to_file(config_path)

    yield ["--hdc", str(hdc), "--config", str(config_path), "--no-color"]

    app_logger = logging.getLogger(logger_module.LOGGER_NAME)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()


def test_list_devices(cli_env, capsys):
    assert main.main(cli_env + ["--list-devices"]) == 0

    assert "FAKE123" in capsys.readouterr().out


def test_install_on_first_device(cli_env, tmp_path, make_hap):
    package = make_hap(tmp_path / "app.hap")

    assert main.main(cli_env + ["--install", str(package)]) == 0


def test_uninstall_failure_exit_code(cli_env):
    assert main.main(cli_env + ["--uninstall", "com.acme.notes", "-d", "FAKE123"]) == 1


def test_invalid_launch_url(cli_env):
    assert main.main(cli_env + ["--open-url", "harmonyinstaller://format"]) == 1


def test_launch_url_install(cli_env, tmp_path, make_hap):
    package = make_hap(tmp_path / "app.hap")

    assert main.main(cli_env + ["--open-url", f"harmonyinstaller://install?package={package}"]) == 0


def test_stop_server(cli_env):
    assert main.main(cli_env + ["--stop-server"]) == 0


def test_no_operation_prints_help(cli_env, capsys):
    assert main.main(cli_env) == 1
    assert "usage:" in capsys.readouterr().out


def test_missing_package_is_a_usage_error(cli_env, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main.main(cli_env + ["--install", str(tmp_path / "absent.hap")])

    assert excinfo.value.code == 2


def test_invalid_device_is_a_usage_error(cli_env):
    with pytest.raises(SystemExit):
        main.main(cli_env + ["--list-devices", "--device", "bad id;"])


def test_operations_are_mutually_exclusive():
    parser = main.create_argument_parser()

    with pytest.raises(SystemExit):
        parser.parse_args(["--install", "a.hap", "--uninstall", "com.acme.x"])


def test_save_config_writes_effective_settings(cli_env):
    config_path = cli_env[cli_env.index("--config") + 1]

    assert main.main(cli_env + ["--save-config", "--timeout", "30"]) == 0

    saved = json.loads(open(config_path, encoding="utf-8").read())
    assert saved["hdc"]["command_timeout"] == 30.0
    assert saved["ui"]["colored_output"] is False
