"""Tests for hdc binary resolution, environment and subcommand wrappers."""

import os

import pytest

from harmony_installer.config.settings import HdcConfig
from harmony_installer.errors import BinaryNotFoundError
from harmony_installer.services.hdc_service import HdcService
from harmony_installer.utils.platform_utils import get_library_path_variable


def test_library_path_points_at_binary_dir(hdc, hdc_binary, monkeypatch):
    variable = get_library_path_variable()
    monkeypatch.setenv(variable, "/existing/lib")

    env = hdc.build_environment()

    binary_dir = str(hdc_binary.resolve().parent)
    assert env[variable] == f"{binary_dir}{os.pathsep}/existing/lib"


def test_library_path_without_existing_value(hdc, hdc_binary, monkeypatch):
    variable = get_library_path_variable()
    monkeypatch.delenv(variable, raising=False)

    assert hdc.build_environment()[variable] == str(hdc_binary.resolve().parent)


def test_every_invocation_carries_environment(hdc, executor):
    hdc.start_server()

    call = executor.calls[0]
    assert call.args == ["start-server"]
    assert get_library_path_variable() in call.env


def test_list_targets_falls_back_to_list(hdc, executor):
    executor.on("list", output="SERIAL device\n")
    executor.on("list", "targets", exit_code=1, output="unknown command\n")

    result = hdc.list_targets()

    assert executor.subcommands() == [["list", "targets"], ["list"]]
    assert result.output == "SERIAL device\n"


def test_list_targets_no_fallback_on_success(hdc, executor):
    hdc.list_targets()

    assert executor.subcommands() == [["list", "targets"]]


def test_device_wrappers_build_arguments(hdc, executor):
    hdc.uninstall("DEV", "com.acme.x")
    hdc.dump_bundles("DEV")

    assert [call.args for call in executor.calls] == [
        ["-t", "DEV", "uninstall", "com.acme.x"],
        ["-t", "DEV", "shell", "bm", "dump", "-a"],
    ]


def test_binary_from_search_paths(executor, tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", "")
    binary = tmp_path / "ResourcesTools" / "hdc" / "hdc"
    binary.parent.mkdir(parents=True)
    binary.write_text("")
    config = HdcConfig(search_paths=[str(tmp_path / "missing" / "hdc"), str(binary)])

    service = HdcService(executor, config)

    assert service.resolve_binary() == binary.resolve()


def test_missing_binary_lists_searched_locations(executor, tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", "")
    config = HdcConfig(search_paths=[str(tmp_path / "nowhere" / "hdc")])

    service = HdcService(executor, config)

    with pytest.raises(BinaryNotFoundError) as excinfo:
        service.start_server()
    assert str(tmp_path / "nowhere" / "hdc") in excinfo.value.searched
    assert executor.calls == []


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_companion_tools_are_made_executable(executor, tmp_path):
    binary = tmp_path / "hdc"
    binary.write_text("")
    binary.chmod(0o644)
    tool = tmp_path / "restool"
    tool.write_text("")
    tool.chmod(0o644)

    HdcService(executor, HdcConfig(), binary_path=binary).resolve_binary()

    assert os.access(binary, os.X_OK)
    assert os.access(tool, os.X_OK)
