"""Tests for running operations on worker threads."""

import pytest

from harmony_installer.errors import DownloadError
from harmony_installer.models.launch_request import LaunchRequest
from harmony_installer.services.device_registry import DeviceRegistry
from harmony_installer.services.installation_service import InstallationOrchestrator
from harmony_installer.services.operation_dispatcher import OperationDispatcher
from harmony_installer.services.package_stager import PackageStager
from harmony_installer.services.service_manager import ServiceLifecycleManager


class FakeDownloader:
    def __init__(self, path=None, error=None):
        self.path = path
        self.error = error
        self.urls = []

    def download(self, url, filename=None):
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.path


@pytest.fixture
def build_dispatcher(hdc, state_store, staging_config, installation_config):
    created = []

    def build(download_service=None):
        registry = DeviceRegistry(hdc, state_store)
        dispatcher = OperationDispatcher(
            ServiceLifecycleManager(hdc, state_store, registry),
            registry,
            InstallationOrchestrator(hdc, PackageStager(staging_config), installation_config=installation_config),
            state_store,
            download_service=download_service
        )
        created.append(dispatcher)
        return dispatcher

    yield build
    for dispatcher in created:
        dispatcher.shutdown()


def test_start_service_resolves_true(build_dispatcher, state_store):
    assert build_dispatcher().start_service().result(timeout=5) is True
    assert state_store.snapshot().service_running


def test_failed_service_call_resolves_false_and_records_error(build_dispatcher, executor, state_store):
    executor.on("start-server", exit_code=1)

    assert build_dispatcher().start_service().result(timeout=5) is False
    assert state_store.snapshot().last_error is not None


def test_unexpected_error_is_contained(build_dispatcher, executor, state_store):
    executor.on("list", raises=RuntimeError("parser exploded"))

    assert build_dispatcher().refresh_devices().result(timeout=5) is False
    assert state_store.snapshot().last_error == "parser exploded"


def test_install_result_is_published(build_dispatcher, state_store, tmp_path, make_hap):
    result = build_dispatcher().install(make_hap(tmp_path / "app.hap"), "USB1").result(timeout=10)

    assert result.success
    assert state_store.snapshot().status_message == "Installation succeeded"
    assert state_store.snapshot().last_error is None


def test_install_failure_is_published(build_dispatcher, state_store, tmp_path):
    result = build_dispatcher().install(tmp_path / "missing.hap", "USB1").result(timeout=10)

    assert not result.success
    state = state_store.snapshot()
    assert state.last_error == result.message
    assert state.status_message == "Install failed"


def test_remote_package_is_downloaded_first(build_dispatcher, executor, tmp_path, make_hap):
    local = make_hap(tmp_path / "downloads" / "app.hap")
    downloader = FakeDownloader(path=local)

    result = build_dispatcher(downloader).install("https://example.com/app.hap", "USB1").result(timeout=10)

    assert result.success
    assert downloader.urls == ["https://example.com/app.hap"]
    assert executor.calls_for("install")
    assert not local.exists()


def test_download_failure_becomes_result(build_dispatcher, executor):
    downloader = FakeDownloader(error=DownloadError("https://example.com/app.hap", "404"))

    result = build_dispatcher(downloader).install("https://example.com/app.hap", "USB1").result(timeout=10)

    assert not result.success
    assert isinstance(result.error, DownloadError)
    assert executor.calls == []


def test_remote_package_without_downloader_fails(build_dispatcher):
    result = build_dispatcher().install("https://example.com/app.hap", "USB1").result(timeout=10)

    assert not result.success
    assert "Cannot download remote package" in result.message


def test_launch_request_defaults_to_first_device(build_dispatcher, executor, tmp_path, make_hap):
    executor.on("list", "targets", output="USB1 device\n10.0.0.5:5555 device\n")
    dispatcher = build_dispatcher()
    dispatcher.refresh_devices().result(timeout=5)
    request = LaunchRequest(action="install", package=str(make_hap(tmp_path / "app.hap")))

    result = dispatcher.handle_launch_request(request).result(timeout=10)

    assert result.success
    assert result.device_id == "USB1"
    assert executor.calls_for("install")[0].args[:2] == ["-t", "USB1"]


def test_launch_request_uninstall(build_dispatcher, executor):
    request = LaunchRequest.from_url("harmonyinstaller://uninstall?bundle=com.acme.notes&device=USB9")

    result = build_dispatcher().handle_launch_request(request).result(timeout=10)

    assert result.success
    assert executor.calls[0].args == ["-t", "USB9", "uninstall", "com.acme.notes"]


def test_launch_request_list_devices(build_dispatcher, executor):
    request = LaunchRequest.from_url("harmonyinstaller://list-devices")

    assert build_dispatcher().handle_launch_request(request).result(timeout=5) is True
    assert executor.subcommands() == [["list", "targets"]]


def test_downloaded_package_is_removed_after_failed_install(build_dispatcher, executor, tmp_path, make_hap):
    executor.on("install", output="[Fail]signature verification failed\n")
    executor.on("app", "install", output="[Fail]signature verification failed\n")
    executor.on("bm", "install", output="[Fail]signature verification failed\n")
    local = make_hap(tmp_path / "downloads" / "app.hap")

    dispatcher = build_dispatcher(FakeDownloader(path=local))

    result = dispatcher.install("https://example.com/app.hap", "USB1").result(timeout=10)

    assert not result.success
    assert not local.exists()


def test_local_package_is_kept(build_dispatcher, tmp_path, make_hap):
    local = make_hap(tmp_path / "app.hap")

    result = build_dispatcher().install(str(local), "USB1").result(timeout=10)

    assert result.success
    assert local.exists()
