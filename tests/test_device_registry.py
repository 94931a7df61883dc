"""Tests for device discovery and background polling."""

import threading

import pytest

from harmony_installer.errors import BinaryNotFoundError, SubprocessNonZeroExitError
from harmony_installer.models.device import ConnectionType
from harmony_installer.services.device_registry import DeviceRegistry, DevicePoller, NO_DEVICES_MESSAGE


@pytest.fixture
def registry(hdc, state_store):
    return DeviceRegistry(hdc, state_store)


def test_refresh_publishes_devices_usb_first(registry, executor, state_store):
    executor.on("list", "targets", output="192.168.3.7:5555 device\nFMR0223C13000649 device\n")

    devices = registry.refresh()

    assert [d.device_id for d in devices] == ["FMR0223C13000649", "192.168.3.7:5555"]
    state = state_store.snapshot()
    assert state.device_ids == ["FMR0223C13000649", "192.168.3.7:5555"]
    assert state.status_message == "2 device(s) connected"
    assert state.last_error is None
    assert not state.no_devices


def test_refresh_replaces_previous_snapshot(registry, executor, state_store):
    executor.on("list", "targets", output="OLD1 device\nOLD2 device\n")
    executor.on("list", "targets", output="NEW1 device\n")

    registry.refresh()
    registry.refresh()

    assert state_store.snapshot().device_ids == ["NEW1"]


def test_empty_marker_sets_no_devices(registry, executor, state_store):
    executor.on("list", "targets", output="[Empty]\n")

    assert registry.refresh() == []
    state = state_store.snapshot()
    assert state.no_devices
    assert state.status_message == NO_DEVICES_MESSAGE


def test_failed_listing_is_recorded_and_raised(registry, executor, state_store):
    executor.on("list", exit_code=1, output="[Fail]ExecuteCommand need connect-key\n")

    with pytest.raises(SubprocessNonZeroExitError):
        registry.refresh()

    assert executor.subcommands() == [["list", "targets"], ["list"]]
    assert "exit code 1" in state_store.snapshot().last_error


def test_launch_failure_is_recorded(registry, executor, state_store):
    executor.on("list", raises=BinaryNotFoundError("/opt/hdc"))

    with pytest.raises(BinaryNotFoundError):
        registry.refresh()

    assert state_store.snapshot().last_error == "hdc binary not found: /opt/hdc"


def test_get_device(registry, executor):
    executor.on("list", "targets", output="USB1 device\n10.0.0.2:5555 device\n")
    registry.refresh()

    assert registry.get_device().device_id == "USB1"
    assert registry.get_device("10.0.0.2:5555").connection_type == ConnectionType.NETWORK
    assert registry.get_device("GONE") is None


def test_poller_rejects_non_positive_interval(registry):
    with pytest.raises(ValueError):
        DevicePoller(registry, interval_seconds=0)


def test_poller_refreshes_until_stopped(registry, executor, state_store):
    executor.on("list", "targets", output="POLL1 device\n")
    refreshed = threading.Event()
    state_store.subscribe(lambda state: refreshed.set())
    poller = DevicePoller(registry, interval_seconds=0.05)

    poller.start()
    try:
        assert refreshed.wait(5)
        assert poller.is_running
    finally:
        poller.stop(timeout=5)

    assert not poller.is_running
    assert state_store.snapshot().device_ids == ["POLL1"]


def test_poller_reports_errors_and_keeps_running(registry, executor):
    executor.on("list", exit_code=1)
    errors = []
    failed_twice = threading.Event()

    def on_error(error):
        errors.append(error)
        if len(errors) >= 2:
            failed_twice.set()

    poller = DevicePoller(registry, interval_seconds=0.05, on_error=on_error)
    poller.start()
    try:
        assert failed_twice.wait(5)
    finally:
        poller.stop(timeout=5)

    assert all(isinstance(e, SubprocessNonZeroExitError) for e in errors)
