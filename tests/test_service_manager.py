"""Tests for starting and stopping the hdc server."""

import pytest

from harmony_installer.errors import BinaryNotFoundError, SubprocessNonZeroExitError
from harmony_installer.services.device_registry import DeviceRegistry
from harmony_installer.services.service_manager import ServiceLifecycleManager


@pytest.fixture
def lifecycle(hdc, state_store):
    return ServiceLifecycleManager(hdc, state_store, DeviceRegistry(hdc, state_store))


def test_start_marks_running_and_refreshes(lifecycle, executor, state_store):
    executor.on("list", "targets", output="USB1 device\n")

    assert lifecycle.start()

    state = state_store.snapshot()
    assert state.service_running
    assert state.device_ids == ["USB1"]
    assert executor.subcommands()[0] == ["start-server"]


def test_start_twice_is_a_no_op(lifecycle, executor):
    lifecycle.start()
    calls = len(executor.calls)

    assert lifecycle.start() is False
    assert len(executor.calls) == calls


def test_start_without_refresh(hdc, state_store, executor):
    lifecycle = ServiceLifecycleManager(hdc, state_store, DeviceRegistry(hdc, state_store),
                                        refresh_after_start=False)

    lifecycle.start()

    assert executor.subcommands() == [["start-server"]]


def test_refresh_failure_after_start_keeps_running(lifecycle, executor, state_store):
    executor.on("list", exit_code=1)

    assert lifecycle.start()
    assert state_store.snapshot().service_running


def test_start_failure_is_recorded(lifecycle, executor, state_store):
    executor.on("start-server", exit_code=1, output="bind failed\n")

    with pytest.raises(SubprocessNonZeroExitError):
        lifecycle.start()

    state = state_store.snapshot()
    assert not state.service_running
    assert "exit code 1" in state.last_error
    assert state.status_message == "Failed to start service"


def test_start_launch_failure_is_recorded(lifecycle, executor, state_store):
    executor.on("start-server", raises=BinaryNotFoundError("/opt/hdc"))

    with pytest.raises(BinaryNotFoundError):
        lifecycle.start()

    assert state_store.snapshot().last_error == "hdc binary not found: /opt/hdc"


def test_stop_when_not_running_is_a_no_op(lifecycle, executor):
    assert lifecycle.stop() is False
    assert executor.calls == []


def test_forced_stop_runs_kill_server(lifecycle, executor, state_store):
    assert lifecycle.stop(force=True)

    assert executor.subcommands() == [["kill-server"]]
    assert state_store.snapshot().status_message == "Service stopped"


def test_stop_clears_devices(lifecycle, executor, state_store):
    executor.on("list", "targets", output="USB1 device\n")
    lifecycle.start()

    assert lifecycle.stop()

    state = state_store.snapshot()
    assert not state.service_running
    assert state.devices == ()


def test_shutdown_swallows_stop_failure(lifecycle, executor, state_store):
    lifecycle.start()
    executor.on("kill-server", exit_code=1)

    lifecycle.shutdown()

    assert state_store.snapshot().service_running
    assert state_store.snapshot().last_error is not None
