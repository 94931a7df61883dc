"""Tests for the observable service state and the device model."""

from harmony_installer.models.device import ConnectionType, Device, classify_device_id
from harmony_installer.models.service_state import ServiceState, ServiceStateStore


def test_update_replaces_snapshot():
    store = ServiceStateStore()
    before = store.snapshot()

    after = store.update(service_running=True, status_message="Service running")

    assert before.service_running is False
    assert after.service_running
    assert store.snapshot() is after


def test_devices_are_stored_as_tuple():
    store = ServiceStateStore()

    state = store.update(devices=[Device("A", "A", ConnectionType.USB)])

    assert isinstance(state.devices, tuple)
    assert state.find_device("A") is not None


def test_observers_receive_new_state_and_can_unsubscribe():
    store = ServiceStateStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.update(last_error="boom")
    unsubscribe()
    store.update(last_error=None)

    assert [state.last_error for state in seen] == ["boom"]


def test_failing_observer_does_not_block_others():
    store = ServiceStateStore()
    seen = []

    def broken(state):
        raise RuntimeError("observer bug")

    store.subscribe(broken)
    store.subscribe(seen.append)

    store.update(status_message="ok")

    assert len(seen) == 1


def test_initial_state():
    state = ServiceState()

    assert not state.service_running
    assert state.devices == ()
    assert state.device_ids == []


def test_device_equality_uses_id():
    first = Device("SER1", "HarmonyOS device", ConnectionType.USB)
    second = Device("SER1", "other name", ConnectionType.USB)

    assert first == second
    assert len({first, second}) == 1


def test_classify_device_ids():
    assert classify_device_id("FMR0223C13000649") == ConnectionType.USB
    assert classify_device_id("192.168.1.4:5555") == ConnectionType.NETWORK
    assert classify_device_id("[fe80::1]:5555") == ConnectionType.NETWORK


def test_loopback_device_name():
    device = Device.from_listing_tokens(["127.0.0.1:5555", "device"])

    assert device.display_name == "Local device (via network)"


def test_device_status_column_in_name():
    device = Device.from_listing_tokens(["SER9", "Connected"])

    assert device.display_name == "HarmonyOS device (Connected) [SN: SER9]"
    assert str(device) == "HarmonyOS device (Connected) [SN: SER9] (USB)"
