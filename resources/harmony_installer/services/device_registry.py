"""
Device discovery for the HarmonyOS installer.

DeviceRegistry queries hdc for connected targets and publishes the parsed
device set to the service state; DevicePoller repeats that on an interval
from a background thread.
"""

import logging
import threading
from typing import Optional, List, Callable

from ..errors import InstallerError, SubprocessNonZeroExitError
from ..models.device import Device
from ..models.service_state import ServiceStateStore
from ..utils.logger import get_logger
from .hdc_service import HdcService
from .output_parser import parse_device_list

NO_DEVICES_MESSAGE = "No devices connected"


class DeviceRegistry:
    """
    Holds the current device snapshot.

    The snapshot is replaced whole on every successful refresh; devices that
    disappeared are dropped, never merged with the previous set.
    """

    def __init__(self, hdc: HdcService, state_store: ServiceStateStore):
        self.hdc = hdc
        self.state_store = state_store

        try:
            self._logger = get_logger()
        except RuntimeError:
            self._logger = logging.getLogger(__name__)

    @property
    def devices(self) -> List[Device]:
        return list(self.state_store.snapshot().devices)

    def get_device(self, device_id: Optional[str] = None) -> Optional[Device]:
        """
        Look up a device in the current snapshot.

        Args:
            device_id: Device id; when None the first device is returned

        Returns:
            Matching device or None
        """
        devices = self.devices
        if device_id is None:
            return devices[0] if devices else None
        return self.state_store.snapshot().find_device(device_id)

    def refresh(self) -> List[Device]:
        """
        Query hdc for connected targets and publish the result.

        Returns:
            The new device list, USB devices first

        Raises:
            SubprocessNonZeroExitError: If both listing commands exit non-zero
            InstallerError: If hdc could not be launched
        """
        try:
            result = self.hdc.list_targets()
        except InstallerError as e:
            self.state_store.update(last_error=e.message, status_message="Device refresh failed")
            raise

        if not result.success:
            error = SubprocessNonZeroExitError(result.command, result.exit_code, result.output)
            self._logger.error(f"Device listing failed: {error.message}")
            self.state_store.update(last_error=error.message, status_message="Device refresh failed")
            raise error

        listing = parse_device_list(result.output)
        previous = self.state_store.snapshot().device_ids

        if listing.no_devices:
            status = NO_DEVICES_MESSAGE
        else:
            status = f"{len(listing.devices)} device(s) connected"

        self.state_store.update(
            devices=listing.devices,
            no_devices=listing.no_devices,
            status_message=status,
            last_error=None
        )

        current = [device.device_id for device in listing.devices]
        if current != previous:
            self._logger.info(f"Devices changed: {', '.join(current) or 'none'}")

        return listing.devices


class DevicePoller:
    """Refreshes a DeviceRegistry periodically on a daemon thread."""

    def __init__(self, registry: DeviceRegistry, interval_seconds: float = 3.0,
                 on_error: Optional[Callable[[Exception], None]] = None):
        if interval_seconds <= 0:
            raise ValueError("Poll interval must be positive")

        self.registry = registry
        self.interval_seconds = interval_seconds
        self.on_error = on_error

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._logger = logging.getLogger(__name__)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start polling; a second call while running does nothing."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="device-poller", daemon=True)
        self._thread.start()
        self._logger.debug(f"Device polling started every {self.interval_seconds}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the polling thread to stop and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._logger.debug("Device polling stopped")

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.registry.refresh()
            except InstallerError as e:
                self._logger.warning(f"Device poll failed: {e.message}")
                if self.on_error:
                    self.on_error(e)
            self._stop_event.wait(self.interval_seconds)
