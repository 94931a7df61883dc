"""
Companion server lifecycle for the HarmonyOS installer.

The hdc server runs in the background on the host; this module starts and
stops it and keeps the believed running state in the service state store.
"""

import logging
from typing import Optional

from ..errors import InstallerError, SubprocessNonZeroExitError
from ..models.service_state import ServiceStateStore
from ..utils.logger import get_logger
from .hdc_service import HdcService
from .device_registry import DeviceRegistry


class ServiceLifecycleManager:
    """
    Starts and stops the hdc server.

    start() marks the server running as soon as `start-server` exits cleanly;
    there is no readiness probe. Both calls do nothing when the believed
    state already matches.
    """

    def __init__(self, hdc: HdcService, state_store: ServiceStateStore,
                 registry: Optional[DeviceRegistry] = None,
                 refresh_after_start: bool = True):
        self.hdc = hdc
        self.state_store = state_store
        self.registry = registry
        self.refresh_after_start = refresh_after_start

        try:
            self._logger = get_logger()
        except RuntimeError:
            self._logger = logging.getLogger(__name__)

    @property
    def is_running(self) -> bool:
        return self.state_store.snapshot().service_running

    def start(self) -> bool:
        """
        Start the hdc server.

        Returns:
            True if the server was started, False if it was already running

        Raises:
            SubprocessNonZeroExitError: If start-server exits non-zero
            InstallerError: If hdc could not be launched
        """
        if self.is_running:
            self._logger.debug("hdc server already running")
            return False

        self._logger.info("Starting hdc server")
        self._run_checked("start-server", self.hdc.start_server, "Failed to start service")

        self.state_store.update(
            service_running=True,
            last_error=None,
            status_message="Service running"
        )
        self._logger.info("hdc server started")

        if self.registry is not None and self.refresh_after_start:
            try:
                self.registry.refresh()
            except InstallerError as e:
                self._logger.warning(f"Device refresh after start failed: {e.message}")

        return True

    def stop(self, force: bool = False) -> bool:
        """
        Stop the hdc server and wait for kill-server to finish.

        Args:
            force: Run kill-server even when the server is not believed running

        Returns:
            True if the server was stopped, False if it was not running

        Raises:
            SubprocessNonZeroExitError: If kill-server exits non-zero
            InstallerError: If hdc could not be launched
        """
        if not self.is_running and not force:
            self._logger.debug("hdc server not running")
            return False

        self._logger.info("Stopping hdc server")
        self._run_checked("kill-server", self.hdc.kill_server, "Failed to stop service")

        self.state_store.update(
            service_running=False,
            devices=[],
            no_devices=False,
            last_error=None,
            status_message="Service stopped"
        )
        self._logger.info("hdc server stopped")
        return True

    def shutdown(self) -> None:
        """Stop the server on application exit, logging instead of raising."""
        try:
            self.stop()
        except InstallerError as e:
            self._logger.warning(f"Could not stop hdc server on exit: {e.message}")

    def _run_checked(self, name: str, call, status_message: str) -> None:
        try:
            result = call()
        except InstallerError as e:
            self._logger.error(f"{name} failed: {e.message}")
            self.state_store.update(last_error=e.message, status_message=status_message)
            raise

        if not result.success:
            error = SubprocessNonZeroExitError(result.command, result.exit_code, result.output)
            self._logger.error(error.message)
            self.state_store.update(last_error=error.message, status_message=status_message)
            raise error
