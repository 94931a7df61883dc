"""
Background execution of installer operations.

Every user-facing request maps to one orchestration call that runs on a
worker thread. The dispatcher turns any error into the terminal state of that
call and publishes it to the service state; nothing propagates to the caller
thread.
"""

import logging
import traceback
from concurrent.futures import ThreadPoolExecutor, Future
from pathlib import Path
from typing import Optional, Callable, Tuple, Union

from ..errors import InstallerError
from ..models.install_session import InstallResult
from ..models.launch_request import LaunchRequest
from ..models.service_state import ServiceStateStore
from ..utils.logger import get_logger
from .device_registry import DeviceRegistry
from .download_service import DownloadService
from .installation_service import InstallationOrchestrator
from .service_manager import ServiceLifecycleManager


class OperationDispatcher:
    """
    Runs orchestration calls off the calling thread.

    Service and refresh operations resolve to a bool; install, push-install
    and uninstall resolve to an InstallResult. Calls may run concurrently.
    """

    def __init__(self, lifecycle: ServiceLifecycleManager,
                 registry: DeviceRegistry,
                 orchestrator: InstallationOrchestrator,
                 state_store: ServiceStateStore,
                 download_service: Optional[DownloadService] = None,
                 max_workers: int = 4):
        self.lifecycle = lifecycle
        self.registry = registry
        self.orchestrator = orchestrator
        self.state_store = state_store
        self.download_service = download_service

        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="installer-op")

        try:
            self._logger = get_logger()
        except RuntimeError:
            self._logger = logging.getLogger(__name__)

    # Service operations

    def start_service(self) -> 'Future[bool]':
        return self.executor.submit(self._run_service_call, "start service", self.lifecycle.start)

    def stop_service(self, force: bool = False) -> 'Future[bool]':
        return self.executor.submit(self._run_service_call, "stop service",
                                    lambda: self.lifecycle.stop(force=force))

    def refresh_devices(self) -> 'Future[bool]':
        return self.executor.submit(self._run_service_call, "refresh devices", self.registry.refresh)

    def _run_service_call(self, name: str, call: Callable[[], object]) -> bool:
        try:
            call()
            return True
        except InstallerError as e:
            self._logger.error(f"Could not {name}: {e.message}")
            self.state_store.update(last_error=e.message)
            return False
        except Exception as e:
            self._logger.error(f"Unexpected error during {name}: {e}")
            self._logger.debug(traceback.format_exc())
            self.state_store.update(last_error=str(e))
            return False

    # Package operations

    def install(self, package: Union[str, Path], device_id: str) -> 'Future[InstallResult]':
        return self.executor.submit(
            self._run_package_call, "install", package, device_id,
            lambda path: self.orchestrator.install_package(path, device_id)
        )

    def push_install(self, package: Union[str, Path], device_id: str,
                     ability_name: Optional[str] = None) -> 'Future[InstallResult]':
        return self.executor.submit(
            self._run_package_call, "push install", package, device_id,
            lambda path: self.orchestrator.push_and_install(path, device_id, ability_name)
        )

    def uninstall(self, bundle_name: str, device_id: str) -> 'Future[InstallResult]':
        return self.executor.submit(
            self._run_install_call, "uninstall",
            lambda: self.orchestrator.uninstall(bundle_name, device_id),
            device_id
        )

    def _localize(self, package: Union[str, Path]) -> Tuple[Path, bool]:
        """
        Download a remote package reference; local paths pass through.

        Returns:
            The local path and whether it was downloaded
        """
        request = LaunchRequest(action="install", package=str(package))
        if not request.is_remote_package:
            return request.package_path, False
        if self.download_service is None:
            raise InstallerError(f"Cannot download remote package: {package}")
        return self.download_service.download(str(package)), True

    def _run_package_call(self, name: str, package: Union[str, Path], device_id: str,
                          install: Callable[[Path], InstallResult]) -> InstallResult:
        def call() -> InstallResult:
            path, downloaded = self._localize(package)
            try:
                return install(path)
            finally:
                if downloaded:
                    self._remove_download(path)

        return self._run_install_call(name, call, device_id)

    def _remove_download(self, path: Path) -> None:
        try:
            path.unlink()
            self._logger.debug(f"Removed downloaded package: {path}")
        except OSError as e:
            self._logger.warning(f"Could not remove downloaded package {path}: {e}")

    def _run_install_call(self, name: str, call: Callable[[], InstallResult],
                          device_id: str) -> InstallResult:
        try:
            result = call()
        except InstallerError as e:
            self._logger.error(f"{name.capitalize()} failed: {e.message}")
            result = InstallResult.from_error(e, device_id)
        except Exception as e:
            self._logger.error(f"Unexpected error during {name}: {e}")
            self._logger.debug(traceback.format_exc())
            result = InstallResult.from_error(e, device_id)

        if result.success:
            self.state_store.update(last_error=None, status_message=result.message)
        else:
            self.state_store.update(last_error=result.message, status_message=f"{name.capitalize()} failed")
        return result

    # Launch requests

    def handle_launch_request(self, request: LaunchRequest) -> Future:
        """
        Dispatch a launch request.

        The request's device defaults to the first device in the current
        snapshot.

        Returns:
            Future of the dispatched operation
        """
        if request.action == "list-devices":
            return self.refresh_devices()

        device_id = request.device_id
        if device_id is None:
            device = self.registry.get_device()
            device_id = device.device_id if device else ""

        if request.action == "uninstall":
            return self.uninstall(request.bundle_name, device_id)
        if request.action == "push-install":
            return self.push_install(request.package, device_id)
        return self.install(request.package, device_id)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and optionally wait for running calls."""
        self.executor.shutdown(wait=wait)
