"""
HarmonyOS Installer - Main Application Entry Point

Command line front end for installing HarmonyOS application packages on
connected devices through the hdc device connector.
"""

import sys
import json
import time
import argparse
import traceback
from typing import Optional, List

from harmony_installer.config.settings import init_config, AppConfig, LogLevel
from harmony_installer.errors import InstallerError
from harmony_installer.models.device import Device
from harmony_installer.models.install_session import InstallResult
from harmony_installer.models.launch_request import LaunchRequest, LaunchRequestError
from harmony_installer.models.service_state import ServiceState, ServiceStateStore
from harmony_installer.utils.logger import setup_logging
from harmony_installer.utils.validators import get_validator
from harmony_installer.services.command_executor import CommandExecutor
from harmony_installer.services.hdc_service import HdcService
from harmony_installer.services.device_registry import DeviceRegistry, DevicePoller
from harmony_installer.services.package_stager import PackageStager
from harmony_installer.services.bundle_resolver import BundleIdentifierResolver
from harmony_installer.services.installation_service import InstallationOrchestrator
from harmony_installer.services.service_manager import ServiceLifecycleManager
from harmony_installer.services.download_service import DownloadService
from harmony_installer.services.operation_dispatcher import OperationDispatcher


class HarmonyInstallerApp:
    """Main application class for the HarmonyOS installer."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.logger = None
        self.state_store = ServiceStateStore()
        self.hdc: Optional[HdcService] = None
        self.registry: Optional[DeviceRegistry] = None
        self.lifecycle: Optional[ServiceLifecycleManager] = None
        self.orchestrator: Optional[InstallationOrchestrator] = None
        self.dispatcher: Optional[OperationDispatcher] = None
        self.stop_server_on_exit = False

    def initialize(self, args: argparse.Namespace) -> None:
        """Initialize configuration, logging and services from parsed arguments."""
        self.config = init_config(args.config)

        if args.debug:
            self.config.debug_mode = True
            self.config.log_level = LogLevel.DEBUG
        if args.no_color:
            self.config.ui.colored_output = False
        if args.timeout is not None:
            if args.timeout <= 0:
                raise ValueError("Timeout must be positive")
            self.config.hdc.command_timeout = args.timeout

        self.logger = setup_logging(
            colored=self.config.ui.colored_output,
            log_file=self.config.get_log_file_path(),
            level=self.config.log_level
        )
        self.logger.info(f"Starting {self.config.app_name} v{self.config.version}")

        executor = CommandExecutor(default_timeout=self.config.hdc.command_timeout)
        executor.set_output_callback(lambda line: self.logger.debug(f"hdc: {line}"))
        self.hdc = HdcService(executor, self.config.hdc, binary_path=args.hdc)
        self.registry = DeviceRegistry(self.hdc, self.state_store)
        self.lifecycle = ServiceLifecycleManager(
            self.hdc, self.state_store, self.registry,
            refresh_after_start=self.config.polling.refresh_after_start
        )
        self.orchestrator = InstallationOrchestrator(
            self.hdc,
            PackageStager(self.config.staging),
            BundleIdentifierResolver(self.config.installation),
            self.config.installation
        )
        self.orchestrator.set_progress_callback(
            lambda progress: self.logger.debug(f"[{progress.phase.value}] {progress.message}")
        )
        download_service = DownloadService(self.config.get_downloads_directory(), self.config.downloads)
        download_service.set_progress_callback(
            lambda progress: self.logger.debug(
                f"Downloading {progress.filename}: {progress.progress_percentage:.0f}%"
            )
        )
        self.dispatcher = OperationDispatcher(
            self.lifecycle,
            self.registry,
            self.orchestrator,
            self.state_store,
            download_service=download_service
        )

        self.logger.debug("Application initialization completed")

    def print_devices(self, devices: List[Device]) -> None:
        if not devices:
            self.logger.info("No devices connected")
            return
        self.logger.info("Connected devices:")
        for device in devices:
            self.logger.info(f"  {device.device_id:<24} {device}")

    def refresh_devices(self) -> bool:
        return self.dispatcher.refresh_devices().result()

    def resolve_device_id(self, device_id: Optional[str]) -> Optional[str]:
        """Use the given device id or fall back to the first connected device."""
        if device_id:
            return device_id
        if not self.refresh_devices():
            return None
        device = self.registry.get_device()
        if device is None:
            self.logger.error("No devices connected")
            return None
        self.logger.info(f"Using device {device.device_id}")
        return device.device_id

    def report_result(self, result: InstallResult) -> bool:
        if result.success:
            suffix = " (verified on device)" if result.verified else ""
            self.logger.info(f"{result.message}{suffix}")
        else:
            self.logger.error(result.message)
            if result.diagnostics:
                self.logger.info(result.diagnostics)
            if result.session:
                self.logger.debug(json.dumps(result.session.get_summary(), indent=2))
        return result.success

    def run_start_server(self) -> bool:
        if not self.dispatcher.start_service().result():
            return False
        self.print_devices(self.registry.devices)
        return True

    def run_stop_server(self) -> bool:
        return self.dispatcher.stop_service(force=True).result()

    def run_list_devices(self) -> bool:
        if not self.refresh_devices():
            return False
        self.print_devices(self.registry.devices)
        return True

    def run_watch(self) -> bool:
        """Poll for devices and print every change until interrupted."""
        self.stop_server_on_exit = True
        if not self.dispatcher.start_service().result():
            return False

        last_ids: List[str] = self.state_store.snapshot().device_ids
        self.print_devices(self.registry.devices)

        def on_change(state: ServiceState) -> None:
            nonlocal last_ids
            if state.device_ids != last_ids:
                last_ids = state.device_ids
                self.print_devices(list(state.devices))

        unsubscribe = self.state_store.subscribe(on_change)
        poller = DevicePoller(self.registry, self.config.polling.interval_seconds)
        poller.start()
        self.logger.info("Watching for devices, press Ctrl+C to stop")
        try:
            while True:
                time.sleep(1)
        finally:
            poller.stop()
            unsubscribe()

    def run_install(self, package: str, device_id: Optional[str], push: bool = False) -> bool:
        device_id = self.resolve_device_id(device_id)
        if device_id is None:
            return False
        if push:
            future = self.dispatcher.push_install(package, device_id)
        else:
            future = self.dispatcher.install(package, device_id)
        return self.report_result(future.result())

    def run_uninstall(self, bundle_name: str, device_id: Optional[str]) -> bool:
        device_id = self.resolve_device_id(device_id)
        if device_id is None:
            return False
        return self.report_result(self.dispatcher.uninstall(bundle_name, device_id).result())

    def run_launch_url(self, url: str, device_id: Optional[str]) -> bool:
        """Handle a URL delivered through the installer's URL scheme."""
        try:
            request = LaunchRequest.from_url(url, self.config.downloads.url_scheme)
        except LaunchRequestError as e:
            self.logger.error(f"Invalid launch URL: {e}")
            return False

        if request.action == "list-devices":
            return self.run_list_devices()

        if device_id and not request.device_id:
            request = LaunchRequest(request.action, request.package, device_id, request.bundle_name)
        if not request.device_id and not self.refresh_devices():
            return False

        result = self.dispatcher.handle_launch_request(request).result()
        return self.report_result(result)

    def cleanup(self) -> None:
        """Shut down background work and, after a watch session, the hdc server."""
        if self.dispatcher:
            self.dispatcher.shutdown(wait=True)
        if self.lifecycle and self.stop_server_on_exit:
            self.lifecycle.shutdown()
        if self.logger:
            self.logger.debug("Application shutdown completed")


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the command line argument parser."""
    parser = argparse.ArgumentParser(
        description="HarmonyOS Installer - install application packages through hdc",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --list-devices                       # List connected devices
  %(prog)s --install app.hap                    # Install on the first device
  %(prog)s --install build.zip --device 1234AB  # Install from an archive
  %(prog)s --push-install app.hap               # Push, install and launch
  %(prog)s --uninstall com.example.app          # Remove an application
  %(prog)s --watch                              # Print device changes
  %(prog)s --open-url "harmonyinstaller://install?package=/tmp/app.hap"
        """)

    server_group = parser.add_argument_group('Service')
    server_mode = server_group.add_mutually_exclusive_group()
    server_mode.add_argument(
        '--start-server',
        action='store_true',
        help='Start the hdc server and list devices'
    )
    server_mode.add_argument(
        '--stop-server',
        action='store_true',
        help='Stop the hdc server'
    )

    operation_group = parser.add_argument_group('Operations')
    operation = operation_group.add_mutually_exclusive_group()
    operation.add_argument(
        '--list-devices',
        action='store_true',
        help='List connected devices'
    )
    operation.add_argument(
        '--watch',
        action='store_true',
        help='Poll for devices and print changes until interrupted'
    )
    operation.add_argument(
        '--install',
        metavar='PATH',
        help='Install a package (.hap, archive or directory)'
    )
    operation.add_argument(
        '--push-install',
        metavar='PATH',
        help='Push a package to the device, install it there and launch it'
    )
    operation.add_argument(
        '--uninstall',
        metavar='BUNDLE',
        help='Uninstall an application by bundle name'
    )
    operation.add_argument(
        '--open-url',
        metavar='URL',
        help='Handle a harmonyinstaller:// launch URL'
    )

    device_group = parser.add_argument_group('Device')
    device_group.add_argument(
        '-d', '--device',
        metavar='ID',
        help='Target device id (default: first connected device)'
    )

    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument(
        '--hdc',
        metavar='PATH',
        help='Path to the hdc binary'
    )
    config_group.add_argument(
        '--config',
        metavar='CONFIG_FILE',
        help='Path to configuration file'
    )
    config_group.add_argument(
        '--save-config',
        action='store_true',
        help='Write the effective configuration to the config file'
    )
    config_group.add_argument(
        '--timeout',
        metavar='SECONDS',
        type=float,
        help='Kill hdc commands running longer than this'
    )
    config_group.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    config_group.add_argument(
        '--no-color',
        action='store_true',
        help='Disable colored output'
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point."""
    app = HarmonyInstallerApp()
    exit_code = 0

    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.device and not get_validator().validate_device_id(args.device):
        parser.error(f"invalid device id: {args.device}")
    for package in (args.install, args.push_install):
        if package and "://" not in package:
            validation = get_validator().validate_file_path(package, must_exist=True, must_be_readable=True)
            if not validation:
                parser.error(validation.message)

    try:
        app.initialize(args)
        if args.save_config:
            app.config.save_to_file(args.config)

        success = True
        if args.start_server:
            success = app.run_start_server()
        elif args.stop_server:
            success = app.run_stop_server()

        if success:
            if args.list_devices:
                success = app.run_list_devices()
            elif args.watch:
                success = app.run_watch()
            elif args.install:
                success = app.run_install(args.install, args.device)
            elif args.push_install:
                success = app.run_install(args.push_install, args.device, push=True)
            elif args.uninstall:
                success = app.run_uninstall(args.uninstall, args.device)
            elif args.open_url:
                success = app.run_launch_url(args.open_url, args.device)
            elif not (args.start_server or args.stop_server or args.save_config):
                parser.print_help()
                success = False

        exit_code = 0 if success else 1

    except KeyboardInterrupt:
        if app.logger:
            app.logger.info("Interrupted by user")
        else:
            print("\nInterrupted by user")
        exit_code = 130

    except (InstallerError, ValueError, OSError) as e:
        if app.logger:
            app.logger.error(str(e))
            app.logger.debug(traceback.format_exc())
        else:
            print(f"Error: {e}")
        exit_code = 1

    except Exception as e:
        if app.logger:
            app.logger.error(f"Unexpected error: {e}")
            app.logger.debug(traceback.format_exc())
        else:
            print(f"Unexpected error: {e}")
        exit_code = 1

    finally:
        app.cleanup()

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
