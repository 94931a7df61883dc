"""
Service modules for the HarmonyOS installer.

This module provides the service layers that drive the hdc connector:
subprocess execution, device discovery, package staging, installation
orchestration, server lifecycle and background dispatch.
"""

from .command_executor import CommandExecutor, CommandResult
from .hdc_service import HdcService
from .device_registry import DeviceRegistry, DevicePoller
from .package_stager import PackageStager
from .bundle_resolver import BundleIdentifierResolver
from .installation_service import InstallationOrchestrator
from .service_manager import ServiceLifecycleManager
from .download_service import DownloadService
from .operation_dispatcher import OperationDispatcher

__all__ = [
    "CommandExecutor", "CommandResult", "HdcService",
    "DeviceRegistry", "DevicePoller", "PackageStager",
    "BundleIdentifierResolver", "InstallationOrchestrator",
    "ServiceLifecycleManager", "DownloadService", "OperationDispatcher",
]
