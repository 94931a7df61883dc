"""
HarmonyOS Installer

Installs HarmonyOS application packages on connected devices by driving the
hdc device connector, with device discovery and a multi-strategy install
pipeline.
"""

from .config.settings import _get_version_from_file

__version__ = _get_version_from_file()
__description__ = "HarmonyOS package installer driving the hdc device connector"

# Package-level imports for convenience
from .config.settings import AppConfig
from .models.device import Device
from .models.install_session import InstallResult
from .models.service_state import ServiceState, ServiceStateStore
from .utils.logger import get_logger
from .utils.validators import Validator
from .services.installation_service import InstallationOrchestrator

__all__ = [
    "AppConfig",
    "Device",
    "InstallResult",
    "ServiceState",
    "ServiceStateStore",
    "get_logger",
    "Validator",
    "InstallationOrchestrator",
]
