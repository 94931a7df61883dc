"""
Data models for the HarmonyOS installer.

This module contains core data structures representing devices, install
sessions, the observable service state and launch requests.
"""

from .device import Device, ConnectionType
from .install_session import (
    InstallPhase, PackageKind, PackageArtifact, StagedPackage,
    BundleIdentity, IdentifierSource, StrategyAttempt, InstallSession, InstallResult
)
from .service_state import ServiceState, ServiceStateStore
from .launch_request import LaunchRequest, LaunchRequestError

__all__ = [
    "Device", "ConnectionType",
    "InstallPhase", "PackageKind", "PackageArtifact", "StagedPackage",
    "BundleIdentity", "IdentifierSource", "StrategyAttempt", "InstallSession", "InstallResult",
    "ServiceState", "ServiceStateStore",
    "LaunchRequest", "LaunchRequestError",
]
