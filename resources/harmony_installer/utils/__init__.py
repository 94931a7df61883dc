"""
Utility modules for the HarmonyOS installer.

This module provides common utilities including logging, validation,
and platform helpers used throughout the application.
"""

from .logger import get_logger, setup_logging
from .validators import Validator, get_validator

__all__ = ["get_logger", "setup_logging", "Validator", "get_validator"]
