"""
Configuration module for the HarmonyOS installer.

This module handles application settings, environment overrides and
configuration file management with proper validation and error handling.
"""

from .settings import AppConfig

__all__ = ["AppConfig"]
