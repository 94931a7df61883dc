"""
Platform-specific utilities for the HarmonyOS installer.

This module provides cross-platform functions for determining OS-specific
configuration paths and the library search variable the hdc binary
needs to find its shared libraries.
"""

import os
import sys
from pathlib import Path


def is_windows() -> bool:
    """Check if the current operating system is Windows."""
    return os.name == 'nt'


def is_macos() -> bool:
    """Check if the current operating system is macOS."""
    return sys.platform == 'darwin'


def get_platform_config_dir(app_name: str) -> Path:
    """
    Get the platform-appropriate configuration directory for the application.

    Args:
        app_name: The name of the application.

    Returns:
        A Path object pointing to the configuration directory.
    """
    if is_windows():
        # Windows: %APPDATA%\app_name
        config_dir = Path(os.getenv('APPDATA', '')) / app_name
    elif is_macos():
        # macOS: ~/Library/Application Support/app_name
        config_dir = Path.home() / 'Library' / 'Application Support' / app_name
    else:
        # Linux: ~/.config/app_name
        config_dir = Path.home() / '.config' / app_name

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_library_path_variable() -> str:
    """
    Get the environment variable the dynamic loader searches for shared libraries.

    Returns:
        DYLD_LIBRARY_PATH on macOS, PATH on Windows, LD_LIBRARY_PATH elsewhere.
    """
    if is_windows():
        return 'PATH'
    if is_macos():
        return 'DYLD_LIBRARY_PATH'
    return 'LD_LIBRARY_PATH'


def get_executable_name(name: str) -> str:
    """Append the platform executable suffix to a binary name."""
    if is_windows() and not name.lower().endswith('.exe'):
        return f"{name}.exe"
    return name
