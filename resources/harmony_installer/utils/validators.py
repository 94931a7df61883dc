"""
Input validation utilities for the HarmonyOS installer.

This module provides validation functions for package paths, download URLs,
device identifiers and bundle names supplied by the user or a launch URL.
"""

import os
import re
import logging
from pathlib import Path
from typing import Union, Optional, List, Dict, Any
from urllib.parse import urlparse


class ValidationResult:
    """Result of a validation operation."""

    def __init__(self, is_valid: bool, message: str = "", details: Optional[Dict[str, Any]] = None):
        self.is_valid = is_valid
        self.message = message
        self.details = details or {}

    def __bool__(self) -> bool:
        return self.is_valid

    def __str__(self) -> str:
        return f"ValidationResult(valid={self.is_valid}, message='{self.message}')"


class Validator:
    """
    Validator for user-supplied installer inputs.

    Provides validation methods for package paths, URLs, device ids
    and bundle names.
    """

    def __init__(self):
        self._logger = logging.getLogger(__name__)

        # Serial numbers, host:port and [v6]:port forms reported by hdc
        self.device_id_pattern = re.compile(r'^[A-Za-z0-9._:\-\[\]%]+$')
        self.bundle_name_pattern = re.compile(r'^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z0-9_]+)+$')

    def validate_file_path(self, file_path: Union[str, Path],
                           must_exist: bool = False,
                           must_be_readable: bool = False) -> ValidationResult:
        """
        Validate a package path and check it can be staged.

        Args:
            file_path: Path to validate
            must_exist: Whether the path must exist
            must_be_readable: Whether the path must be readable

        Returns:
            ValidationResult with validation status and path details
        """
        if not file_path:
            return ValidationResult(False, "File path cannot be empty")

        path_obj = Path(file_path).expanduser()
        exists = path_obj.exists()
        if must_exist and not exists:
            return ValidationResult(False, f"Path does not exist: {file_path}")

        details = {
            "path_object": path_obj,
            "exists": exists,
            "is_absolute": path_obj.is_absolute(),
        }

        if exists:
            is_file = path_obj.is_file()
            details.update({
                "is_file": is_file,
                "is_dir": path_obj.is_dir(),
                "size_bytes": path_obj.stat().st_size if is_file else None,
                "readable": os.access(path_obj, os.R_OK),
            })

            if must_be_readable and not details["readable"]:
                return ValidationResult(False, f"Path is not readable: {file_path}", details)

        return ValidationResult(True, "Valid file path", details)

    def validate_url(self, url: str, allowed_schemes: Optional[List[str]] = None) -> ValidationResult:
        """
        Validate URL format and scheme.

        Args:
            url: URL to validate
            allowed_schemes: List of allowed schemes (default: ['http', 'https'])

        Returns:
            ValidationResult with URL validation status
        """
        if not url:
            return ValidationResult(False, "URL cannot be empty")

        if allowed_schemes is None:
            allowed_schemes = ['http', 'https']

        parsed = urlparse(url)

        if not parsed.scheme:
            return ValidationResult(False, "URL missing scheme")

        if parsed.scheme.lower() not in allowed_schemes:
            return ValidationResult(False, f"Invalid URL scheme. Allowed: {allowed_schemes}")

        if not parsed.netloc:
            return ValidationResult(False, "URL missing network location")

        details = {
            "scheme": parsed.scheme,
            "netloc": parsed.netloc,
            "path": parsed.path,
            "query": parsed.query,
        }
        return ValidationResult(True, "Valid URL", details)

    def validate_device_id(self, device_id: str) -> ValidationResult:
        """Validate a connector-assigned device id before it reaches a command line."""
        if not device_id or not device_id.strip():
            return ValidationResult(False, "Device id cannot be empty")

        if not self.device_id_pattern.match(device_id.strip()):
            return ValidationResult(False, f"Invalid device id: {device_id}")

        return ValidationResult(True, "Valid device id")

    def validate_bundle_name(self, bundle_name: str) -> ValidationResult:
        """Validate a reverse-domain bundle name such as com.example.app."""
        if not bundle_name:
            return ValidationResult(False, "Bundle name cannot be empty")

        if not self.bundle_name_pattern.match(bundle_name):
            return ValidationResult(False, f"Invalid bundle name: {bundle_name}")

        return ValidationResult(True, "Valid bundle name")

    def sanitize_filename(self, filename: str, replacement: str = "_") -> str:
        """
        Sanitize a filename by replacing characters unsafe on any platform.

        Args:
            filename: Original filename
            replacement: Replacement for unsafe characters

        Returns:
            Sanitized filename
        """
        sanitized = re.sub(r'[<>:"/\\|?*\x00-\x1f]', replacement, filename)
        sanitized = sanitized.strip('. ')
        return sanitized or "download"


# Global validator instance
_global_validator: Optional[Validator] = None


def get_validator() -> Validator:
    """
    Get the global validator instance.

    Returns:
        Global Validator instance
    """
    global _global_validator
    if _global_validator is None:
        _global_validator = Validator()
    return _global_validator
