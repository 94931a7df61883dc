"""
Launch requests delivered to the installer through its URL scheme.

A launch URL looks like
``harmonyinstaller://install?package=<path-or-url>&device=<id>``.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse, parse_qs, unquote


class LaunchRequestError(ValueError):
    """Raised when a launch URL cannot be turned into a request."""
    pass


SUPPORTED_ACTIONS = ("install", "push-install", "uninstall", "list-devices")


@dataclass(frozen=True)
class LaunchRequest:
    """An explicit request passed into the entry point at launch."""
    action: str
    package: Optional[str] = None
    device_id: Optional[str] = None
    bundle_name: Optional[str] = None

    @property
    def is_remote_package(self) -> bool:
        return bool(self.package) and urlparse(self.package).scheme.lower() in ("http", "https")

    @property
    def package_path(self) -> Optional[Path]:
        """Local package path, or None when the package is remote or absent."""
        if not self.package or self.is_remote_package:
            return None
        parsed = urlparse(self.package)
        if parsed.scheme.lower() == "file":
            return Path(unquote(parsed.path))
        return Path(self.package).expanduser()

    @classmethod
    def from_url(cls, url: str, scheme: str = "harmonyinstaller") -> 'LaunchRequest':
        """
        Parse a launch URL.

        Args:
            url: URL received by the application
            scheme: Expected URL scheme, compared case-insensitively

        Returns:
            Parsed LaunchRequest

        Raises:
            LaunchRequestError: If the scheme, action or parameters are invalid
        """
        parsed = urlparse(url.strip())
        if parsed.scheme.lower() != scheme.lower():
            raise LaunchRequestError(f"Unsupported URL scheme '{parsed.scheme}', expected '{scheme}'")

        # harmonyinstaller://install?... puts the action in netloc,
        # harmonyinstaller:install?... puts it in path
        action = (parsed.netloc or parsed.path).strip("/").lower()
        if action not in SUPPORTED_ACTIONS:
            raise LaunchRequestError(f"Unsupported launch action: '{action}'")

        params = parse_qs(parsed.query)

        def first(name: str) -> Optional[str]:
            values = params.get(name)
            return values[0] if values and values[0] else None

        request = cls(
            action=action,
            package=first("package") or first("path") or first("url"),
            device_id=first("device"),
            bundle_name=first("bundle")
        )

        if action in ("install", "push-install") and not request.package:
            raise LaunchRequestError(f"Launch action '{action}' requires a package parameter")
        if action == "uninstall" and not request.bundle_name:
            raise LaunchRequestError("Launch action 'uninstall' requires a bundle parameter")

        return request
