"""
Error taxonomy for the HarmonyOS installer.

Every error raised by the orchestration core derives from InstallerError so
callers at the operation boundary can record it as the terminal state of a
single call without the process going down.
"""

from pathlib import Path
from typing import Optional, List, Union


class InstallerError(Exception):
    """Base class for all installer errors."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}\n{self.details}"
        return self.message


class BinaryNotFoundError(InstallerError):
    """The hdc binary could not be located or no longer exists."""

    def __init__(self, binary_path: Optional[Union[str, Path]] = None,
                 searched: Optional[List[str]] = None):
        if binary_path:
            message = f"hdc binary not found: {binary_path}"
        else:
            message = "hdc binary not found"
        details = None
        if searched:
            details = "Searched:\n" + "\n".join(f"  - {p}" for p in searched)
        super().__init__(message, details)
        self.binary_path = str(binary_path) if binary_path else None
        self.searched = searched or []


class BinaryNotExecutableError(InstallerError):
    """The hdc binary exists but may not be executed."""

    def __init__(self, binary_path: Union[str, Path]):
        super().__init__(f"hdc binary is not executable: {binary_path}")
        self.binary_path = str(binary_path)


class SubprocessLaunchError(InstallerError):
    """The subprocess could not be started for a reason other than a missing binary."""

    def __init__(self, command: str, reason: str):
        super().__init__(f"Failed to launch '{command}': {reason}")
        self.command = command
        self.reason = reason


class CommandTimeoutError(InstallerError):
    """A subprocess exceeded the configured command timeout and was killed."""

    def __init__(self, command: str, timeout: float, output: str = ""):
        super().__init__(f"Command timed out after {timeout}s: {command}", output or None)
        self.command = command
        self.timeout = timeout
        self.output = output


class SubprocessNonZeroExitError(InstallerError):
    """The subprocess ran but reported a non-zero exit status."""

    def __init__(self, command: str, exit_code: int, output: str = ""):
        super().__init__(f"Command failed with exit code {exit_code}: {command}", output or None)
        self.command = command
        self.exit_code = exit_code
        self.output = output


class TextualFailureError(InstallerError):
    """The subprocess exited with 0 but its output reports a failure."""

    def __init__(self, command: str, failure_line: str, output: str = ""):
        super().__init__(f"Command reported failure: {failure_line}", output or None)
        self.command = command
        self.failure_line = failure_line
        self.output = output


class ArtifactMissingError(InstallerError):
    """The user-selected artifact does not exist or was moved."""

    def __init__(self, path: Union[str, Path]):
        super().__init__(f"Package file does not exist: {path}")
        self.path = str(path)


class NoInstallUnitFoundError(InstallerError):
    """No install unit could be located under the staged artifact."""

    def __init__(self, search_root: Union[str, Path], extension: str = ".hap"):
        super().__init__(f"No {extension} install unit found under: {search_root}")
        self.search_root = str(search_root)
        self.extension = extension


class IdentifierUnresolvedError(InstallerError):
    """The bundle identifier could not be read from the install unit (non-fatal)."""

    def __init__(self, unit_path: Union[str, Path], reason: str):
        super().__init__(f"Could not resolve bundle name for {unit_path}: {reason}")
        self.unit_path = str(unit_path)
        self.reason = reason


class VerificationInconclusiveError(InstallerError):
    """The installed-application query could not confirm an ambiguous install."""

    def __init__(self, bundle_name: str, reason: str):
        super().__init__(f"Could not verify installation of '{bundle_name or '<unknown>'}': {reason}")
        self.bundle_name = bundle_name
        self.reason = reason


class DownloadError(InstallerError):
    """A remote package could not be downloaded."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to download {url}: {reason}")
        self.url = url
        self.reason = reason
