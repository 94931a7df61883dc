"""
Install session state for the HarmonyOS installer.

This module holds the records created while one install call runs: the
resolved package artifact, the staged install unit, the resolved bundle
identity, the ordered log of attempted strategies and the final result.
"""

import uuid
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime


class InstallPhase(Enum):
    """Phases an install session moves through."""
    STAGING = "staging"
    IDENTIFIER_RESOLUTION = "identifier_resolution"
    ATTEMPTING = "attempting"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (InstallPhase.SUCCEEDED, InstallPhase.FAILED)


class PackageKind(Enum):
    """Shape of a user-selected package artifact."""
    INSTALL_UNIT = "install_unit"
    ARCHIVE = "archive"
    DIRECTORY = "directory"


class AttemptStatus(Enum):
    """Status of a single strategy attempt."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class IdentifierSource(Enum):
    """Where a bundle identifier came from."""
    MANIFEST = "manifest"
    HEURISTIC = "heuristic"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PackageArtifact:
    """A user-chosen package path and its discovered kind."""
    source_path: Path
    kind: PackageKind
    file_type: str = ""

    def __str__(self) -> str:
        return f"{self.source_path} ({self.kind.value})"


@dataclass(frozen=True)
class StagedPackage:
    """
    Result of staging an artifact.

    `unit_path` always lives under `session_dir`; `search_root` is the
    directory the unit was located in, or None for a direct install unit.
    """
    artifact: PackageArtifact
    session_dir: Path
    workspace: Path
    unit_path: Path
    search_root: Optional[Path] = None


@dataclass(frozen=True)
class BundleIdentity:
    """Resolved bundle identifier of an install unit."""
    bundle_name: str = ""
    ability_name: Optional[str] = None
    source: IdentifierSource = IdentifierSource.UNKNOWN

    @property
    def is_known(self) -> bool:
        return bool(self.bundle_name)

    @property
    def is_guess(self) -> bool:
        return self.source != IdentifierSource.MANIFEST


@dataclass
class StrategyAttempt:
    """One attempted install strategy and its outcome."""
    name: str
    command: str
    unit_path: Optional[Path] = None
    status: AttemptStatus = AttemptStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    exit_code: Optional[int] = None
    output: str = ""
    failure_line: Optional[str] = None
    no_package: bool = False

    def start(self) -> None:
        """Mark attempt as running."""
        self.status = AttemptStatus.RUNNING
        self.started_at = datetime.now()

    def succeed(self, exit_code: int, output: str) -> None:
        """Mark attempt as successful."""
        self.status = AttemptStatus.SUCCEEDED
        self.completed_at = datetime.now()
        self.exit_code = exit_code
        self.output = output

    def fail(self, output: str, exit_code: Optional[int] = None,
             failure_line: Optional[str] = None, no_package: bool = False) -> None:
        """Mark attempt as failed."""
        self.status = AttemptStatus.FAILED
        self.completed_at = datetime.now()
        self.exit_code = exit_code
        self.output = output
        self.failure_line = failure_line
        self.no_package = no_package

    @property
    def succeeded(self) -> bool:
        return self.status == AttemptStatus.SUCCEEDED

    def duration_seconds(self) -> Optional[float]:
        """Get attempt duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def output_excerpt(self, max_lines: int = 10) -> str:
        """Last lines of the raw output, for diagnostics."""
        lines = [line for line in self.output.splitlines() if line.strip()]
        return "\n".join(lines[-max_lines:])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "command": self.command,
            "unit_path": str(self.unit_path) if self.unit_path else None,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "failure_line": self.failure_line,
            "no_package": self.no_package,
            "duration_seconds": self.duration_seconds(),
        }


class InstallSession:
    """
    Tracks one install call from staging to its verdict.

    A session is created at the start of an install call and owns an isolated
    staging directory that the orchestrator removes when the call ends.
    """

    def __init__(self, artifact_path: Path, device_id: str):
        self.session_id = uuid.uuid4().hex
        self.artifact_path = Path(artifact_path)
        self.device_id = device_id

        self.phase = InstallPhase.STAGING
        self.staged: Optional[StagedPackage] = None
        self.identity = BundleIdentity()
        self.attempts: List[StrategyAttempt] = []

        self.verified = False
        self.error_message: Optional[str] = None
        self.error: Optional[Exception] = None

        self.started_at = datetime.now()
        self.completed_at: Optional[datetime] = None

        self._logger = logging.getLogger(__name__)

    @property
    def unit_path(self) -> Optional[Path]:
        return self.staged.unit_path if self.staged else None

    @property
    def artifact(self) -> Optional[PackageArtifact]:
        return self.staged.artifact if self.staged else None

    def advance_to(self, phase: InstallPhase) -> None:
        """
        Move the session to a new phase.

        Args:
            phase: Target phase

        Raises:
            RuntimeError: If the session already reached a terminal phase
        """
        if self.phase.is_terminal:
            raise RuntimeError(f"Install session already {self.phase.value}")
        if self.phase != phase:
            self._logger.debug(f"Session {self.session_id[:8]}: {self.phase.value} -> {phase.value}")
            self.phase = phase
        if phase.is_terminal:
            self.completed_at = datetime.now()

    def record_attempt(self, attempt: StrategyAttempt) -> StrategyAttempt:
        """Append an attempt to the ordered strategy log."""
        self.attempts.append(attempt)
        return attempt

    def tried_units(self) -> List[Path]:
        """Install units already used by an attempt."""
        return [attempt.unit_path for attempt in self.attempts if attempt.unit_path]

    def all_attempts_no_package(self) -> bool:
        """True when every attempt failed with the no-installable-package marker."""
        return bool(self.attempts) and all(
            not attempt.succeeded and attempt.no_package for attempt in self.attempts
        )

    def succeed(self, verified: bool = False) -> None:
        self.verified = verified
        self.error_message = None
        self.advance_to(InstallPhase.SUCCEEDED)

    def fail(self, error_message: str, error: Optional[Exception] = None) -> None:
        self.error_message = error_message
        self.error = error
        self.advance_to(InstallPhase.FAILED)

    def duration_seconds(self) -> Optional[float]:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def get_diagnostics(self) -> str:
        """
        Build a human-readable diagnostic report of the session.

        Returns:
            Multi-line text listing the artifact, the unit and every attempt
        """
        lines = [f"Package: {self.artifact_path}"]
        if self.artifact:
            lines.append(f"Kind: {self.artifact.kind.value}")
            if self.artifact.file_type:
                lines.append(f"File type: {self.artifact.file_type}")
        if self.unit_path:
            lines.append(f"Install unit: {self.unit_path}")
        if self.identity.is_known:
            lines.append(f"Bundle name: {self.identity.bundle_name} ({self.identity.source.value})")

        for index, attempt in enumerate(self.attempts, start=1):
            lines.append(f"Attempt {index} [{attempt.name}]: {attempt.status.value}"
                         f" (exit code {attempt.exit_code})")
            lines.append(f"  $ {attempt.command}")
            excerpt = attempt.output_excerpt()
            if excerpt:
                lines.extend(f"  | {line}" for line in excerpt.splitlines())

        return "\n".join(lines)

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the session.

        Returns:
            Dictionary with session status information
        """
        return {
            "session_id": self.session_id,
            "device_id": self.device_id,
            "artifact_path": str(self.artifact_path),
            "kind": self.artifact.kind.value if self.artifact else None,
            "file_type": self.artifact.file_type if self.artifact else None,
            "unit_path": str(self.unit_path) if self.unit_path else None,
            "bundle_name": self.identity.bundle_name,
            "identifier_source": self.identity.source.value,
            "phase": self.phase.value,
            "verified": self.verified,
            "error_message": self.error_message,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class InstallResult:
    """Terminal outcome of an install, push-install or uninstall call."""
    success: bool
    message: str
    device_id: str = ""
    bundle_name: str = ""
    verified: bool = False
    diagnostics: str = ""
    error: Optional[Exception] = field(default=None, repr=False)
    session: Optional[InstallSession] = field(default=None, repr=False)

    @classmethod
    def from_session(cls, session: InstallSession) -> 'InstallResult':
        success = session.phase == InstallPhase.SUCCEEDED
        if success:
            message = "Installation verified" if session.verified else "Installation succeeded"
        else:
            message = session.error_message or "Installation failed"
        return cls(
            success=success,
            message=message,
            device_id=session.device_id,
            bundle_name=session.identity.bundle_name,
            verified=session.verified,
            diagnostics="" if success else session.get_diagnostics(),
            error=session.error,
            session=session
        )

    @classmethod
    def from_error(cls, error: Exception, device_id: str = "",
                   session: Optional[InstallSession] = None) -> 'InstallResult':
        return cls(
            success=False,
            message=getattr(error, "message", None) or str(error),
            device_id=device_id,
            bundle_name=session.identity.bundle_name if session else "",
            diagnostics=session.get_diagnostics() if session else "",
            error=error,
            session=session
        )
