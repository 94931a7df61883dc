"""
Installation orchestration service for the HarmonyOS installer.

This module drives one install call from staging to its verdict: it stages
the package, resolves the bundle identifier, walks the strategy ladder until
one strategy succeeds, and verifies ambiguous outcomes against the device's
installed-bundle list. It also provides push-and-install and uninstall.
"""

import uuid
import logging
from enum import Enum
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Callable, List, Tuple, Union

from ..config.settings import InstallationConfig, get_config
from ..errors import (
    InstallerError, CommandTimeoutError, SubprocessNonZeroExitError,
    TextualFailureError, VerificationInconclusiveError
)
from ..models.install_session import (
    InstallSession, InstallPhase, InstallResult, StrategyAttempt, BundleIdentity
)
from ..utils.logger import get_logger
from ..utils.validators import get_validator
from .command_executor import CommandResult
from .hdc_service import HdcService
from .package_stager import PackageStager
from .bundle_resolver import BundleIdentifierResolver
from .output_parser import find_failure_marker, has_no_package_marker, bundle_is_listed


class WorkingDirRule(Enum):
    """Where a strategy's hdc invocation runs."""
    BINARY_DIR = "binary_dir"
    UNIT_DIR = "unit_dir"


@dataclass(frozen=True)
class InstallStrategy:
    """
    One rung of the install ladder.

    `args` is a template; `{unit}` expands to the unit's absolute path and
    `{name}` to its file name.
    """
    name: str
    args: Tuple[str, ...]
    working_dir: WorkingDirRule = WorkingDirRule.BINARY_DIR
    alternate_unit: bool = False

    def build_args(self, unit_path: Path) -> List[str]:
        return [part.format(unit=str(unit_path), name=unit_path.name) for part in self.args]

    def resolve_working_dir(self, unit_path: Path) -> Optional[Path]:
        if self.working_dir == WorkingDirRule.UNIT_DIR:
            return unit_path.parent
        return None


INSTALL_STRATEGIES: Tuple[InstallStrategy, ...] = (
    InstallStrategy("install", ("install", "{unit}")),
    InstallStrategy("app_install", ("app", "install", "{unit}")),
    InstallStrategy("relative_install", ("install", "./{name}"), WorkingDirRule.UNIT_DIR),
    InstallStrategy("bm_install", ("bm", "install", "-p", "{unit}")),
    InstallStrategy("alternate_unit", ("install", "{unit}"), alternate_unit=True),
)


@dataclass
class InstallProgress:
    """Progress information for install operations."""
    phase: InstallPhase
    message: str
    attempt_index: int = 0
    attempt_count: int = len(INSTALL_STRATEGIES)


class InstallationOrchestrator:
    """
    Coordinates package installation on a HarmonyOS device.

    Calls block until hdc finishes and are meant to run on a background
    thread; errors end up in the returned InstallResult instead of being
    raised.
    """

    def __init__(self, hdc: HdcService,
                 stager: Optional[PackageStager] = None,
                 resolver: Optional[BundleIdentifierResolver] = None,
                 installation_config: Optional[InstallationConfig] = None,
                 strategies: Tuple[InstallStrategy, ...] = INSTALL_STRATEGIES):
        if installation_config is None:
            try:
                installation_config = get_config().installation
            except RuntimeError:
                installation_config = InstallationConfig()

        self.hdc = hdc
        self.config = installation_config
        self.stager = stager or PackageStager()
        self.resolver = resolver or BundleIdentifierResolver(installation_config)
        self.strategies = strategies
        self.validator = get_validator()

        self.progress_callback: Optional[Callable[[InstallProgress], None]] = None

        try:
            self._logger = get_logger()
        except RuntimeError:
            self._logger = logging.getLogger(__name__)

    def set_progress_callback(self, callback: Callable[[InstallProgress], None]) -> None:
        """Set progress callback for install updates."""
        self.progress_callback = callback

    def _log_output(self, message: str, level: int = logging.INFO) -> None:
        self._logger.log(level, message)

    def _update_progress(self, session: InstallSession, message: str, attempt_index: int = 0) -> None:
        if self.progress_callback:
            self.progress_callback(InstallProgress(
                phase=session.phase,
                message=message,
                attempt_index=attempt_index,
                attempt_count=len(self.strategies)
            ))

    def _check_device_id(self, device_id: str) -> None:
        validation = self.validator.validate_device_id(device_id)
        if not validation:
            raise InstallerError(validation.message)

    # Install ladder

    def install_package(self, package_path: Union[str, Path], device_id: str) -> InstallResult:
        """
        Install a package on a device.

        Args:
            package_path: Install unit, archive or directory chosen by the user
            device_id: Target device id

        Returns:
            InstallResult with the verdict and, on failure, diagnostics
        """
        session = InstallSession(Path(package_path), device_id)
        self._log_output(f"Installing {session.artifact_path.name} on {device_id}")

        try:
            self._check_device_id(device_id)
            self._stage(session)
            self._resolve_identifier(session)
            self._run_ladder(session)
        except InstallerError as e:
            if not session.phase.is_terminal:
                session.fail(e.message, e)
            self._log_output(f"Installation failed: {e.message}", logging.ERROR)
            return InstallResult.from_error(e, device_id, session)
        finally:
            if session.staged:
                self.stager.cleanup(session.staged.session_dir)

        result = InstallResult.from_session(session)
        if result.success:
            self._log_output(f"{result.message}: {result.bundle_name or session.artifact_path.name}")
        else:
            self._log_output(result.message, logging.ERROR)
            self._logger.debug(result.diagnostics)
        return result

    def _stage(self, session: InstallSession) -> None:
        self._update_progress(session, "Preparing package")
        session.staged = self.stager.stage(session.artifact_path)

    def _resolve_identifier(self, session: InstallSession) -> None:
        session.advance_to(InstallPhase.IDENTIFIER_RESOLUTION)
        self._update_progress(session, "Reading bundle name")
        session.identity = self.resolver.resolve(session.unit_path)

    def _run_ladder(self, session: InstallSession) -> None:
        session.advance_to(InstallPhase.ATTEMPTING)

        for index, strategy in enumerate(self.strategies, start=1):
            unit_path = session.unit_path
            if strategy.alternate_unit:
                unit_path = self._next_untried_unit(session)
                if unit_path is None:
                    self._logger.debug("No alternate install unit to try")
                    continue

            self._update_progress(session, f"Trying {strategy.name}", index)
            attempt = self._run_strategy(session, strategy, unit_path)
            if attempt.succeeded:
                self._logger.info(f"Strategy '{strategy.name}' succeeded")
                session.succeed()
                return

        if session.all_attempts_no_package() and self.config.verify_on_ambiguous:
            if self._verify_installed(session):
                session.succeed(verified=True)
                return

        error = self._final_failure(session)
        session.fail(error.message, error)

    def _next_untried_unit(self, session: InstallSession) -> Optional[Path]:
        search_root = session.staged.search_root if session.staged else None
        if search_root is None:
            return None
        tried = set(session.tried_units())
        for candidate in self.stager.find_all_units(search_root):
            if candidate not in tried:
                return candidate
        return None

    def _run_strategy(self, session: InstallSession, strategy: InstallStrategy,
                      unit_path: Path) -> StrategyAttempt:
        args = strategy.build_args(unit_path)
        working_dir = strategy.resolve_working_dir(unit_path)
        attempt = session.record_attempt(StrategyAttempt(
            name=strategy.name,
            command="hdc -t {} {}".format(session.device_id, " ".join(args)),
            unit_path=unit_path
        ))
        attempt.start()

        try:
            result = self.hdc.run_on_device(session.device_id, args, working_dir=working_dir)
        except CommandTimeoutError as e:
            self._logger.warning(f"Strategy '{strategy.name}' timed out")
            attempt.fail(e.output, failure_line=e.message)
            return attempt

        attempt.command = result.command
        self._evaluate(attempt, result)
        if not attempt.succeeded:
            reason = attempt.failure_line or f"exit code {result.exit_code}"
            self._logger.warning(f"Strategy '{strategy.name}' failed: {reason}")
        return attempt

    def _evaluate(self, attempt: StrategyAttempt, result: CommandResult) -> None:
        failure_line = find_failure_marker(result.output, self.config.failure_markers)
        if result.success and failure_line is None:
            attempt.succeed(result.exit_code, result.output)
            return
        attempt.fail(
            result.output,
            exit_code=result.exit_code,
            failure_line=failure_line,
            no_package=has_no_package_marker(result.output, self.config.no_package_markers)
        )

    def _verify_installed(self, session: InstallSession) -> bool:
        """Check the device's bundle list for an ambiguous install."""
        session.advance_to(InstallPhase.VERIFYING)
        bundle_name = session.identity.bundle_name
        self._update_progress(session, "Verifying installation")
        if session.identity.is_known and session.identity.is_guess:
            self._logger.warning(f"Verifying with a bundle name guessed from the file name: {bundle_name}")

        try:
            if not bundle_name:
                raise VerificationInconclusiveError(bundle_name, "bundle name is unknown")

            result = self.hdc.dump_bundles(session.device_id, self.config.bundle_list_command)
            if not result.success:
                raise VerificationInconclusiveError(bundle_name, f"bundle query exited with {result.exit_code}")
            if not bundle_is_listed(result.output, bundle_name):
                raise VerificationInconclusiveError(bundle_name, "bundle is not listed on the device")

        except InstallerError as e:
            self._logger.warning(f"Verification failed: {e.message}")
            return False

        self._log_output(f"Installer reported no package, but {bundle_name} is installed")
        return True

    def _final_failure(self, session: InstallSession) -> InstallerError:
        """Error describing the last failed attempt."""
        failed = [attempt for attempt in session.attempts if not attempt.succeeded]
        if not failed:
            return InstallerError("No install strategy could be attempted")

        last = failed[-1]
        if last.failure_line:
            error = TextualFailureError(last.command, last.failure_line, last.output)
        else:
            error = SubprocessNonZeroExitError(last.command, last.exit_code or -1, last.output)
        error.message = f"Installation failed after {len(failed)} attempt(s): {error.message}"
        return error

    # Push and install

    def push_and_install(self, package_path: Union[str, Path], device_id: str,
                         ability_name: Optional[str] = None) -> InstallResult:
        """
        Push the install unit to the device and install it from there.

        The running app is stopped first; after a successful install the app
        is launched, and a failed launch does not change the result.

        Args:
            package_path: Install unit, archive or directory chosen by the user
            device_id: Target device id
            ability_name: Ability to launch; defaults to the manifest's main ability

        Returns:
            InstallResult with the verdict
        """
        session = InstallSession(Path(package_path), device_id)
        self._log_output(f"Pushing {session.artifact_path.name} to {device_id}")

        try:
            self._check_device_id(device_id)
            self._stage(session)
            self._resolve_identifier(session)
            session.advance_to(InstallPhase.ATTEMPTING)

            identity = session.identity
            if identity.is_known:
                self._best_effort(session, "force_stop", ["shell", "aa", "force-stop", identity.bundle_name])

            self._push_and_install_unit(session)

            if session.phase == InstallPhase.SUCCEEDED and identity.is_known:
                self._launch(session, identity, ability_name)

        except InstallerError as e:
            if not session.phase.is_terminal:
                session.fail(e.message, e)
            self._log_output(f"Push install failed: {e.message}", logging.ERROR)
            return InstallResult.from_error(e, device_id, session)
        finally:
            if session.staged:
                self.stager.cleanup(session.staged.session_dir)

        result = InstallResult.from_session(session)
        self._log_output(result.message, logging.INFO if result.success else logging.ERROR)
        return result

    def _push_and_install_unit(self, session: InstallSession) -> None:
        unit_path = session.unit_path
        remote_dir = f"{self.config.remote_temp_root.rstrip('/')}/{uuid.uuid4().hex}"
        remote_path = f"{remote_dir}/{unit_path.name}"

        try:
            self._required_step(session, "mkdir", ["shell", "mkdir", "-p", remote_dir])
            self._required_step(session, "file_send", ["file", "send", str(unit_path), remote_path])
            self._required_step(session, "bm_install", ["shell", "bm", "install", "-p", remote_path])
        except InstallerError as e:
            session.fail(e.message, e)
        else:
            session.succeed()
        finally:
            self._best_effort(session, "remove_remote", ["shell", "rm", "-rf", remote_dir])

    def _run_step(self, session: InstallSession, name: str, args: List[str]) -> StrategyAttempt:
        attempt = session.record_attempt(StrategyAttempt(
            name=name,
            command="hdc -t {} {}".format(session.device_id, " ".join(args))
        ))
        attempt.start()
        result = self.hdc.run_on_device(session.device_id, args)
        attempt.command = result.command
        self._evaluate(attempt, result)
        return attempt

    def _required_step(self, session: InstallSession, name: str, args: List[str]) -> None:
        attempt = self._run_step(session, name, args)
        if attempt.succeeded:
            return
        if attempt.failure_line:
            raise TextualFailureError(attempt.command, attempt.failure_line, attempt.output)
        raise SubprocessNonZeroExitError(attempt.command, attempt.exit_code, attempt.output)

    def _best_effort(self, session: InstallSession, name: str, args: List[str]) -> bool:
        try:
            attempt = self._run_step(session, name, args)
        except InstallerError as e:
            self._logger.warning(f"Step '{name}' could not run: {e.message}")
            return False
        if not attempt.succeeded:
            self._logger.debug(f"Step '{name}' failed: {attempt.failure_line or attempt.exit_code}")
        return attempt.succeeded

    def _launch(self, session: InstallSession, identity: BundleIdentity,
                ability_name: Optional[str]) -> None:
        ability = ability_name or identity.ability_name or self.config.default_ability_name
        launched = self._best_effort(
            session, "launch", ["shell", "aa", "start", "-a", ability, "-b", identity.bundle_name]
        )
        if launched:
            self._log_output(f"Launched {identity.bundle_name}/{ability}")
        else:
            self._log_output(f"Installed, but could not launch {identity.bundle_name}", logging.WARNING)

    # Uninstall

    def uninstall(self, bundle_name: str, device_id: str) -> InstallResult:
        """
        Uninstall a bundle from a device.

        Returns:
            InstallResult with the verdict
        """
        try:
            self._check_device_id(device_id)
            validation = self.validator.validate_bundle_name(bundle_name)
            if not validation:
                raise InstallerError(validation.message)

            self._log_output(f"Uninstalling {bundle_name} from {device_id}")
            result = self.hdc.uninstall(device_id, bundle_name)
            failure_line = find_failure_marker(result.output, self.config.failure_markers)
            if failure_line:
                raise TextualFailureError(result.command, failure_line, result.output)
            if not result.success:
                raise SubprocessNonZeroExitError(result.command, result.exit_code, result.output)

        except InstallerError as e:
            self._log_output(f"Uninstall failed: {e.message}", logging.ERROR)
            return InstallResult.from_error(e, device_id)

        self._log_output(f"Uninstalled {bundle_name}")
        return InstallResult(
            success=True,
            message=f"Uninstalled {bundle_name}",
            device_id=device_id,
            bundle_name=bundle_name
        )
