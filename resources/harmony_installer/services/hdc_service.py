"""
hdc connector service for the HarmonyOS installer.

This module locates the hdc binary, prepares the environment it needs to load
its shared libraries, and exposes the subcommands the installer drives.
"""

import os
import shutil
import logging
import threading
from pathlib import Path
from typing import Optional, Dict, List, Union, Sequence

from ..config.settings import HdcConfig, get_config
from ..errors import BinaryNotFoundError
from ..utils.logger import get_logger
from ..utils.platform_utils import get_library_path_variable, get_executable_name, is_windows
from .command_executor import CommandExecutor, CommandResult

# Relative search paths are resolved against the directory holding the package
RESOURCE_ROOT = Path(__file__).resolve().parent.parent.parent


class HdcService:
    """
    Thin typed wrapper around the hdc binary.

    Every invocation runs with the binary's directory as working directory
    (unless overridden) and with that directory prepended to the platform
    library search path.
    """

    def __init__(self, executor: Optional[CommandExecutor] = None,
                 hdc_config: Optional[HdcConfig] = None,
                 binary_path: Optional[Union[str, Path]] = None):
        """
        Initialize the hdc service.

        Args:
            executor: Command executor; a new one is created when omitted
            hdc_config: hdc settings; taken from the global config when omitted
            binary_path: Explicit binary path overriding the configured search
        """
        try:
            self._logger = get_logger()
        except RuntimeError:
            self._logger = logging.getLogger(__name__)

        if hdc_config is None:
            try:
                hdc_config = get_config().hdc
            except RuntimeError:
                hdc_config = HdcConfig()
        self.hdc_config = hdc_config

        self.executor = executor or CommandExecutor(default_timeout=hdc_config.command_timeout)
        self._explicit_path = Path(binary_path).expanduser() if binary_path else None
        self._binary_path: Optional[Path] = None
        self._resolve_lock = threading.Lock()

    def candidate_paths(self) -> List[Path]:
        """Ordered list of locations checked for the binary."""
        candidates: List[Path] = []
        if self._explicit_path:
            candidates.append(self._explicit_path)
        if self.hdc_config.binary_path:
            candidates.append(Path(self.hdc_config.binary_path).expanduser())

        for entry in self.hdc_config.search_paths:
            path = Path(entry).expanduser()
            if not path.is_absolute():
                path = RESOURCE_ROOT / path
            candidates.append(path)
            if is_windows():
                candidates.append(path.with_name(get_executable_name(path.name)))

        return candidates

    def resolve_binary(self) -> Path:
        """
        Locate the hdc binary and normalise permissions of its companion tools.

        Returns:
            Absolute path of the binary

        Raises:
            BinaryNotFoundError: If no candidate exists and hdc is not on PATH
        """
        with self._resolve_lock:
            if self._binary_path and self._binary_path.exists():
                return self._binary_path

            candidates = self.candidate_paths()
            for candidate in candidates:
                if candidate.is_file():
                    self._binary_path = candidate.resolve()
                    break
            else:
                found = shutil.which(self.hdc_config.binary_name)
                if not found:
                    raise BinaryNotFoundError(
                        self._explicit_path or self.hdc_config.binary_path,
                        searched=[str(c) for c in candidates] + ["PATH"]
                    )
                self._binary_path = Path(found).resolve()

            self._logger.info(f"Using hdc binary: {self._binary_path}")
            self._prepare_binary_directory(self._binary_path)
            return self._binary_path

    def _prepare_binary_directory(self, binary_path: Path) -> None:
        """Make the binary and its companion tools executable."""
        if is_windows():
            return

        for name in [binary_path.name, *self.hdc_config.companion_tools]:
            tool = binary_path.parent / name
            if not tool.is_file():
                continue
            try:
                os.chmod(tool, 0o755)
            except OSError as e:
                self._logger.warning(f"Could not set permissions on {tool}: {e}")

    @property
    def binary_dir(self) -> Path:
        return self.resolve_binary().parent

    def build_environment(self) -> Dict[str, str]:
        """Environment overrides letting hdc find the libraries beside it."""
        variable = get_library_path_variable()
        binary_dir = str(self.binary_dir)
        existing = os.environ.get(variable)
        value = f"{binary_dir}{os.pathsep}{existing}" if existing else binary_dir
        return {variable: value}

    def run(self, args: Sequence[str],
            working_dir: Optional[Union[str, Path]] = None) -> CommandResult:
        """
        Run hdc with the given arguments.

        Args:
            args: hdc arguments
            working_dir: Working directory; defaults to the binary's directory

        Returns:
            CommandResult of the invocation
        """
        binary = self.resolve_binary()
        return self.executor.run(
            binary,
            list(args),
            working_dir=working_dir or binary.parent,
            env=self.build_environment(),
            timeout=self.hdc_config.command_timeout
        )

    def run_on_device(self, device_id: str, args: Sequence[str],
                      working_dir: Optional[Union[str, Path]] = None) -> CommandResult:
        """Run hdc against a single target device."""
        return self.run(["-t", device_id, *args], working_dir=working_dir)

    # Server lifecycle

    def start_server(self) -> CommandResult:
        return self.run(["start-server"])

    def kill_server(self) -> CommandResult:
        return self.run(["kill-server"])

    # Discovery

    def list_targets(self) -> CommandResult:
        """List connected targets, falling back to `list` on older binaries."""
        result = self.run(["list", "targets"])
        if result.success:
            return result

        self._logger.debug(f"'list targets' exited with {result.exit_code}, trying 'list'")
        return self.run(["list"])

    # Bundles

    def uninstall(self, device_id: str, bundle_name: str) -> CommandResult:
        return self.run_on_device(device_id, ["uninstall", bundle_name])

    # Device shell

    def shell(self, device_id: str, command: Sequence[str]) -> CommandResult:
        return self.run_on_device(device_id, ["shell", *command])

    def dump_bundles(self, device_id: str, command: Optional[Sequence[str]] = None) -> CommandResult:
        """Query the installed bundles on a device."""
        return self.shell(device_id, command or ["bm", "dump", "-a"])
