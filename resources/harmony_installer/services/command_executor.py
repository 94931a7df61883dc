"""
Subprocess execution for the HarmonyOS installer.

CommandExecutor runs one external binary, merges its stdout and stderr into
a single text stream, and maps launch failures onto the installer's error
taxonomy. A non-zero exit code is returned to the caller, never raised.
"""

import os
import shlex
import signal
import subprocess
import threading
import time
import logging
from pathlib import Path
from typing import Optional, Callable, Dict, List, Union, Sequence
from dataclasses import dataclass

from ..errors import (
    BinaryNotFoundError, BinaryNotExecutableError,
    SubprocessLaunchError, CommandTimeoutError
)
from ..utils.platform_utils import is_windows


def format_command(binary_path: Union[str, Path], args: Sequence[str]) -> str:
    """Render a command line for logs and diagnostics."""
    return " ".join(shlex.quote(str(part)) for part in [binary_path, *args])


@dataclass
class CommandResult:
    """Result of a finished subprocess."""
    command: str
    exit_code: int
    output: str
    execution_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def lines(self) -> List[str]:
        return self.output.splitlines()


class CommandExecutor:
    """
    Runs external commands and captures their merged output.

    Calls block until the subprocess exits, so they are meant to run on a
    background thread.
    """

    def __init__(self, default_timeout: Optional[float] = None):
        """
        Initialize the executor.

        Args:
            default_timeout: Seconds before a subprocess is killed; None waits forever
        """
        self.default_timeout = default_timeout
        self.output_callback: Optional[Callable[[str], None]] = None
        self._logger = logging.getLogger(__name__)

    def set_output_callback(self, callback: Optional[Callable[[str], None]]) -> None:
        """Set callback receiving each output line as it is produced."""
        self.output_callback = callback

    def run(self, binary_path: Union[str, Path], args: Sequence[str],
            working_dir: Optional[Union[str, Path]] = None,
            env: Optional[Dict[str, str]] = None,
            timeout: Optional[float] = None) -> CommandResult:
        """
        Run a binary to completion.

        Args:
            binary_path: Path of the executable
            args: Arguments passed after the executable
            working_dir: Working directory of the child process
            env: Variables overriding the inherited environment
            timeout: Seconds before the child is killed; falls back to default_timeout

        Returns:
            CommandResult with merged output and exit code

        Raises:
            BinaryNotFoundError: If the binary does not exist
            BinaryNotExecutableError: If the binary may not be executed
            SubprocessLaunchError: If the process could not be started otherwise
            CommandTimeoutError: If the timeout elapsed before the child exited
        """
        args = [str(arg) for arg in args]
        command = format_command(binary_path, args)
        timeout = timeout if timeout is not None else self.default_timeout

        process_env = os.environ.copy()
        if env:
            process_env.update(env)

        self._logger.debug(f"Running: {command}" + (f" (cwd={working_dir})" if working_dir else ""))
        start_time = time.time()

        try:
            process = subprocess.Popen(
                [str(binary_path), *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                cwd=str(working_dir) if working_dir else None,
                env=process_env,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=not is_windows()
            )
        except FileNotFoundError as e:
            # A missing working directory also lands here
            if working_dir and not Path(working_dir).is_dir():
                raise SubprocessLaunchError(command, f"working directory does not exist: {working_dir}") from e
            raise BinaryNotFoundError(binary_path) from e
        except PermissionError as e:
            raise BinaryNotExecutableError(binary_path) from e
        except OSError as e:
            raise SubprocessLaunchError(command, str(e)) from e

        timed_out = threading.Event()
        timer: Optional[threading.Timer] = None
        if timeout is not None:
            def kill_on_timeout() -> None:
                timed_out.set()
                self._kill_process_group(process)

            timer = threading.Timer(timeout, kill_on_timeout)
            timer.daemon = True
            timer.start()

        output_lines: List[str] = []
        try:
            for line in iter(process.stdout.readline, ''):
                output_lines.append(line)
                if self.output_callback:
                    self.output_callback(line.rstrip("\n"))
            exit_code = process.wait()
        finally:
            if timer:
                timer.cancel()
            process.stdout.close()

        output = "".join(output_lines)
        execution_time = time.time() - start_time

        if timed_out.is_set():
            self._logger.error(f"Command timed out after {timeout}s: {command}")
            raise CommandTimeoutError(command, timeout, output)

        self._logger.debug(f"Exit code {exit_code} after {execution_time:.2f}s: {command}")
        return CommandResult(
            command=command,
            exit_code=exit_code,
            output=output,
            execution_time=execution_time
        )

    @staticmethod
    def _kill_process_group(process: subprocess.Popen) -> None:
        """Kill the child and anything it forked that still holds the output pipe."""
        if not is_windows():
            try:
                os.killpg(process.pid, signal.SIGKILL)
                return
            except (ProcessLookupError, PermissionError):
                pass
        process.kill()
