"""
Logging setup for the HarmonyOS installer.

Console output is colorized with ANSI codes when enabled; a plain-text copy of
every record goes to the installer log file.
"""

import re
import sys
import logging
from pathlib import Path
from typing import Optional, Union, Any

LOGGER_NAME = "harmony_installer"


class ColorCodes:
    """ANSI color codes used for console output."""
    RED = "\033[0;31m"
    GREEN = "\033[0;32m"
    YELLOW = "\033[1;33m"
    BLUE = "\033[0;34m"
    PURPLE = "\033[0;35m"
    GRAY = "\033[0;90m"
    NC = "\033[0m"

    _ANSI_PATTERN = re.compile(r'\x1b\[[0-9;]*m')

    @classmethod
    def strip_colors(cls, text: str) -> str:
        """Remove ANSI color codes from text."""
        return cls._ANSI_PATTERN.sub('', text)


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name and message by severity."""

    LEVEL_COLORS = {
        logging.DEBUG: ColorCodes.GRAY,
        logging.INFO: ColorCodes.BLUE,
        logging.WARNING: ColorCodes.YELLOW,
        logging.ERROR: ColorCodes.RED,
        logging.CRITICAL: ColorCodes.RED,
    }

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None,
                 colored: bool = True):
        super().__init__(fmt, datefmt)
        self.colored = colored

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if not self.colored:
            return ColorCodes.strip_colors(message)
        color = self.LEVEL_COLORS.get(record.levelno, "")
        return f"{color}{message}{ColorCodes.NC}" if color else message


class PlainFormatter(logging.Formatter):
    """Formatter for file output that strips any embedded color codes."""

    def format(self, record: logging.LogRecord) -> str:
        return ColorCodes.strip_colors(super().format(record))


_configured_logger: Optional[logging.Logger] = None


def _resolve_level(level: Union[str, int, Any]) -> int:
    if isinstance(level, int):
        return level
    # Accepts the settings LogLevel enum as well as plain names
    name = str(getattr(level, 'value', level)).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(colored: bool = True,
                  log_file: Optional[Union[str, Path]] = None,
                  level: Union[str, int, Any] = logging.INFO) -> logging.Logger:
    """
    Configure the application logger.

    Args:
        colored: Colorize console output
        log_file: Optional path of a log file receiving every record
        level: Minimum level for console output

    Returns:
        The configured application logger
    """
    global _configured_logger

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(_resolve_level(level))
    console_handler.setFormatter(ColoredFormatter(
        "%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        colored=colored and sys.stdout.isatty()
    ))
    logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(PlainFormatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            ))
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not open log file {log_file}: {e}")

    _configured_logger = logger
    return logger


def get_logger() -> logging.Logger:
    """
    Get the configured application logger.

    Raises:
        RuntimeError: If setup_logging() has not been called
    """
    if _configured_logger is None:
        raise RuntimeError("Logging not initialized. Call setup_logging() first.")
    return _configured_logger
