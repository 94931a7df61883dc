"""
Configuration management system for the HarmonyOS installer.

This module handles application settings, default values, environment
overrides and configuration file loading/saving with proper error handling.
"""

import os
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union, List
from dataclasses import dataclass, asdict, field
from enum import Enum


def _get_version_from_file() -> str:
    """Read version from the VERSION file in the package directory."""
    try:
        version_file = Path(__file__).parent.parent / "VERSION"
        if version_file.exists():
            return version_file.read_text().strip()
    except OSError:
        pass
    return "1.0.0"


def _env_flag(value: str) -> bool:
    return value.lower() in ("true", "1", "yes", "on")


class LogLevel(Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class HdcConfig:
    """Location and invocation settings for the hdc connector binary."""
    binary_path: Optional[str] = None
    binary_name: str = "hdc"

    # Checked in order after an explicit binary_path; relative entries are
    # resolved against the directory holding the package.
    search_paths: List[str] = field(default_factory=lambda: [
        "hdc/hdc",
        "../ResourcesTools/hdc/hdc",
        "../ResourcesTools/toolchains/hdc",
        "/usr/local/bin/hdc",
    ])

    # Shipped next to hdc and also need execute permission
    companion_tools: List[str] = field(default_factory=lambda: [
        "diff", "idl", "restool", "rawheap_translator",
        "ark_disasm", "syscap_tool", "hnpcli",
    ])

    # None keeps subprocesses unbounded
    command_timeout: Optional[float] = None


@dataclass
class StagingConfig:
    """Package staging configuration."""
    install_unit_extension: str = ".hap"
    preferred_unit_name: str = "entry-default.hap"
    session_prefix: str = "harmony_install_"
    temp_root: Optional[str] = None


@dataclass
class InstallationConfig:
    """Install ladder and verification behavior."""
    failure_markers: List[str] = field(default_factory=lambda: [
        "[Fail]",
        "package was not found",
        "Not any installation package was found",
        "error:",
    ])
    no_package_markers: List[str] = field(default_factory=lambda: [
        "Not any installation package was found",
        "package was not found",
    ])
    verify_on_ambiguous: bool = True
    bundle_list_command: List[str] = field(default_factory=lambda: ["bm", "dump", "-a"])
    remote_temp_root: str = "/data/local/tmp"
    default_ability_name: str = "EntryAbility"
    heuristic_bundle_prefix: str = "com.example"


@dataclass
class PollingConfig:
    """Device discovery polling configuration."""
    interval_seconds: float = 3.0
    refresh_after_start: bool = True


@dataclass
class DownloadConfig:
    """Remote package download configuration."""
    downloads_dir: str = "downloads"
    download_timeout: int = 300
    max_retries: int = 3
    chunk_size: int = 8192
    url_scheme: str = "harmonyinstaller"


@dataclass
class UIConfig:
    """Console output configuration."""
    colored_output: bool = True
    verbose_logging: bool = False


@dataclass
class AppConfig:
    """Main application configuration container."""

    hdc: HdcConfig = field(default_factory=HdcConfig)
    staging: StagingConfig = field(default_factory=StagingConfig)
    installation: InstallationConfig = field(default_factory=InstallationConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    downloads: DownloadConfig = field(default_factory=DownloadConfig)
    ui: UIConfig = field(default_factory=UIConfig)

    version: str = field(default_factory=_get_version_from_file)
    app_name: str = "HarmonyOS Installer"
    config_version: str = "1.0"

    debug_mode: bool = False
    log_level: LogLevel = LogLevel.INFO

    def __post_init__(self):
        """Post-initialization processing."""
        self._load_environment_variables()
        self._validate_config()

    def _load_environment_variables(self) -> None:
        """Load configuration from environment variables."""
        if env_binary := os.getenv("HDC_BINARY_PATH"):
            self.hdc.binary_path = env_binary

        if env_debug := os.getenv("HARMONY_INSTALLER_DEBUG"):
            self.debug_mode = _env_flag(env_debug)

        if env_log_level := os.getenv("HARMONY_INSTALLER_LOG_LEVEL"):
            try:
                self.log_level = LogLevel(env_log_level.upper())
            except ValueError:
                logging.warning(f"Invalid log level in environment: {env_log_level}")

        if env_timeout := os.getenv("HARMONY_INSTALLER_COMMAND_TIMEOUT"):
            try:
                self.hdc.command_timeout = float(env_timeout)
            except ValueError:
                logging.warning(f"Invalid command timeout in environment: {env_timeout}")

        if env_interval := os.getenv("HARMONY_INSTALLER_POLL_INTERVAL"):
            try:
                self.polling.interval_seconds = float(env_interval)
            except ValueError:
                logging.warning(f"Invalid poll interval in environment: {env_interval}")

    def _validate_config(self) -> None:
        """Validate configuration values."""
        if self.hdc.command_timeout is not None and self.hdc.command_timeout <= 0:
            raise ValueError("Command timeout must be positive")

        if self.polling.interval_seconds <= 0:
            raise ValueError("Poll interval must be positive")

        if self.downloads.download_timeout <= 0:
            raise ValueError("Download timeout must be positive")

        if self.downloads.max_retries < 0:
            raise ValueError("Max retries cannot be negative")

        if not self.staging.install_unit_extension.startswith("."):
            raise ValueError("Install unit extension must start with '.'")

    def get_config_dir(self) -> Path:
        """Get the application configuration directory."""
        from ..utils.platform_utils import get_platform_config_dir
        return get_platform_config_dir('harmony-installer')

    def get_config_file_path(self) -> Path:
        """Get the path to the configuration file."""
        return self.get_config_dir() / 'config.json'

    def save_to_file(self, file_path: Optional[Union[str, Path]] = None) -> None:
        """
        Save configuration to a JSON file.

        Args:
            file_path: Path to save the config file. If None, uses default location.

        Raises:
            IOError: If the file cannot be written
        """
        if file_path is None:
            file_path = self.get_config_file_path()
        else:
            file_path = Path(file_path)

        try:
            config_dict = self._to_serializable_dict()
            file_path.parent.mkdir(parents=True, exist_ok=True)

            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(config_dict, f, indent=2, ensure_ascii=False)

            logging.info(f"Configuration saved to {file_path}")

        except (OSError, TypeError) as e:
            raise IOError(f"Failed to save configuration to {file_path}: {e}")

    def _to_serializable_dict(self) -> Dict[str, Any]:
        """Convert configuration to a JSON-serializable dictionary."""
        config_dict = asdict(self)
        config_dict['log_level'] = self.log_level.value
        return config_dict

    @classmethod
    def load_from_file(cls, file_path: Optional[Union[str, Path]] = None) -> 'AppConfig':
        """
        Load configuration from a JSON file.

        Args:
            file_path: Path to load the config file from. If None, uses default location.

        Returns:
            AppConfig instance loaded from file

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ValueError: If the config file is invalid
        """
        if file_path is None:
            file_path = cls._get_default_config_path()
        else:
            file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                config_dict = json.load(f)

            return cls._from_dict(config_dict)

        except (OSError, json.JSONDecodeError, TypeError) as e:
            raise ValueError(f"Failed to load configuration from {file_path}: {e}")

    @classmethod
    def _get_default_config_path(cls) -> Path:
        """Get the default configuration file path."""
        from ..utils.platform_utils import get_platform_config_dir
        return get_platform_config_dir('harmony-installer') / 'config.json'

    @classmethod
    def _from_dict(cls, config_dict: Dict[str, Any]) -> 'AppConfig':
        """Create AppConfig instance from dictionary."""
        log_level = LogLevel.INFO
        if log_level_str := config_dict.get('log_level'):
            try:
                log_level = LogLevel(log_level_str)
            except ValueError:
                logging.warning(f"Invalid log level in config: {log_level_str}")

        return cls(
            hdc=HdcConfig(**config_dict.get('hdc', {})),
            staging=StagingConfig(**config_dict.get('staging', {})),
            installation=InstallationConfig(**config_dict.get('installation', {})),
            polling=PollingConfig(**config_dict.get('polling', {})),
            downloads=DownloadConfig(**config_dict.get('downloads', {})),
            ui=UIConfig(**config_dict.get('ui', {})),
            version=config_dict.get('version', _get_version_from_file()),
            app_name=config_dict.get('app_name', 'HarmonyOS Installer'),
            config_version=config_dict.get('config_version', '1.0'),
            debug_mode=config_dict.get('debug_mode', False),
            log_level=log_level
        )

    def get_downloads_directory(self) -> Path:
        """Get the downloads directory path, creating it if necessary."""
        downloads_path = Path(self.downloads.downloads_dir)
        if not downloads_path.is_absolute():
            downloads_path = self.get_config_dir() / downloads_path
        downloads_path.mkdir(parents=True, exist_ok=True)
        return downloads_path

    def get_log_file_path(self) -> Path:
        """Get the path of the installer log file."""
        return self.get_config_dir() / 'installer.log'


# Global configuration instance
_global_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the global configuration instance.

    Returns:
        Global AppConfig instance

    Raises:
        RuntimeError: If configuration hasn't been initialized
    """
    global _global_config
    if _global_config is None:
        raise RuntimeError("Configuration not initialized. Call init_config() first.")
    return _global_config


def init_config(config_file: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Initialize the global configuration.

    Args:
        config_file: Optional path to config file. If None, uses default or creates new.

    Returns:
        Initialized AppConfig instance
    """
    global _global_config

    try:
        if config_file:
            _global_config = AppConfig.load_from_file(config_file)
        else:
            try:
                _global_config = AppConfig.load_from_file()
            except FileNotFoundError:
                _global_config = AppConfig()
                logging.info("Created new configuration with default values")
    except (ValueError, OSError) as e:
        logging.warning(f"Failed to load configuration: {e}. Using defaults.")
        _global_config = AppConfig()

    return _global_config
