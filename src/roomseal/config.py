"""
Roomseal - Configuration Management

This module handles loading, merging, and managing configuration from
TOML files and environment variables. Supports default values and
runtime configuration updates.
"""

import copy
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Python 3.11+ has tomllib built-in, older versions need tomli
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .constants import (
    CONFIG_FILENAME,
    DEFAULT_DATA_DIR,
    DEFAULT_RETAIN_EPOCHS,
    FILE_CHUNK_SIZE,
    MAX_FILE_SIZE,
    MIN_FILE_CHUNK_SIZE,
)
from .errors import ConfigError, ErrorCode

ENV_PREFIX = "ROOMSEAL"

# Default configuration dictionary
DEFAULT_CONFIG: Dict[str, Any] = {
    "files": {
        "chunk_size": FILE_CHUNK_SIZE,
        "max_file_size": MAX_FILE_SIZE,
    },
    "rooms": {
        "retain_epochs": DEFAULT_RETAIN_EPOCHS,
    },
    "logging": {
        "level": "INFO",
        "console_logging": True,
        "file": "",
    },
}

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _is_int(value: Any) -> bool:
    """True for integers, excluding booleans (TOML true/false)."""
    return isinstance(value, int) and not isinstance(value, bool)


class Config:
    """Configuration manager for Roomseal.

    Loads configuration from TOML files, merges with defaults,
    and applies environment variable overrides.

    Attributes:
        config_path: Path to the configuration file
        data: Configuration dictionary
    """

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file (optional)
                If not provided, uses default location
        """
        if config_path is None:
            data_dir = Path(DEFAULT_DATA_DIR).expanduser()
            config_path = data_dir / CONFIG_FILENAME

        self.config_path = Path(config_path)
        self.data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file and merge with defaults.

        Raises:
            ConfigError: If configuration loading, parsing or validation fails
        """
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path.exists():
            try:
                with open(self.config_path, "rb") as f:
                    file_config = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ConfigError(
                    ErrorCode.E704_CONFIG_PARSE_ERROR,
                    f"Failed to parse configuration file: {e}",
                    {"path": str(self.config_path), "error": str(e)},
                ) from e

            config = self._merge_config(config, file_config)

        config = self._apply_env_overrides(config)
        self._validate(config)
        return config

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge override config into base config."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration.

        Environment variables follow the pattern: ROOMSEAL_SECTION_KEY
        For example: ROOMSEAL_FILES_CHUNK_SIZE=131072

        Raises:
            ConfigError: If a value cannot be converted to the setting's type
        """
        result = copy.deepcopy(config)

        for section, settings in config.items():
            if not isinstance(settings, dict):
                continue

            for key in settings:
                env_var = f"{ENV_PREFIX}_{section.upper()}_{key.upper()}"
                env_value = os.environ.get(env_var)

                if env_value is None:
                    continue

                original_type = type(settings[key])
                try:
                    if original_type == bool:
                        result[section][key] = env_value.lower() in ("true", "1", "yes")
                    elif original_type == int:
                        result[section][key] = int(env_value)
                    elif original_type == float:
                        result[section][key] = float(env_value)
                    else:
                        result[section][key] = env_value
                except ValueError as e:
                    raise ConfigError(
                        ErrorCode.E703_INVALID_CONFIG,
                        f"Invalid value for {env_var}: {env_value!r}",
                        {"variable": env_var},
                    ) from e

        return result

    def _validate(self, config: Dict[str, Any]) -> None:
        """Reject settings the engine cannot honor."""
        files = config.get("files", {})
        if not _is_int(files.get("chunk_size")) or files["chunk_size"] < MIN_FILE_CHUNK_SIZE:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                f"files.chunk_size must be an integer >= {MIN_FILE_CHUNK_SIZE}",
                {"value": files.get("chunk_size")},
            )
        if not _is_int(files.get("max_file_size")) or files["max_file_size"] <= 0:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                "files.max_file_size must be a positive integer",
                {"value": files.get("max_file_size")},
            )

        retain = config.get("rooms", {}).get("retain_epochs")
        if not _is_int(retain) or retain < 0:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                "rooms.retain_epochs must be a non-negative integer",
                {"value": retain},
            )

        level = str(config.get("logging", {}).get("level", "")).upper()
        if level not in _LOG_LEVELS:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                f"logging.level must be one of {', '.join(_LOG_LEVELS)}",
                {"value": level},
            )

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self.data.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any) -> None:
        """Set a configuration value."""
        if section not in self.data:
            self.data[section] = {}

        self.data[section][key] = value

    @property
    def log_level(self) -> int:
        """Configured logging level as a logging module constant."""
        return getattr(logging, str(self.get("logging", "level", "INFO")).upper())

    def save(self) -> None:
        """Save current configuration to file.

        Raises:
            ConfigError: If saving fails
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

            with open(self.config_path, "w") as f:
                self._write_toml(f, self.data)

        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Failed to save configuration: {e}",
                {"path": str(self.config_path), "error": str(e)},
            ) from e

    @staticmethod
    def _write_toml(file, data: Dict[str, Any]) -> None:
        """Write configuration data as TOML format."""
        for section, settings in data.items():
            if isinstance(settings, dict):
                file.write(f"[{section}]\n")
                for key, value in settings.items():
                    if isinstance(value, bool):
                        file.write(f"{key} = {str(value).lower()}\n")
                    elif isinstance(value, (int, float)):
                        file.write(f"{key} = {value}\n")
                    elif isinstance(value, str):
                        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
                        file.write(f'{key} = "{escaped}"\n')
                file.write("\n")

    def to_dict(self) -> Dict[str, Any]:
        """Get configuration as dictionary."""
        return copy.deepcopy(self.data)

    @classmethod
    def create_example(cls, path: Path) -> None:
        """Create an example configuration file.

        Raises:
            ConfigError: If file creation fails
        """
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)

            with open(path, "w") as f:
                f.write("# Roomseal Configuration File\n")
                f.write("# Generated example configuration\n\n")
                cls._write_toml(f, DEFAULT_CONFIG)

        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Failed to create example configuration: {e}",
                {"path": str(path), "error": str(e)},
            ) from e
