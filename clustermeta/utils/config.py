"""
Configuration management for clustermeta.

Handles loading and merging configuration from:
- Built-in defaults
- Default configuration file (config/default.yaml)
- An explicit configuration file
- Environment variables
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from clustermeta.errors import ValidationError

DEFAULTS: Dict[str, Any] = {
    "coordination": {
        "hosts": "127.0.0.1:2181",
        "session_timeout": 10.0,
        "request_timeout": None,
    },
    "fetch": {
        "max_workers": 16,
    },
    "logging": {
        "level": "INFO",
        "format": "console",
    },
}


def _parse_env(name: str, value: str, cast):
    try:
        return cast(value)
    except ValueError:
        raise ValidationError(f"{name} must be a {cast.__name__}, got {value!r}") from None


class Config:
    """Configuration manager for clustermeta."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to a YAML configuration file merged over the defaults.
        """
        self._config: Dict[str, Any] = copy.deepcopy(DEFAULTS)
        self._load_default_config()

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_default_config(self) -> None:
        default_config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"
        if default_config_path.exists():
            self._load_config_file(str(default_config_path))

    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML configuration file
        """
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f) or {}
        self._config = self._deep_merge(self._config, file_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if hosts := os.getenv("CLUSTERMETA_ZOOKEEPER"):
            self.set("coordination.hosts", hosts)

        if request_timeout := os.getenv("CLUSTERMETA_REQUEST_TIMEOUT"):
            self.set("coordination.request_timeout", _parse_env("CLUSTERMETA_REQUEST_TIMEOUT", request_timeout, float))

        if max_workers := os.getenv("CLUSTERMETA_MAX_WORKERS"):
            self.set("fetch.max_workers", _parse_env("CLUSTERMETA_MAX_WORKERS", max_workers, int))

        if log_level := os.getenv("LOG_LEVEL"):
            self.set("logging.level", log_level)

    def validate(self) -> None:
        """
        Check the coordination and fetch settings.

        Raises:
            ValidationError: If a timeout or the worker count is out of range
        """
        session_timeout = self.get("coordination.session_timeout")
        if not isinstance(session_timeout, (int, float)) or session_timeout <= 0:
            raise ValidationError(
                f"coordination.session_timeout must be a positive number, got {session_timeout!r}"
            )

        request_timeout = self.get("coordination.request_timeout")
        if request_timeout is not None and (
            not isinstance(request_timeout, (int, float)) or request_timeout <= 0
        ):
            raise ValidationError(
                f"coordination.request_timeout must be positive or null, got {request_timeout!r}"
            )

        max_workers = self.get("fetch.max_workers")
        if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
            raise ValidationError(f"fetch.max_workers must be at least 1, got {max_workers!r}")

        if not self.get("coordination.hosts"):
            raise ValidationError("coordination.hosts is required")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "coordination.hosts")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            config = config.setdefault(k, {})
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """Get entire configuration as a (deep) copy."""
        return copy.deepcopy(self._config)


# Global configuration instance
_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get global configuration instance.

    Args:
        config_file: Optional configuration file path, only honoured on first call

    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
