"""Configuration manager for loading and validating config files."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, TypeVar, Union

import yaml

T = TypeVar("T")


logger = logging.getLogger(__name__)

BACKENDS = ("dbus", "memory")

DEFAULT_STEERING: Dict[str, Any] = {
    "enabled": True,
    "strength_threshold": 65,
    "min_strength_gain": 20,
    "scan_debounce": 10.0,
    "ignore_strength_below": 10,
}

DEFAULT_WEB: Dict[str, Any] = {
    "enabled": False,
    "host": "0.0.0.0",
    "port": 7575,
}


class ConfigError(Exception):
    """Raised when configuration is invalid."""


class ConfigManager:
    """Manages loading and accessing configuration from YAML files."""

    def __init__(self, user_config_path: str) -> None:
        """Initialize the configuration manager.

        Args:
            user_config_path: Path to user config file (required)

        Raises:
            ConfigError: If config file doesn't exist or is invalid
        """
        self._config: Dict[str, Any] = {}
        self._user_config_path = user_config_path
        self._load_config()

    def _load_yaml_file(self, path: Path) -> Dict[str, Any]:
        """Load a YAML file and return its contents.

        Args:
            path: Path to YAML file

        Returns:
            Dictionary containing the YAML contents

        Raises:
            ConfigError: If file cannot be read or parsed
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
                return content if content is not None else {}
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {path}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML file {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to load config file {path}: {e}") from e

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._config.get(name, {})
        if section is None:
            return {}
        if not isinstance(section, dict):
            raise ConfigError(f"'{name}' section must be a dictionary")
        return section

    def _validate_config(self) -> None:
        """Validate the loaded configuration.

        Raises:
            ConfigError: If configuration is invalid
        """
        if not isinstance(self._config, dict):
            raise ConfigError("Configuration must be a dictionary")

        network = self._section("network")
        backend = network.get("backend", "dbus")
        if backend not in BACKENDS:
            raise ConfigError(f"'network.backend' must be one of {', '.join(BACKENDS)}")

        steering = self._section("steering")
        if not isinstance(steering.get("enabled", True), bool):
            raise ConfigError("'steering.enabled' must be true or false")

        # Numeric steering values must be positive numbers
        for name in ("strength_threshold", "min_strength_gain", "scan_debounce", "ignore_strength_below"):
            if name not in steering:
                continue
            value = steering[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"Steering '{name}' must be a number")
            if value <= 0:
                raise ConfigError(f"Steering '{name}' must be positive")

        web = self._section("web")
        if not isinstance(web.get("enabled", False), bool):
            raise ConfigError("'web.enabled' must be true or false")
        port = web.get("port", DEFAULT_WEB["port"])
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
            raise ConfigError("'web.port' must be a port number")

    def _load_config(self) -> None:
        """Load configuration from user config file.

        Raises:
            ConfigError: If config file doesn't exist or is invalid
        """
        config_path = Path(self._user_config_path)

        if not config_path.exists():
            raise ConfigError(
                f"Configuration file not found: {config_path}\n"
                f"Please create a config file. See config.yml.example for reference."
            )

        logger.info("Loading configuration from: %s", config_path)
        self._config = self._load_yaml_file(config_path)

        self._validate_config()
        logger.info("Configuration loaded and validated successfully")

    def get(self, key: str, default: Optional[T] = None) -> Union[Any, T]:
        """Get a configuration value by key.

        Supports dot notation for nested values (e.g., 'steering.scan_debounce')

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value or default (type matches default when provided)
        """
        keys = key.split(".")
        value: Any = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default  # type: ignore[return-value]

        return value

    def get_backend(self) -> str:
        """Get the network-management backend name.

        Returns:
            "dbus" or "memory"
        """
        return self.get("network.backend", "dbus")

    def get_steering_config(self) -> Dict[str, Any]:
        """Get band steering configuration with defaults filled in.

        Returns:
            Steering configuration dictionary
        """
        return {**DEFAULT_STEERING, **self._section("steering")}

    def get_web_config(self) -> Dict[str, Any]:
        """Get web interface configuration with defaults filled in.

        Returns:
            Web configuration dictionary
        """
        return {**DEFAULT_WEB, **self._section("web")}

    def to_dict(self) -> Dict[str, Any]:
        """Get the entire configuration as a dictionary.

        Returns:
            Complete configuration dictionary
        """
        return self._config.copy()
