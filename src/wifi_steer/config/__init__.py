"""Configuration management."""

from wifi_steer.config.config_manager import ConfigError, ConfigManager

__all__ = ["ConfigManager", "ConfigError"]
