"""Configuration management system for booru_search.

This module provides centralized configuration loading from multiple sources:
- YAML/TOML configuration files
- Environment variables (.env)
- Default values

Includes validation to ensure configuration values are correct.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

ENV_PREFIX = "BOORU_SEARCH_"
FETCH_STRATEGIES = ("adaptive", "fixed")
_TRUE_STRINGS = {"1", "true", "yes", "on"}


@dataclass
class ValidationResult:
    """Result of configuration validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def __str__(self) -> str:
        """Format validation result as string."""
        lines = []
        if self.errors:
            lines.append("Errors:")
            lines.extend(f"  - {e}" for e in self.errors)
        if self.warnings:
            lines.append("Warnings:")
            lines.extend(f"  - {w}" for w in self.warnings)
        if not lines:
            return "Configuration is valid."
        return "\n".join(lines)


def _deep_merge(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _default_config() -> Dict[str, Any]:
    from booru_search.sources.registry import SOURCE_ORDER

    return {
        "logging": {
            "level": "INFO",
            "directory": "logs",
            "json_format": False,
        },
        "http": {
            "timeout_seconds": 5.0,
            "tag_timeout_seconds": 3.0,
            "user_agent": "BooruSearch/1.0",
            "max_connections": 200,
            "max_keepalive_connections": 50,
        },
        "fetch": {
            "strategy": "adaptive",
            "global_page_cap": 200,
            "page_size": 100,
            "wave_size": 10,
            "max_empty_waves": 1,
        },
        "cache": {
            "images": {"max_entries": 5000, "ttl_seconds": 12 * 60 * 60},
            "tags": {"max_entries": 10000, "ttl_seconds": 72 * 60 * 60},
        },
        "sources": {source_id: {"enabled": True} for source_id in SOURCE_ORDER},
        "aliases": {},
    }


class Config:
    """Configuration manager for booru_search."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML or TOML config file (optional)
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self._config: Dict[str, Any] = {}

        env_path = Path(".env")
        if env_path.exists():
            load_dotenv(env_path)
            self.logger.info("Loaded environment variables from .env")

        if config_file:
            self._load_config_file(config_file)
        else:
            self._auto_load_config()

        self._load_defaults()

    def _load_config_file(self, config_file: str) -> None:
        """Load configuration from YAML or TOML file."""
        config_path = Path(config_file)

        if not config_path.exists():
            self.logger.warning("Config file not found: %s", config_file)
            return

        try:
            with open(config_path, "rb") as f:
                if config_file.endswith((".yaml", ".yml")):
                    self._config = yaml.safe_load(f) or {}
                    self.logger.info("Loaded YAML config from %s", config_file)
                elif config_file.endswith(".toml"):
                    self._config = tomllib.load(f)
                    self.logger.info("Loaded TOML config from %s", config_file)
                else:
                    self.logger.error("Unsupported config format: %s", config_file)
        except (OSError, yaml.YAMLError, tomllib.TOMLDecodeError) as e:
            self.logger.error("Failed to load config file %s: %s", config_file, e)

    def _auto_load_config(self) -> None:
        """Automatically find and load config file."""
        config_dir = Path("config")

        candidates = [
            config_dir / "booru_search.yaml",
            config_dir / "booru_search.yml",
            config_dir / "booru_search.toml",
            Path("booru_search.yaml"),
            Path("booru_search.yml"),
            Path("booru_search.toml"),
        ]

        for candidate in candidates:
            if candidate.exists():
                self._load_config_file(str(candidate))
                return

        self.logger.debug("No config file found, using defaults and environment variables")

    def _load_defaults(self) -> None:
        """Merge default values under the loaded configuration."""
        self._config = _deep_merge(_default_config(), self._config)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Supports dot notation for nested keys: "fetch.strategy".
        Environment variables (``BOORU_SEARCH_FETCH_STRATEGY``) win over
        the file and defaults.

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        env_key = ENV_PREFIX + key.upper().replace(".", "_")
        env_value = os.getenv(env_key)
        if env_value is not None:
            return env_value

        keys = key.split(".")
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_int(self, key: str, default: int = 0) -> int:
        """Get a value coerced to ``int`` (environment values are strings)."""
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            self.logger.warning("Config %s=%r is not an integer, using %d", key, value, default)
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get a value coerced to ``float``."""
        value = self.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            self.logger.warning("Config %s=%r is not a number, using %s", key, value, default)
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get a value coerced to ``bool``."""
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return bool(value)

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value at runtime.

        Args:
            key: Configuration key (supports dot notation)
            value: Value to set
        """
        keys = key.split(".")
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value
        self.logger.debug("Set config %s = %s", key, value)

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get entire configuration section.

        Args:
            section: Section name (e.g., "fetch", "cache")

        Returns:
            Dictionary with section configuration
        """
        return self._config.get(section, {})

    def is_source_enabled(self, source_id: str) -> bool:
        """Check if a source is enabled for searching."""
        return self.get_bool(f"sources.{source_id}.enabled", True)

    def get_source_config(self, source_id: str) -> Dict[str, Any]:
        """Get the ``sources.<id>`` section (limit overrides and ``enabled``)."""
        return dict(self.get_section("sources").get(source_id) or {})

    def to_dict(self) -> Dict[str, Any]:
        """Get all configuration as dictionary."""
        return self._config.copy()

    def reload(self, config_file: Optional[str] = None) -> None:
        """
        Reload configuration from file.

        Args:
            config_file: Path to config file (optional, auto-discovered if not provided)
        """
        self._config = {}
        if config_file:
            self._load_config_file(config_file)
        else:
            self._auto_load_config()
        self._load_defaults()
        self.logger.info("Configuration reloaded")

    def validate(self) -> ValidationResult:
        """
        Validate the configuration.

        Checks logging level, fetch strategy and sizes, HTTP timeouts,
        cache sizes and TTLs, and that aliases point at known sources.

        Returns:
            ValidationResult with errors and warnings
        """
        from booru_search.sources.registry import SOURCE_ORDER

        result = ValidationResult(is_valid=True)

        log_level = str(self.get("logging.level", "INFO"))
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            result.add_error(
                f"Invalid logging level '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )

        strategy = str(self.get("fetch.strategy", "adaptive")).lower()
        if strategy not in FETCH_STRATEGIES:
            result.add_error(
                f"fetch.strategy must be one of: {', '.join(FETCH_STRATEGIES)} (got '{strategy}')"
            )

        for key in ("global_page_cap", "page_size", "wave_size", "max_empty_waves"):
            value = self.get_int(f"fetch.{key}", -1)
            if value < 1:
                result.add_error(f"fetch.{key} must be a positive integer")

        if self.get_int("fetch.page_size", 100) > 1000:
            result.add_warning("fetch.page_size above 1000 is rejected by most sources")

        for key in ("timeout_seconds", "tag_timeout_seconds"):
            if self.get_float(f"http.{key}", -1.0) <= 0:
                result.add_error(f"http.{key} must be a positive number")

        for store in ("images", "tags"):
            if self.get_int(f"cache.{store}.max_entries", -1) < 0:
                result.add_error(f"cache.{store}.max_entries must be a non-negative integer")
            if self.get_int(f"cache.{store}.ttl_seconds", -1) < 0:
                result.add_error(f"cache.{store}.ttl_seconds must be a non-negative integer")

        for source_id in self.get_section("sources"):
            if source_id not in SOURCE_ORDER:
                result.add_warning(f"Unknown source in configuration: {source_id}")

        for alias, primary in (self.get_section("aliases") or {}).items():
            if alias not in SOURCE_ORDER or primary not in SOURCE_ORDER:
                result.add_error(f"Alias {alias} -> {primary} refers to an unknown source")

        if not result.is_valid:
            for error in result.errors:
                self.logger.error("Config validation error: %s", error)
        for warning in result.warnings:
            self.logger.warning("Config validation warning: %s", warning)

        return result

    def validate_and_raise(self) -> None:
        """
        Validate configuration and raise exception if invalid.

        Raises:
            ValueError: If configuration is invalid
        """
        result = self.validate()
        if not result.is_valid:
            raise ValueError(f"Invalid configuration:\n{result}")


# Global configuration instance
_global_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get global configuration instance.

    Args:
        config_file: Path to config file (only used on first call)

    Returns:
        Config instance
    """
    global _global_config

    if _global_config is None:
        _global_config = Config(config_file)

    return _global_config


def reload_config(config_file: Optional[str] = None) -> None:
    """
    Reload global configuration.

    Args:
        config_file: Path to config file (optional)
    """
    global _global_config

    if _global_config is not None:
        _global_config.reload(config_file)
    else:
        _global_config = Config(config_file)
