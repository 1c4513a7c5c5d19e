"""
CERTAUTH Configuration System

Unified configuration management with YAML files, environment variables,
validation, and runtime updates.

Configuration Sources (in order of precedence):
    1. Environment variables (CERTAUTH_*)
    2. Runtime overrides and loaded files (last write wins)
    3. Default values

Default files, applied in order when present:
    ./certauth.yaml
    ./config/certauth.yaml
    ~/.certauth/config.yaml

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from certauth.core import load_yaml

T = TypeVar("T")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding,
    validation, and change callbacks.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)
    _callbacks: List[Callable[[Optional[T], T], None]] = field(default_factory=list, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])

        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value with coercion and validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ConfigValidationError(f"Invalid value for config: {value!r}")

        old_value = self._value
        self._value = value

        for callback in self._callbacks:
            callback(old_value, value)

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        try:
            if target_type == bool:
                return value.strip().lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value)  # type: ignore
            else:
                return value  # type: ignore
        except ValueError as e:
            raise ConfigValidationError(f"Cannot coerce {value!r} to {target_type.__name__}") from e

    def on_change(self, callback: Callable[[Optional[T], T], None]) -> None:
        """Register a change callback."""
        self._callbacks.append(callback)


def _extract_values(obj: Any) -> Any:
    if isinstance(obj, ConfigValue):
        return obj.get()
    elif hasattr(obj, "__dataclass_fields__"):
        return {k: _extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
    return obj


@dataclass
class RegistryConfig:
    """Boundary limits for registry arguments."""
    identity_max_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=256,
        env_var="CERTAUTH_IDENTITY_MAX_LENGTH",
        description="Maximum length of a caller/owner identity",
        validator=lambda x: 0 < x <= 4096,
    ))
    authority_id_max_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=128,
        env_var="CERTAUTH_AUTHORITY_ID_MAX_LENGTH",
        description="Maximum length of an authority id",
        validator=lambda x: 0 < x <= 4096,
    ))
    name_max_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=256,
        env_var="CERTAUTH_NAME_MAX_LENGTH",
        description="Maximum length of an authority display name",
        validator=lambda x: x > 0,
    ))
    website_max_length: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2048,
        env_var="CERTAUTH_WEBSITE_MAX_LENGTH",
        description="Maximum length of an authority website reference",
        validator=lambda x: x > 0,
    ))


@dataclass
class HostConfig:
    """Configuration for the transaction host."""
    enforce_monotonic_clock: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="CERTAUTH_ENFORCE_MONOTONIC_CLOCK",
        description="Reject transactions whose height is below the last applied height",
    ))
    audit_enabled: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="CERTAUTH_AUDIT_ENABLED",
        description="Record a hash-chained audit event per transaction",
    ))
    check_invariants: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="CERTAUTH_CHECK_INVARIANTS",
        description="Verify registry invariants after each successful mutation",
    ))
    genesis_height: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="CERTAUTH_GENESIS_HEIGHT",
        description="Initial clock height for a new registry",
        validator=lambda x: x >= 0,
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="CERTAUTH_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="CERTAUTH_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class CertAuthConfig:
    """
    Root configuration.

    Aggregates all component configurations and provides
    conversion helpers.
    """
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    host: HostConfig = field(default_factory=HostConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return _extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = CertAuthConfig()
        self._config_paths: List[Path] = []
        self._watchers: List[Callable[[CertAuthConfig], None]] = []
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next access starts from defaults."""
        with cls._lock:
            cls._instance = None

    @property
    def config(self) -> CertAuthConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            data = load_yaml(path)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")

        self._apply_dict(data)
        if path not in self._config_paths:
            self._config_paths.append(path)

    def load_defaults(self) -> None:
        """Load default configuration files if they exist."""
        default_paths = [
            Path("certauth.yaml"),
            Path("config/certauth.yaml"),
            Path.home() / ".certauth" / "config.yaml",
        ]

        for path in default_paths:
            if path.exists():
                self.load_from_file(path)

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary values to configuration."""
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}.{key}" if prefix else key
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown config key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, path)
                else:
                    raise ConfigError(f"Invalid config section: {path}")

        apply_to_config(self._config, data, "")

    def _resolve(self, path: str) -> Any:
        obj: Any = self._config
        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)
        return obj

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("host.audit_enabled", False)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

        for watcher in self._watchers:
            watcher(self._config)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("registry.name_max_length")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        if hasattr(obj, "__dataclass_fields__"):
            return _extract_values(obj)
        return obj

    def watch(self, callback: Callable[[CertAuthConfig], None]) -> None:
        """Register a callback for configuration changes."""
        self._watchers.append(callback)

    def reload(self) -> None:
        """Reload configuration from all loaded files."""
        for path in self._config_paths:
            if path.exists():
                self.load_from_file(path)

        for watcher in self._watchers:
            watcher(self._config)

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except ConfigError as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> CertAuthConfig:
    """Get the current configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
