"""
mintforge Configuration System

Configuration sources (in order of precedence):
    1. Environment variables (MINTFORGE_*)
    2. Runtime overrides (ConfigManager.set)
    3. Loaded YAML files
    4. Default values

Default file locations: ./mintforge.yaml, ./config/mintforge.yaml,
~/.mintforge/config.yaml.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from mintforge.observability import Layer, get_logger

logger = get_logger("config", Layer.CONFIG)

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

    Supports default values, environment variable binding and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

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
        self._value = value

    def reset(self) -> None:
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to the type of the default."""
        target_type = type(self.default)

        try:
            if target_type == bool:
                return value.strip().lower() in ("true", "1", "yes", "on")  # type: ignore
            elif target_type == int:
                return int(value)  # type: ignore
            else:
                return value  # type: ignore
        except ValueError as exc:
            raise ConfigValidationError(f"Cannot convert {value!r} to {target_type.__name__}") from exc


def _non_negative_int(x: Any) -> bool:
    return isinstance(x, int) and not isinstance(x, bool) and x >= 0


@dataclass
class CollectionConfig:
    """Collection identity and supply."""
    name: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="mintforge",
        env_var="MINTFORGE_NAME",
        description="Collection name",
        validator=lambda x: isinstance(x, str) and 0 < len(x) <= 128,
    ))
    symbol: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="MINT",
        env_var="MINTFORGE_SYMBOL",
        description="Collection ticker symbol",
        validator=lambda x: isinstance(x, str) and 0 < len(x) <= 16,
    ))
    max_supply: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10000,
        env_var="MINTFORGE_MAX_SUPPLY",
        description="Maximum number of items that can ever be issued",
        validator=lambda x: _non_negative_int(x) and x > 0,
    ))
    base_uri: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="",
        env_var="MINTFORGE_BASE_URI",
        description="Base metadata location; item locations are base + id",
    ))


@dataclass
class PricingConfig:
    """Initial unit prices, in the smallest currency unit."""
    privileged_price: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="MINTFORGE_PRIVILEGED_PRICE",
        description="Unit price during the privileged phase",
        validator=_non_negative_int,
    ))
    allow_listed_price: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="MINTFORGE_ALLOW_LISTED_PRICE",
        description="Unit price during the allow-listed phase",
        validator=_non_negative_int,
    ))
    public_price: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=0,
        env_var="MINTFORGE_PUBLIC_PRICE",
        description="Unit price during the public phase",
        validator=_non_negative_int,
    ))


@dataclass
class TreasuryConfig:
    """Treasury behaviour."""
    payout_ledger: ConfigValue[bool] = field(default_factory=lambda: ConfigValue(
        default=True,
        env_var="MINTFORGE_PAYOUT_LEDGER",
        description="Record withdrawals in the state snapshot payout ledger",
    ))


@dataclass
class ObservabilityConfig:
    """Logging configuration."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="MINTFORGE_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="MINTFORGE_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class MintforgeConfig:
    """Root configuration."""
    collection: CollectionConfig = field(default_factory=CollectionConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    treasury: TreasuryConfig = field(default_factory=TreasuryConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False)


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton.
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

        self._config = MintforgeConfig()
        self._config_paths: List[Path] = []
        self._initialized = True

    @property
    def config(self) -> MintforgeConfig:
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Configuration root must be a mapping: {path}")
            self._apply_dict(data)
        self._config_paths.append(path)
        logger.info("Configuration loaded", path=str(path))

    def load_defaults(self) -> List[Path]:
        """Load default configuration files that exist; return those loaded."""
        default_paths = [
            Path("mintforge.yaml"),
            Path("config/mintforge.yaml"),
            Path.home() / ".mintforge" / "config.yaml",
        ]

        loaded = []
        for path in default_paths:
            if path.exists():
                self.load_from_file(path)
                loaded.append(path)
        return loaded

    def _apply_dict(self, data: Dict[str, Any]) -> None:
        def apply_to_config(config_obj: Any, values: Dict[str, Any], prefix: str) -> None:
            for key, value in values.items():
                path = f"{prefix}{key}"
                if not hasattr(config_obj, key):
                    raise ConfigError(f"Unknown configuration key: {path}")
                attr = getattr(config_obj, key)
                if isinstance(attr, ConfigValue):
                    attr.set(value)
                elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                    apply_to_config(attr, value, f"{path}.")
                else:
                    raise ConfigError(f"Expected a mapping for configuration section: {path}")

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

        Example: manager.set("collection.max_supply", 5000)
        """
        attr = self._resolve(path)
        if not isinstance(attr, ConfigValue):
            raise ConfigError(f"Invalid config path: {path}")
        attr.set(value)

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: manager.get("pricing.public_price")
        """
        obj = self._resolve(path)
        if isinstance(obj, ConfigValue):
            return obj.get()
        if hasattr(obj, "__dataclass_fields__"):
            return {k: getattr(obj, k).get() for k in obj.__dataclass_fields__}
        return obj

    def validate(self) -> List[str]:
        """Validate all configuration values. Returns a list of errors."""
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value!r}")
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

    def reset(self) -> None:
        """Drop runtime overrides and loaded files, returning to defaults."""
        self._config = MintforgeConfig()
        self._config_paths = []


def get_config() -> MintforgeConfig:
    """Get the current configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
