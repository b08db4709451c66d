"""Configuration service implementation."""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import asdict, fields, is_dataclass

from core.interfaces.config_interface import IConfigService
from core.models.config import (
    ProvisionConfig,
    AWSConfig,
    NetworkConfig,
    InstanceConfig,
    IAMConfig,
    BucketConfig,
    WebServerConfig,
    TimeoutConfig,
    ExistingResourcePolicy,
    LogLevel,
)
from core.models.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config.yml"

SECTION_CLASSES = {
    "aws": AWSConfig,
    "network": NetworkConfig,
    "instance": InstanceConfig,
    "iam": IAMConfig,
    "bucket": BucketConfig,
    "webserver": WebServerConfig,
    "timeouts": TimeoutConfig,
}

ENV_MAPPINGS = {
    "PROVISIONER_AWS_REGION": "aws.region",
    "PROVISIONER_AWS_PROFILE": "aws.profile",
    "PROVISIONER_AVAILABILITY_ZONE": "network.availability_zone",
    "PROVISIONER_ALLOWED_CIDR": "network.allowed_cidr",
    "PROVISIONER_KEY_NAME": "instance.key_name",
    "PROVISIONER_LOG_LEVEL": "log_level",
    "PROVISIONER_INSTANCE_READY_TIMEOUT": "timeouts.instance_ready_timeout_seconds",
    "PROVISIONER_CONNECT_TIMEOUT": "timeouts.connect_timeout_seconds",
    "PROVISIONER_EXISTING_RESOURCES": "existing_resources",
}

# Validated as loaded: unquoted YAML 0644 is the integer 420
UNCOERCED_FIELDS = {("webserver", "mode")}


class ConfigService(IConfigService):
    """Implementation of configuration service."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self.logger = logging.getLogger(__name__)
        self._environ = os.environ if environ is None else environ
        self._raw_config: Dict[str, Any] = {}
        self._config: Optional[ProvisionConfig] = None
        self._config_file_path: Optional[str] = None

    def _handle_error(self, operation: str, error: Exception) -> None:
        """Centralized error handling and logging."""
        self.logger.error(f"Error {operation}: {str(error)}")
        if isinstance(error, ConfigurationError):
            raise error
        raise ConfigurationError(f"Error {operation}: {error}") from error

    def load_config(self, config_path: Optional[str] = None) -> ProvisionConfig:
        """Load configuration from file and the environment.

        A missing default file is not an error: built-in defaults apply. An
        explicitly named file must exist.
        """
        try:
            raw_config: Dict[str, Any] = {}
            path = Path(config_path or DEFAULT_CONFIG_PATH)

            if path.exists():
                with open(path, "r", encoding="utf-8") as file:
                    raw_config = yaml.safe_load(file) or {}
                if not isinstance(raw_config, dict):
                    raise ConfigurationError(
                        f"Configuration file {path} must contain a mapping"
                    )
                self._config_file_path = str(path)
                self.logger.debug(f"Loaded configuration from {path}")
            elif config_path:
                raise ConfigurationError(f"Configuration file not found: {config_path}")

            self._apply_environment_overrides(raw_config)
            self._raw_config = raw_config
            self._config = self._parse_config(raw_config)
            return self._config

        except Exception as e:
            self._handle_error("loading configuration", e)

    def apply_overrides(self, overrides: Dict[str, Any]) -> ProvisionConfig:
        """Apply dotted-key overrides; ``None`` values are ignored."""
        try:
            for key, value in overrides.items():
                if value is not None:
                    self._set_nested_value(self._raw_config, key, value)
            self._config = self._parse_config(self._raw_config)
            return self._config
        except Exception as e:
            self._handle_error("applying overrides", e)

    def validate_config(self) -> List[str]:
        if not self._config:
            return ["No configuration loaded"]
        return self._config.validate()

    def get_config(self) -> Optional[ProvisionConfig]:
        """Get the complete configuration."""
        return self._config

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a configuration setting by key path (e.g., 'aws.region')."""
        if not self._config:
            return default

        value: Any = asdict(self._config)
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def _parse_config(self, raw_config: Dict[str, Any]) -> ProvisionConfig:
        """Parse raw configuration into ProvisionConfig object."""
        known = {"project", "existing_resources", "log_level", *SECTION_CLASSES}
        unknown = set(raw_config) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {', '.join(sorted(unknown))}"
            )

        sections = {
            name: self._create_config(cls, raw_config.get(name) or {}, name)
            for name, cls in SECTION_CLASSES.items()
        }

        return ProvisionConfig(
            project=raw_config.get("project", "tech-challenge3"),
            existing_resources=self._parse_enum(
                ExistingResourcePolicy,
                raw_config.get("existing_resources", "adopt"),
                "existing_resources",
            ),
            log_level=self._parse_log_level(raw_config.get("log_level", "INFO")),
            **sections,
        )

    def _create_config(self, config_class, data: Dict[str, Any], section: str):
        """Create a section dataclass, rejecting keys it does not define."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"Section '{section}' must be a mapping")

        names = {f.name for f in fields(config_class)}
        unknown = set(data) - names
        if unknown:
            raise ConfigurationError(
                f"Unknown keys in '{section}': {', '.join(sorted(unknown))}"
            )

        try:
            instance = config_class(**data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid section '{section}': {e}") from e

        return self._coerce_types(instance, section)

    def _coerce_types(self, instance, section: str):
        """Coerce string values (env overrides) into the default's type."""
        defaults = type(instance)()
        for f in fields(instance):
            value = getattr(instance, f.name)
            default = getattr(defaults, f.name)
            if default is None or value is None or is_dataclass(default):
                continue
            if (section, f.name) in UNCOERCED_FIELDS:
                continue
            if isinstance(default, bool) and isinstance(value, str):
                setattr(instance, f.name, value.lower() in ("1", "true", "yes"))
            elif isinstance(default, (int, float)) and not isinstance(default, bool):
                try:
                    setattr(instance, f.name, type(default)(value))
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(
                        f"{section}.{f.name} must be a number, got {value!r}"
                    ) from e
            elif isinstance(default, str) and not isinstance(value, str):
                setattr(instance, f.name, str(value))
        return instance

    def _parse_enum(self, enum_class, value: Any, key: str):
        if isinstance(value, enum_class):
            return value
        try:
            return enum_class(str(value).lower())
        except ValueError:
            choices = ", ".join(e.value for e in enum_class)
            raise ConfigurationError(f"{key} must be one of: {choices}")

    def _parse_log_level(self, log_level_str: str) -> LogLevel:
        """Parse log level string into LogLevel enum."""
        try:
            return LogLevel[str(log_level_str).upper()]
        except KeyError:
            return LogLevel.INFO

    def _apply_environment_overrides(self, config: Dict[str, Any]) -> None:
        """Apply environment variable overrides to configuration."""
        for env_var, config_key in ENV_MAPPINGS.items():
            env_value = self._environ.get(env_var)
            if env_value:
                self._set_nested_value(config, config_key, env_value)

    def _set_nested_value(
        self, config: Dict[str, Any], key_path: str, value: Any
    ) -> None:
        """Set a nested value in configuration dictionary."""
        keys = key_path.split(".")
        current = config

        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value
