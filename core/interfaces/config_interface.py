"""Configuration service interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from core.models.config import ProvisionConfig


class IConfigService(ABC):
    """Interface for configuration management."""

    @abstractmethod
    def load_config(self, config_path: Optional[str] = None) -> ProvisionConfig:
        """Load configuration from file, then apply environment overrides.

        Args:
            config_path: Path to the YAML file; defaults apply when the
                default file is absent

        Returns:
            ProvisionConfig object

        Raises:
            ConfigurationError: If the file is unreadable or malformed
        """
        pass

    @abstractmethod
    def apply_overrides(self, overrides: Dict[str, Any]) -> ProvisionConfig:
        """Apply dotted-key overrides (e.g. ``aws.region``) to the loaded config."""
        pass

    @abstractmethod
    def validate_config(self) -> List[str]:
        """Return the list of validation errors (empty when valid)."""
        pass

    @abstractmethod
    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get a configuration setting by key.

        Args:
            key: Setting key (supports dot notation)
            default: Default value if key not found
        """
        pass
