"""
Configuration loader for the signal wizard.
Loads configuration from YAML files and environment variables.
"""

from typing import Dict, Any, Optional
from pathlib import Path
import yaml
import os
from pydantic import BaseModel, ConfigDict, Field
import logging

logger = logging.getLogger(__name__)


class WizardConfig(BaseModel):
    """Main signal wizard configuration."""
    model_config = ConfigDict(extra="allow")

    # Environment
    environment: str = "development"

    # Backend API
    api_url: str = "http://localhost:8001"
    api_key: str = ""
    timeout: float = 30.0  # seconds

    # Suggestions
    suggestion_debounce_ms: int = Field(default=300, ge=0)

    # Structured queries
    max_query_depth: int = Field(default=10, ge=1)

    # Anomaly step defaults
    default_volume_field: str = "article_count"
    default_anomaly_threshold: float = Field(default=2.0, gt=0)

    # Logging
    log_level: str = "INFO"

    @property
    def suggestion_debounce(self) -> float:
        """Debounce window in seconds."""
        return self.suggestion_debounce_ms / 1000.0


class ConfigLoader:
    """Load and manage signal wizard configuration."""

    def __init__(self, config_dir: str = "config"):
        """
        Initialize config loader.

        Args:
            config_dir: Directory containing config files
        """
        self.config_dir = Path(config_dir)
        self.config: Optional[WizardConfig] = None
        self.load()

    def load(self) -> WizardConfig:
        """Load configuration from YAML and environment variables."""

        # Determine which config file to load
        env = os.getenv("SIGNAL_WIZARD_ENV", "development")
        config_file = self.config_dir / f"{env}.yaml"

        # Load default config first
        merged = self._load_yaml(self.config_dir / "default.yaml")

        # Override with environment-specific config
        if config_file.exists():
            merged.update(self._load_yaml(config_file))
        else:
            logger.debug(f"Config file not found: {config_file}, using defaults")

        # Override with environment variables
        merged.update(self._load_from_env())

        self.config = WizardConfig(**merged)

        logger.info(f"Configuration loaded (environment: {self.config.environment}, api: {self.config.api_url})")

        return self.config

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        """Load YAML config file."""
        if not path.exists():
            return {}

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
                return data or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load YAML config {path}: {e}")
            return {}

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config = {}

        if api_url := os.getenv("SIGNAL_WIZARD_API_URL"):
            config["api_url"] = api_url
        if api_key := os.getenv("SIGNAL_WIZARD_API_KEY"):
            config["api_key"] = api_key
        if timeout := os.getenv("SIGNAL_WIZARD_TIMEOUT"):
            config["timeout"] = float(timeout)
        if debounce := os.getenv("SIGNAL_WIZARD_DEBOUNCE_MS"):
            config["suggestion_debounce_ms"] = int(debounce)
        if log_level := os.getenv("SIGNAL_WIZARD_LOG_LEVEL"):
            config["log_level"] = log_level.upper()

        return config

    def get(self) -> WizardConfig:
        """Get current configuration."""
        if not self.config:
            self.load()
        return self.config

    def reload(self):
        """Reload configuration (useful for development)."""
        logger.info("Reloading configuration...")
        self.load()


# Global config instance
_global_config_loader: Optional[ConfigLoader] = None


def get_config() -> WizardConfig:
    """Get the global signal wizard configuration."""
    global _global_config_loader
    if _global_config_loader is None:
        _global_config_loader = ConfigLoader()
    return _global_config_loader.get()


def initialize_config(config_dir: str = "config") -> WizardConfig:
    """Initialize the global configuration loader."""
    global _global_config_loader
    _global_config_loader = ConfigLoader(config_dir)
    config = _global_config_loader.get()
    apply_log_level(config)
    return config


def apply_log_level(config: WizardConfig) -> None:
    """Set the package logger level from configuration."""
    logging.getLogger("signal_wizard").setLevel(config.log_level.upper())
