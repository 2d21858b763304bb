"""YAML configuration loader."""
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from homestack.config.validator import ConfigValidator
from homestack.core.logger import get_logger
from homestack.errors import ConfigIssue, ConfigValidationError, SchemaError
from homestack.models.config import UnifiedConfig

logger = get_logger(__name__)


class ConfigLoader:
    """Loads and validates a unified homelab configuration file."""

    def __init__(self, config_path: Union[str, Path] = "homelab.yaml"):
        self.config_path = Path(config_path)
        self.raw_config: Optional[Dict[str, Any]] = None
        self.config: Optional[UnifiedConfig] = None
        self.issues: List[ConfigIssue] = []
        self.validator = ConfigValidator()

    def read(self) -> Any:
        """Read and parse the YAML document without validating it."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        try:
            with open(self.config_path) as f:
                self.raw_config = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigValidationError(
                [SchemaError("", f"Invalid YAML syntax in {self.config_path}: {exc}")]
            ) from exc

        if not self.raw_config:
            raise ConfigValidationError(
                [SchemaError("", "Config file is empty. Start from homelab.yaml.example.")]
            )
        return self.raw_config

    def load(self) -> UnifiedConfig:
        """Load and validate the configuration.

        Returns:
            The validated UnifiedConfig

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigValidationError: With every issue found, if any
        """
        raw = self.read()
        self.config, self.issues = self.validator.validate(raw)
        if self.issues:
            raise ConfigValidationError(self.issues)

        logger.debug(
            f"Loaded {self.config_path}: {len(self.config.machines)} machines, "
            f"{len(self.config.services)} services, backend {self.config.backend.value}"
        )
        return self.config

    def check(self) -> List[ConfigIssue]:
        """Validate without raising; returns the collected issues."""
        try:
            raw = self.read()
        except ConfigValidationError as exc:
            self.issues = exc.issues
            return self.issues
        self.config, self.issues = self.validator.validate(raw)
        return list(self.issues)
