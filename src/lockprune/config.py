# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for lockprune."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from lockprune.categorizer import DEFAULT_RULES, CategoryRule
from lockprune.errors import ConfigurationError
from lockprune.models import DEFAULT_BLOCK_MARKER, CollisionPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = ".lockprune.yml"


class Config:
    """Configuration for lockfile analysis.

    Loads configuration from .lockprune.yml with validation and defaults.
    Values given in overrides (typically from the command line) are validated
    the same way and take precedence over the file.
    """

    DEFAULTS: Dict[str, Any] = {
        "roots": [],
        "always_include": [],
        "notable_packages": [],
        "workspace_members": [],
        "critical_threshold": 5,
        "critical_path_fan_in_floor": 2,
        "collision_policy": CollisionPolicy.VERSIONED,
        "category_rules": [],  # empty means built-in defaults
        "block_marker": DEFAULT_BLOCK_MARKER,
    }

    _NAME_LISTS = ("roots", "always_include", "notable_packages", "workspace_members")

    def __init__(
        self,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
            overrides: Values applied on top of the file after validation.
        """
        if config_path is None:
            config_path = Path.cwd() / DEFAULT_CONFIG_FILENAME

        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._category_rules: Optional[Tuple[CategoryRule, ...]] = None
        self._load_config()
        if overrides:
            self._validate_and_merge(overrides)

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            self._config = self.DEFAULTS.copy()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)

            if loaded_config is None:
                logger.warning("Configuration file is empty, using defaults")
                self._config = self.DEFAULTS.copy()
                return

            if not isinstance(loaded_config, dict):
                logger.warning(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(loaded_config)}, using defaults"
                )
                self._config = self.DEFAULTS.copy()
                return

            self._config = self.DEFAULTS.copy()
            self._validate_and_merge(loaded_config)

        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self.DEFAULTS.copy()
        except OSError as e:
            logger.warning(
                f"Could not read configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self.DEFAULTS.copy()

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge over current values.

        Invalid parameters are logged as warnings and the current value is kept.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value
            if key == "category_rules":
                self._category_rules = None

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        expected_type = type(self.DEFAULTS[key])
        if not isinstance(value, expected_type):
            return False

        if key in self._NAME_LISTS:
            return all(isinstance(item, str) and item for item in value)
        elif key in ("critical_threshold", "critical_path_fan_in_floor"):
            # bool is an int subclass; reject it explicitly
            return not isinstance(value, bool) and value >= 0
        elif key == "collision_policy":
            return value in CollisionPolicy.ALL
        elif key == "block_marker":
            return bool(value.strip()) and "\n" not in value
        elif key == "category_rules":
            if not all(isinstance(rule, dict) for rule in value):
                return False
            try:
                for rule in value:
                    CategoryRule.from_dict(rule)
            except ConfigurationError as e:
                logger.warning(str(e))
                return False
            return True

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Effective configuration as a JSON-compatible dict."""
        return dict(self._config)

    # Property accessors for all configuration values
    @property
    def roots(self) -> List[str]:
        """Root package names that are unconditionally required."""
        value = self._config["roots"]
        assert isinstance(value, list)
        return value

    @property
    def always_include(self) -> List[str]:
        """Packages kept, with their direct dependencies, in critical-path output."""
        value = self._config["always_include"]
        assert isinstance(value, list)
        return value

    @property
    def notable_packages(self) -> List[str]:
        """Packages whose presence is reported explicitly."""
        value = self._config["notable_packages"]
        assert isinstance(value, list)
        return value

    @property
    def workspace_members(self) -> List[str]:
        """Names reported in the workspace bucket."""
        value = self._config["workspace_members"]
        assert isinstance(value, list)
        return value

    @property
    def critical_threshold(self) -> int:
        """Fan-in above which a package counts as critical."""
        value = self._config["critical_threshold"]
        assert isinstance(value, int)
        return value

    @property
    def critical_path_fan_in_floor(self) -> int:
        """Dependencies at or below this fan-in are not followed on the critical path."""
        value = self._config["critical_path_fan_in_floor"]
        assert isinstance(value, int)
        return value

    @property
    def collision_policy(self) -> str:
        """CollisionPolicy value for duplicate package names."""
        value = self._config["collision_policy"]
        assert isinstance(value, str)
        return value

    @property
    def block_marker(self) -> str:
        """Line prefix that starts a package block."""
        value = self._config["block_marker"]
        assert isinstance(value, str)
        return value

    @property
    def category_rules(self) -> Tuple[CategoryRule, ...]:
        """Ordered category rules; the built-in rules when none are configured."""
        if self._category_rules is None:
            configured = self._config["category_rules"]
            if configured:
                self._category_rules = tuple(CategoryRule.from_dict(rule) for rule in configured)
            else:
                self._category_rules = DEFAULT_RULES
        return self._category_rules
