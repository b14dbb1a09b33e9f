# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for the fixture record store."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".fixture_lair.yml"


class Config:
    """Configuration for a RecordStore.

    Loads configuration from .fixture_lair.yml with validation and defaults.
    Overrides passed as keyword arguments win over the file.
    """

    DEFAULTS = {
        "verbose": False,
        "default_depth": 0,  # 0 = unbounded
        "reflexive_depth": 2,
        "initial_id": 1,
        "check_consistency": False,
    }

    def __init__(self, config_path: Optional[Path] = None, **overrides: Any):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
            **overrides: Parameter values validated like file values.
        """
        if config_path is None:
            config_path = Path.cwd() / CONFIG_FILE_NAME

        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()
        if overrides:
            self._validate_and_merge(overrides)

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        if not self.config_path.exists():
            logger.debug(f"Configuration file not found at {self.config_path}, using defaults")
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
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                f"Unexpected error loading configuration file "
                f"{self.config_path}: {e}, using defaults"
            )
            self._config = self.DEFAULTS.copy()

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults.

        Invalid parameters are logged as warnings and defaults are used.
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

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        expected_type = type(self.DEFAULTS[key])
        if not isinstance(value, expected_type):
            return False
        # bool is an int subclass
        if expected_type is int and isinstance(value, bool):
            return False

        if key == "default_depth":
            return bool(value >= 0)
        elif key in ("reflexive_depth", "initial_id"):
            return bool(value >= 1)

        return True

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._config)

    @property
    def verbose(self) -> bool:
        """Whether store operations log their execution time."""
        value = self._config["verbose"]
        assert isinstance(value, bool)
        return value

    @property
    def default_depth(self) -> Optional[int]:
        """Materialization depth used when a call passes none. None means unbounded."""
        value = self._config["default_depth"]
        assert isinstance(value, int)
        return value or None

    @property
    def reflexive_depth(self) -> int:
        """Nesting limit of reflexive relations without their own depth."""
        value = self._config["reflexive_depth"]
        assert isinstance(value, int)
        return value

    @property
    def initial_id(self) -> int:
        """First store-assigned id of every type."""
        value = self._config["initial_id"]
        assert isinstance(value, int)
        return value

    @property
    def check_consistency(self) -> bool:
        """Whether the relationship index is validated after every mutation."""
        value = self._config["check_consistency"]
        assert isinstance(value, bool)
        return value
