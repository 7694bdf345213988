"""
Configuration manager for the navigation fusion engine.
"""

import copy
import json
import os
from typing import Dict, Any, Optional

from .errors import FusionConfigError
from .logging_config import get_logger
from .math.constants import (DEFAULT_QUALITY, RECORD_LOG_BLOCK_SIZE, DRIFT_WINDOW,
                             VALIDITY_WINDOW_US, THRESHOLD_MAX_M, THRESHOLD_SPAN_M,
                             SEARCH_RADIUS_M, NOON_US, LATE_EVENING_US)

logger = get_logger(__name__)

class FusionConfig:
    """Configuration for the fusion pipeline."""

    DEFAULT_CONFIG = {
        # Smoothing strength, 0 = strongest, 1 = weakest
        "quality": DEFAULT_QUALITY,

        # Record log growth step (rows)
        "block_size": RECORD_LOG_BLOCK_SIZE,

        # Time alignment
        "drift_window": DRIFT_WINDOW,
        "rollover": {
            "noon_us": NOON_US,
            "late_us": LATE_EVENING_US
        },

        # Getter exact-hit window
        "validity_window_us": VALIDITY_WINDOW_US,

        # Track simplification
        "threshold": {
            "max_m": THRESHOLD_MAX_M,
            "span_m": THRESHOLD_SPAN_M
        },
        "search_radius_m": SEARCH_RADIUS_M,

        # Logging
        "log_level": "INFO"
    }

    def __init__(self, config_file: Optional[str] = None, **overrides):
        """
        Initialize configuration.

        Args:
            config_file: Optional path to a JSON configuration file
            **overrides: Top-level values applied after the file
        """
        self.config_file = config_file
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file is not None:
            if os.path.exists(config_file):
                self.load_config()
            else:
                logger.warning("config_file_missing", path=config_file)

        for key, value in overrides.items():
            self.set(key, value)

        self.validate()

    def load_config(self) -> bool:
        """
        Load configuration from file.

        Returns:
            True if loaded successfully
        """
        try:
            with open(self.config_file, 'r') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("config_load_failed", path=self.config_file, error=str(e))
            return False

        # File values override defaults
        self._merge_config(self.config, file_config)
        logger.info("config_loaded", path=self.config_file)
        return True

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        Returns:
            True if saved successfully
        """
        if self.config_file is None:
            return False

        try:
            with open(self.config_file, 'w') as f:
                json.dump(self.config, f, indent=2)
        except OSError as e:
            logger.warning("config_save_failed", path=self.config_file, error=str(e))
            return False

        logger.info("config_saved", path=self.config_file)
        return True

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]):
        """Recursively merge configuration dictionaries."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def get(self, key: str, default=None):
        """Get configuration value with optional default."""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """Set configuration value."""
        keys = key.split('.')
        config = self.config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def validate(self):
        """
        Check value ranges.

        Raises:
            FusionConfigError: If a value is out of range
        """
        quality = self.get("quality")
        if not isinstance(quality, (int, float)) or not 0.0 <= quality <= 1.0:
            raise FusionConfigError(f"quality must be within [0, 1], got {quality!r}")

        for key in ("block_size", "drift_window", "validity_window_us"):
            value = self.get(key)
            if not isinstance(value, int) or value <= 0:
                raise FusionConfigError(f"{key} must be a positive integer, got {value!r}")

        for key in ("threshold.max_m", "search_radius_m"):
            value = self.get(key)
            if not isinstance(value, (int, float)) or value <= 0:
                raise FusionConfigError(f"{key} must be positive, got {value!r}")

        if self.distance_threshold(1.0) <= 0:
            raise FusionConfigError("threshold.span_m must be smaller than threshold.max_m")

    def distance_threshold(self, quality: Optional[float] = None) -> float:
        """Simplifier anchor distance in meters for the given quality."""
        if quality is None:
            quality = self.quality
        return self.get("threshold.max_m") - self.get("threshold.span_m") * quality

    # Property accessors for common configuration values
    @property
    def quality(self) -> float:
        return float(self.config["quality"])

    @property
    def block_size(self) -> int:
        return self.config["block_size"]

    @property
    def drift_window(self) -> int:
        return self.config["drift_window"]

    @property
    def validity_window_us(self) -> int:
        return self.config["validity_window_us"]

    @property
    def search_radius_m(self) -> float:
        return float(self.config["search_radius_m"])

    @property
    def noon_us(self) -> int:
        return self.config["rollover"]["noon_us"]

    @property
    def late_us(self) -> int:
        return self.config["rollover"]["late_us"]

    @property
    def log_level(self) -> str:
        return self.config["log_level"]

    def copy(self) -> 'FusionConfig':
        """Create an independent copy of the configuration."""
        clone = FusionConfig()
        clone.config_file = self.config_file
        clone.config = copy.deepcopy(self.config)
        return clone

    def dumps(self) -> str:
        """Current configuration as indented JSON."""
        return json.dumps(self.config, indent=2)
