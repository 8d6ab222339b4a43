"""Configuration loading with validation and explicit reload."""

import copy
import json
import os
import threading
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from .config.defaults import DEFAULT_CONFIG, DEFAULT_PATHS
from .models.config import ObjectDetectionConfig, OutputSchema, TargetGeometryConfig
from .services.error_handler import ConfigurationLoadFailure
from .logging_config import get_logger
from .utils import ensure_directory_exists

logger = get_logger("config_manager")

NESTED_SECTIONS = ("output_schema", "target_geometry")


def _merge_section(name: str, defaults: Dict[str, Any], overrides: Any) -> Dict[str, Any]:
    if not isinstance(overrides, dict):
        raise ConfigurationLoadFailure(f"'{name}' must be an object",
                                       [f"{name}: expected an object"])

    unknown = sorted(set(overrides) - set(defaults))
    if unknown:
        raise ConfigurationLoadFailure(f"Unknown keys in '{name}'",
                                       [f"{name}.{key}: unknown key" for key in unknown])

    merged = dict(defaults)
    merged.update(overrides)
    return merged


def merge_with_defaults(values: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay user settings on the defaults, rejecting unknown keys."""
    if not isinstance(values, dict):
        raise ConfigurationLoadFailure("Configuration must be a JSON object",
                                       ["root: expected an object"])

    merged = copy.deepcopy(DEFAULT_CONFIG)

    unknown = sorted(set(values) - set(merged))
    if unknown:
        raise ConfigurationLoadFailure("Unknown configuration keys",
                                       [f"{key}: unknown key" for key in unknown])

    for key, value in values.items():
        if key in NESTED_SECTIONS:
            merged[key] = _merge_section(key, merged[key], value)
        else:
            merged[key] = value

    return merged


def build_config(values: Dict[str, Any]) -> ObjectDetectionConfig:
    """Build and validate an immutable configuration from a settings dict."""
    merged = merge_with_defaults(values)

    try:
        config = ObjectDetectionConfig(
            input_size=merged["input_size"],
            pad_value=merged["pad_value"],
            preprocessor=merged["preprocessor"],
            confidence_threshold=merged["confidence_threshold"],
            iou_threshold=merged["iou_threshold"],
            class_labels=tuple(merged["class_labels"]),
            output_schema=OutputSchema(**merged["output_schema"]),
            target_geometry=TargetGeometryConfig(**merged["target_geometry"]),
            model_path=merged["model_path"],
            max_workers=merged["max_workers"]
        )
        errors = config.validate()
    except (TypeError, ValueError) as e:
        raise ConfigurationLoadFailure(f"Invalid configuration value: {e}", [str(e)]) from e

    if errors:
        raise ConfigurationLoadFailure("Configuration failed validation", errors)

    return config


def config_to_dict(config: ObjectDetectionConfig) -> Dict[str, Any]:
    """Convert a configuration to plain JSON-compatible values."""
    values = asdict(config)
    values["class_labels"] = list(config.class_labels)
    return values


class ConfigManager:
    """Loads the detection configuration once at startup.

    Loading and using are separate steps: ``load_config`` must succeed before
    ``get_config`` hands out the (immutable) configuration. A reload builds a
    new object and tells registered callbacks about it; configurations already
    handed out never change.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or DEFAULT_PATHS["config_file"]
        self._config: Optional[ObjectDetectionConfig] = None
        self._lock = threading.Lock()
        self._config_change_callbacks: List[Callable[[ObjectDetectionConfig], None]] = []

    def load_config(self) -> ObjectDetectionConfig:
        """Read, validate and store the configuration file."""
        if not os.path.exists(self.config_path):
            raise ConfigurationLoadFailure(f"Configuration file not found: {self.config_path}",
                                           [f"{self.config_path}: file not found"])

        try:
            with open(self.config_path, 'r') as f:
                values = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationLoadFailure(f"Configuration file is not valid JSON: {e}",
                                           [str(e)]) from e
        except OSError as e:
            raise ConfigurationLoadFailure(f"Cannot read configuration file: {e}",
                                           [str(e)]) from e

        config = build_config(values)

        with self._lock:
            self._config = config

        logger.info(f"Configuration loaded from {self.config_path}")
        return config

    def get_config(self) -> ObjectDetectionConfig:
        """Get the loaded configuration."""
        with self._lock:
            config = self._config
        if config is None:
            raise ConfigurationLoadFailure("Configuration has not been loaded",
                                           ["load_config() was not called"])
        return config

    @property
    def is_loaded(self) -> bool:
        return self._config is not None

    def save_config(self, config: ObjectDetectionConfig) -> None:
        """Write a configuration to the config file."""
        errors = config.validate()
        if errors:
            raise ConfigurationLoadFailure("Refusing to save an invalid configuration", errors)

        ensure_directory_exists(os.path.dirname(self.config_path))

        with open(self.config_path, 'w') as f:
            json.dump(config_to_dict(config), f, indent=2)

        logger.info(f"Configuration saved to {self.config_path}")

    def reload_config(self) -> ObjectDetectionConfig:
        """Load the file again and notify callbacks with the new configuration.

        On failure the previously loaded configuration stays in place.
        """
        config = self.load_config()

        for callback in list(self._config_change_callbacks):
            try:
                callback(config)
            except Exception as e:
                logger.error(f"Error in config change callback: {e}")

        return config

    def register_change_callback(self, callback: Callable[[ObjectDetectionConfig], None]) -> None:
        """Register a callback to be called when config changes."""
        if callback not in self._config_change_callbacks:
            self._config_change_callbacks.append(callback)

    def unregister_change_callback(self, callback: Callable[[ObjectDetectionConfig], None]) -> None:
        """Unregister a config change callback."""
        if callback in self._config_change_callbacks:
            self._config_change_callbacks.remove(callback)
