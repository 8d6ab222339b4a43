"""Configuration components for the arrow scoring system."""

from .defaults import (
    DEFAULT_CONFIG,
    DEFAULT_CLASS_LABELS,
    DEFAULT_PATHS,
    MODEL_SETTINGS
)

__all__ = [
    'DEFAULT_CONFIG',
    'DEFAULT_CLASS_LABELS',
    'DEFAULT_PATHS',
    'MODEL_SETTINGS'
]
