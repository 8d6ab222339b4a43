"""
Arrow Scoring

Detects arrow impacts in photos of archery target faces and scores each
impact against the target's rings.
"""

__version__ = "1.0.0"
__author__ = "Arrow Scoring"

# Import core components
from .config_manager import ConfigManager
from .detection_pipeline import ScoringPipeline, build_session_end
from .models import (
    MISS,
    Detection,
    ScoreResult,
    SessionEnd,
    TargetAnalysisResult,
    TargetGeometry,
    ObjectDetectionConfig
)
from .services import (
    ImagePreprocessorInterface,
    InferenceGatewayInterface,
    SessionSinkInterface,
    ScoringError,
    InvalidImage,
    InvalidModelOutput,
    InferenceFailure,
    AlreadyProcessing,
    ConfigurationLoadFailure
)
from . import utils

__all__ = [
    # Core management
    'ConfigManager',
    'ScoringPipeline',
    'build_session_end',

    # Data models
    'MISS',
    'Detection',
    'ScoreResult',
    'SessionEnd',
    'TargetAnalysisResult',
    'TargetGeometry',
    'ObjectDetectionConfig',

    # Service interfaces
    'ImagePreprocessorInterface',
    'InferenceGatewayInterface',
    'SessionSinkInterface',

    # Errors
    'ScoringError',
    'InvalidImage',
    'InvalidModelOutput',
    'InferenceFailure',
    'AlreadyProcessing',
    'ConfigurationLoadFailure',

    # Utilities
    'utils'
]
