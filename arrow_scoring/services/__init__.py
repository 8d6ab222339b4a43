"""Services for the arrow scoring system."""

from .interfaces import (
    ImagePreprocessorInterface,
    InferenceGatewayInterface,
    DetectionDecoderInterface,
    TargetScorerInterface,
    SessionSinkInterface
)
from .error_handler import (
    ScoringError,
    InvalidImage,
    InvalidModelOutput,
    InferenceFailure,
    AlreadyProcessing,
    ConfigurationLoadFailure,
    ModelLoadError,
    CalibrationError,
    PipelineCancelled
)

__all__ = [
    'ImagePreprocessorInterface',
    'InferenceGatewayInterface',
    'DetectionDecoderInterface',
    'TargetScorerInterface',
    'SessionSinkInterface',
    'ScoringError',
    'InvalidImage',
    'InvalidModelOutput',
    'InferenceFailure',
    'AlreadyProcessing',
    'ConfigurationLoadFailure',
    'ModelLoadError',
    'CalibrationError',
    'PipelineCancelled'
]
