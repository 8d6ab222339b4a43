"""Data models for the arrow scoring system."""

from .detection import (
    MISS,
    ImageBuffer,
    LetterboxResult,
    PreprocessingResult,
    Detection,
    ScoreResult,
    SessionEnd,
    AnalysisStatus,
    TargetAnalysisResult
)
from .config import (
    Ring,
    TargetGeometry,
    TargetGeometryConfig,
    OutputSchema,
    ObjectDetectionConfig
)

__all__ = [
    'MISS', 'ImageBuffer', 'LetterboxResult', 'PreprocessingResult', 'Detection',
    'ScoreResult', 'SessionEnd', 'AnalysisStatus', 'TargetAnalysisResult',
    'Ring', 'TargetGeometry', 'TargetGeometryConfig', 'OutputSchema', 'ObjectDetectionConfig'
]
