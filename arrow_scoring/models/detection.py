"""Detection data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

# Ring value reported for impacts outside the outermost ring
MISS = "miss"


@dataclass(frozen=True)
class ImageBuffer:
    """Decoded RGB8 pixel grid, shaped (height, width, 3)."""
    pixels: np.ndarray

    def __post_init__(self):
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 3:
            raise ValueError(f"Expected an (H, W, 3) pixel array, got shape {self.pixels.shape}")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 samples, got {self.pixels.dtype}")

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class LetterboxResult:
    """Square canvas produced by letterboxing plus the values needed to invert it."""
    image: np.ndarray
    scale: float
    pad_x: float
    pad_y: float


@dataclass(frozen=True)
class PreprocessingResult:
    """Model input tensor and the inverse letterbox map back to the original photo.

    ``scale``, ``pad_x`` and ``pad_y`` fully determine the affine map between
    model space and original-image space. Consumers must use these values
    rather than recomputing ratios from the image dimensions.
    """
    tensor: np.ndarray
    original_width: int
    original_height: int
    scale: float
    pad_x: float
    pad_y: float

    def to_model_space(self, x: float, y: float) -> Tuple[float, float]:
        """Map an original-image point into letterboxed model space."""
        return (x / self.scale + self.pad_x, y / self.scale + self.pad_y)

    def to_original_space(self, x: float, y: float) -> Tuple[float, float]:
        """Map a model-space point back to original-image pixels."""
        return ((x - self.pad_x) * self.scale, (y - self.pad_y) * self.scale)


@dataclass(frozen=True)
class Detection:
    """A decoded detection in original-image pixel space."""
    center_x: float
    center_y: float
    width: float
    height: float
    class_id: int
    confidence: float
    class_label: str = ""

    def area(self) -> float:
        """Calculate the area of the bounding box."""
        return self.width * self.height

    def center(self) -> Tuple[float, float]:
        """Get the center point of the bounding box."""
        return (self.center_x, self.center_y)

    def corners(self) -> Tuple[float, float, float, float]:
        """Get the box as (x_min, y_min, x_max, y_max)."""
        half_w = self.width / 2
        half_h = self.height / 2
        return (self.center_x - half_w, self.center_y - half_h,
                self.center_x + half_w, self.center_y + half_h)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'center_x': self.center_x,
            'center_y': self.center_y,
            'width': self.width,
            'height': self.height,
            'class_id': self.class_id,
            'class_label': self.class_label,
            'confidence': self.confidence
        }


@dataclass(frozen=True)
class ScoreResult:
    """Score assigned to a single arrow impact."""
    detection: Detection
    ring: Union[int, str]
    points: int
    distance: float = 0.0

    @property
    def is_miss(self) -> bool:
        return self.ring == MISS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'detection': self.detection.to_dict(),
            'ring': self.ring,
            'points': self.points,
            'distance': self.distance
        }


@dataclass(frozen=True)
class SessionEnd:
    """One end of scored arrows handed to session management."""
    image_ref: Optional[str]
    scores: Tuple[ScoreResult, ...]
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def total_score(self) -> int:
        return sum(score.points for score in self.scores)

    @property
    def arrow_count(self) -> int:
        return len(self.scores)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'image_ref': self.image_ref,
            'timestamp': self.timestamp.isoformat(),
            'total_score': self.total_score,
            'arrow_count': self.arrow_count,
            'arrows': [score.to_dict() for score in self.scores]
        }


class AnalysisStatus(Enum):
    """Outcome of analysing one photo."""
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class TargetAnalysisResult:
    """Result value returned by the pipeline's non-raising entry point."""
    status: AnalysisStatus
    scores: List[ScoreResult] = field(default_factory=list)
    detections: List[Detection] = field(default_factory=list)
    geometry: Optional[Any] = None
    error: Optional[Exception] = None
    image_ref: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == AnalysisStatus.SUCCESS

    @property
    def total_score(self) -> int:
        return sum(score.points for score in self.scores)

    @property
    def error_type(self) -> Optional[str]:
        return type(self.error).__name__ if self.error is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'image_ref': self.image_ref,
            'total_score': self.total_score,
            'scores': [score.to_dict() for score in self.scores],
            'detections': [detection.to_dict() for detection in self.detections],
            'error': str(self.error) if self.error is not None else None,
            'error_type': self.error_type
        }
