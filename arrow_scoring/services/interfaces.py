"""Service interfaces and abstract base classes."""

from abc import ABC, abstractmethod
from typing import Iterator, Sequence

import numpy as np

from ..models.detection import Detection, PreprocessingResult, ScoreResult, SessionEnd
from ..models.config import TargetGeometry


class ImagePreprocessorInterface(ABC):
    """Turns encoded photo bytes into a model input tensor.

    Implementations are interchangeable and chosen once at startup; all of
    them must produce the same letterbox geometry for the same input.
    """

    @abstractmethod
    def preprocess(self, image_bytes: bytes, input_size: int) -> PreprocessingResult:
        """Decode, letterbox and tensorize one photo."""
        pass


class InferenceGatewayInterface(ABC):
    """Opaque model runner: tensor in, raw output tensor out."""

    @abstractmethod
    def infer(self, tensor: np.ndarray) -> np.ndarray:
        """Run the model on a [1, 3, S, S] float tensor."""
        pass

    def close(self) -> None:
        """Release runtime resources."""
        pass


class DetectionDecoderInterface(ABC):
    """Interface for decoding raw model output into detections."""

    @abstractmethod
    def decode(self, raw_output: np.ndarray, preprocessing: PreprocessingResult,
               confidence_threshold: float, iou_threshold: float,
               class_labels: Sequence[str]) -> Iterator[Detection]:
        """Decode raw output into detections in original-image space."""
        pass


class TargetScorerInterface(ABC):
    """Interface for scoring arrow impacts."""

    @abstractmethod
    def score(self, detection: Detection, geometry: TargetGeometry) -> ScoreResult:
        """Score one impact against a calibrated target face."""
        pass


class SessionSinkInterface(ABC):
    """Session-management collaborator that receives scored ends."""

    @abstractmethod
    def record_end(self, end: SessionEnd) -> None:
        """Accept one scored end."""
        pass
