"""Configuration data models."""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .detection import Detection

SUPPORTED_SCHEMA_VERSIONS = (1,)
OUTPUT_LAYOUTS = ("channels_first", "channels_last")
GEOMETRY_SOURCES = ("detected", "fixed")
PREPROCESSORS = ("opencv", "pillow")


@dataclass(frozen=True)
class Ring:
    """One scoring zone of the target face."""
    outer_radius: float
    points: int
    number: Optional[int] = None

    @property
    def ring_number(self) -> int:
        """Ring identifier reported in scores; defaults to the point value."""
        return self.points if self.number is None else self.number


@dataclass(frozen=True)
class TargetGeometry:
    """Calibrated target face: concentric rings ordered innermost first.

    Radii are in original-image pixels. ``aspect_ratio`` (horizontal radius
    over vertical radius) stretches vertical offsets so a face photographed at
    an angle can still be scored against circular rings.
    """
    center_x: float
    center_y: float
    rings: Tuple[Ring, ...]
    aspect_ratio: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, 'rings', tuple(self.rings))

        if not self.rings:
            raise ValueError("Target geometry needs at least one ring")
        if not self.aspect_ratio > 0 or not math.isfinite(self.aspect_ratio):
            raise ValueError(f"Aspect ratio must be positive, got {self.aspect_ratio}")

        previous = None
        for ring in self.rings:
            if ring.outer_radius < 0:
                raise ValueError(f"Ring radius must not be negative: {ring.outer_radius}")
            if previous is not None:
                if ring.outer_radius < previous.outer_radius:
                    raise ValueError("Ring radii must not decrease from the inside out")
                if ring.points > previous.points:
                    raise ValueError("Ring points must not increase from the inside out")
            previous = ring

    @property
    def outer_radius(self) -> float:
        return self.rings[-1].outer_radius

    @property
    def max_points(self) -> int:
        return self.rings[0].points

    def distance_to(self, x: float, y: float) -> float:
        """Distance from the target center, vertical offset corrected by the aspect ratio."""
        dx = x - self.center_x
        dy = (y - self.center_y) * self.aspect_ratio
        return math.hypot(dx, dy)

    @classmethod
    def concentric(cls, center_x: float, center_y: float, outer_radius: float,
                   ring_count: int = 10, max_points: int = 10,
                   aspect_ratio: float = 1.0) -> 'TargetGeometry':
        """Build a face of evenly spaced rings, ``max_points`` in the middle."""
        if ring_count < 1:
            raise ValueError(f"Ring count must be positive, got {ring_count}")
        if outer_radius <= 0:
            raise ValueError(f"Outer radius must be positive, got {outer_radius}")

        rings = []
        for index in range(1, ring_count + 1):
            points = max(max_points - index + 1, 0)
            rings.append(Ring(outer_radius=outer_radius * index / ring_count, points=points))

        return cls(center_x=center_x, center_y=center_y, rings=tuple(rings),
                   aspect_ratio=aspect_ratio)

    @classmethod
    def from_target_detection(cls, detection: Detection, ring_count: int = 10,
                              max_points: int = 10) -> 'TargetGeometry':
        """Calibrate from a detected target-face box (one photo at a time)."""
        if detection.width <= 0 or detection.height <= 0:
            raise ValueError("Target face detection has an empty box")

        return cls.concentric(
            center_x=detection.center_x,
            center_y=detection.center_y,
            outer_radius=detection.width / 2,
            ring_count=ring_count,
            max_points=max_points,
            aspect_ratio=detection.width / detection.height
        )


@dataclass(frozen=True)
class TargetGeometryConfig:
    """Where the target geometry comes from.

    ``detected`` calibrates each photo from the target-face detection;
    ``fixed`` uses the configured center and radius for every photo.
    Detections labelled ``miss_class_label`` are arrows the model saw off the
    face; they are not scored. ``None`` scores every non-target detection.
    """
    source: str = "detected"
    center_x: Optional[float] = None
    center_y: Optional[float] = None
    outer_radius: Optional[float] = None
    ring_count: int = 10
    max_points: int = 10
    target_class_label: str = "target"
    miss_class_label: Optional[str] = "0"

    def build_fixed_geometry(self) -> TargetGeometry:
        return TargetGeometry.concentric(
            center_x=self.center_x,
            center_y=self.center_y,
            outer_radius=self.outer_radius,
            ring_count=self.ring_count,
            max_points=self.max_points
        )

    def validate(self) -> List[str]:
        errors = []
        if self.source not in GEOMETRY_SOURCES:
            errors.append(f"target_geometry.source must be one of {GEOMETRY_SOURCES}")
        if self.miss_class_label is not None and self.miss_class_label == self.target_class_label:
            errors.append("target_geometry.miss_class_label must differ from target_class_label")
        if self.ring_count < 1:
            errors.append("target_geometry.ring_count must be at least 1")
        if self.source == "fixed":
            if self.center_x is None or self.center_y is None:
                errors.append("fixed target geometry needs center_x and center_y")
            if self.outer_radius is None or self.outer_radius <= 0:
                errors.append("fixed target geometry needs a positive outer_radius")
        return errors


@dataclass(frozen=True)
class OutputSchema:
    """Versioned layout of the raw model output.

    Each candidate carries ``[cx, cy, w, h, (objectness), class scores...]``
    in model-space pixels. ``channels_first`` means the tensor is
    ``[1, channels, candidates]``; ``channels_last`` means
    ``[1, candidates, channels]``.
    """
    version: int = 1
    layout: str = "channels_first"
    has_objectness: bool = True
    use_objectness: bool = False

    @property
    def box_channels(self) -> int:
        return 4

    @property
    def class_offset(self) -> int:
        return self.box_channels + (1 if self.has_objectness else 0)

    def expected_channels(self, num_classes: int) -> int:
        return self.class_offset + num_classes

    def validate(self) -> List[str]:
        errors = []
        if self.version not in SUPPORTED_SCHEMA_VERSIONS:
            errors.append(f"Unsupported output schema version: {self.version}")
        if self.layout not in OUTPUT_LAYOUTS:
            errors.append(f"output_schema.layout must be one of {OUTPUT_LAYOUTS}")
        if self.use_objectness and not self.has_objectness:
            errors.append("output_schema.use_objectness requires has_objectness")
        return errors


@dataclass(frozen=True)
class ObjectDetectionConfig:
    """Process-wide detection settings. Never mutated once loaded."""
    # Model input
    input_size: int = 640
    pad_value: int = 0
    preprocessor: str = "opencv"

    # Decoding
    confidence_threshold: float = 0.25
    iou_threshold: float = 0.45
    class_labels: Tuple[str, ...] = ()
    output_schema: OutputSchema = field(default_factory=OutputSchema)

    # Scoring
    target_geometry: TargetGeometryConfig = field(default_factory=TargetGeometryConfig)

    # Runtime
    model_path: Optional[str] = None
    max_workers: int = 2

    def __post_init__(self):
        object.__setattr__(self, 'class_labels', tuple(self.class_labels))

    def label_for(self, class_id: int) -> str:
        """Get the label for a class id, ``class_<id>`` when unknown."""
        if 0 <= class_id < len(self.class_labels):
            return self.class_labels[class_id]
        return f"class_{class_id}"

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the configuration is usable."""
        errors = []

        if not isinstance(self.input_size, int) or self.input_size <= 0:
            errors.append("input_size must be a positive integer")
        if not 0 <= self.pad_value <= 255:
            errors.append("pad_value must be within [0, 255]")
        if self.preprocessor not in PREPROCESSORS:
            errors.append(f"preprocessor must be one of {PREPROCESSORS}")

        if not 0.0 <= self.confidence_threshold <= 1.0:
            errors.append("confidence_threshold must be within [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            errors.append("iou_threshold must be within [0, 1]")

        if not self.class_labels:
            errors.append("class_labels must not be empty")
        elif len(set(self.class_labels)) != len(self.class_labels):
            errors.append("class_labels must be unique")

        if self.max_workers < 1:
            errors.append("max_workers must be at least 1")

        errors.extend(self.output_schema.validate())
        errors.extend(self.target_geometry.validate())

        if (self.target_geometry.source == "detected" and self.class_labels and
                self.target_geometry.target_class_label not in self.class_labels):
            errors.append("target_class_label must be one of class_labels for detected geometry")

        return errors

    def is_valid(self) -> bool:
        return not self.validate()
