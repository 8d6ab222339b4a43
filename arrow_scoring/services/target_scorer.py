"""Mapping of arrow impacts to target rings and points."""

from typing import Iterable, List, Sequence

from ..models.config import TargetGeometry, TargetGeometryConfig
from ..models.detection import MISS, Detection, ScoreResult
from ..logging_config import get_logger
from .error_handler import CalibrationError
from .interfaces import TargetScorerInterface

logger = get_logger("target_scorer")


class TargetScorer(TargetScorerInterface):
    """Scores impacts against a calibrated ring geometry.

    The impact scores the innermost ring whose outer radius reaches it, so an
    arrow touching a line takes the higher value. Anything beyond the
    outermost ring is a miss worth zero.
    """

    def score(self, detection: Detection, geometry: TargetGeometry) -> ScoreResult:
        distance = geometry.distance_to(detection.center_x, detection.center_y)

        for ring in geometry.rings:
            if distance <= ring.outer_radius:
                return ScoreResult(detection=detection, ring=ring.ring_number,
                                   points=ring.points, distance=distance)

        return ScoreResult(detection=detection, ring=MISS, points=0, distance=distance)

    def score_all(self, detections: Iterable[Detection],
                  geometry: TargetGeometry) -> List[ScoreResult]:
        """Score every impact, preserving input order."""
        results = [self.score(detection, geometry) for detection in detections]
        logger.debug(f"Scored {len(results)} impacts for {total_points(results)} points")
        return results


def total_points(results: Iterable[ScoreResult]) -> int:
    """Sum the points of a set of scores."""
    return sum(result.points for result in results)


def resolve_geometry(detections: Sequence[Detection],
                     geometry_config: TargetGeometryConfig) -> TargetGeometry:
    """Establish the target geometry for one photo.

    With a ``fixed`` source the configured calibration is used as is. With a
    ``detected`` source the most confident target-face detection defines the
    center and outer radius.
    """
    if geometry_config.source == "fixed":
        return geometry_config.build_fixed_geometry()

    faces = [d for d in detections if d.class_label == geometry_config.target_class_label]
    if not faces:
        found = ", ".join(f"{d.class_label}({d.confidence:.0%})" for d in detections) or "nothing"
        raise CalibrationError(f"No target face detected; found {found}")

    face = max(faces, key=lambda d: d.confidence)
    try:
        geometry = TargetGeometry.from_target_detection(
            face, ring_count=geometry_config.ring_count, max_points=geometry_config.max_points
        )
    except ValueError as e:
        raise CalibrationError(f"Target face detection is unusable: {e}") from e

    logger.debug(f"Calibrated target at ({geometry.center_x:.1f}, {geometry.center_y:.1f}) "
                 f"radius {geometry.outer_radius:.1f}")
    return geometry


def split_impacts(detections: Sequence[Detection],
                  geometry_config: TargetGeometryConfig) -> List[Detection]:
    """Return the detections to score, dropping the target face and model-classified misses."""
    skipped = {geometry_config.target_class_label, geometry_config.miss_class_label}
    return [d for d in detections if d.class_label not in skipped]
