"""Decoding of raw model output into deduplicated, confidence-filtered detections."""

from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from ..models.config import OutputSchema
from ..models.detection import Detection, PreprocessingResult
from ..logging_config import get_logger
from ..utils import calculate_iou, is_point_in_frame
from .error_handler import InvalidModelOutput
from .interfaces import DetectionDecoderInterface

logger = get_logger("detection_decoder")


def parse_raw_output(raw_output: np.ndarray, schema: OutputSchema,
                     num_classes: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split raw model output into boxes, confidences and class ids.

    Args:
        raw_output: Model output shaped [1, C, N] / [C, N] (channels first)
            or [1, N, C] / [N, C] (channels last)
        schema: Layout of each candidate row
        num_classes: Number of entries in the class-label table

    Returns:
        (boxes [N, 4] as cx, cy, w, h in model space, confidences [N], class ids [N])
    """
    try:
        data = np.asarray(raw_output, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise InvalidModelOutput(f"Raw output is not a numeric tensor: {e}") from e

    if data.ndim == 3:
        if data.shape[0] != 1:
            raise InvalidModelOutput(f"Expected a batch of one, got shape {data.shape}")
        data = data[0]
    elif data.ndim != 2:
        raise InvalidModelOutput(f"Expected a rank 2 or 3 output, got shape {data.shape}")

    rows = data.T if schema.layout == "channels_first" else data

    expected_channels = schema.expected_channels(num_classes)
    if rows.shape[1] != expected_channels:
        raise InvalidModelOutput(
            f"Expected {expected_channels} channels per candidate for {num_classes} classes, "
            f"got {rows.shape[1]} (raw shape {np.shape(raw_output)})"
        )

    if not np.all(np.isfinite(rows)):
        raise InvalidModelOutput("Raw output contains non-finite values")

    boxes = rows[:, :schema.box_channels]
    class_scores = rows[:, schema.class_offset:]
    probabilities = rows[:, schema.box_channels:] if schema.use_objectness else class_scores
    if probabilities.size and (probabilities.min() < 0.0 or probabilities.max() > 1.0):
        raise InvalidModelOutput(
            f"Scores must be probabilities in [0, 1], got range "
            f"[{probabilities.min():.3f}, {probabilities.max():.3f}]"
        )

    # argmax picks the lowest class id when scores tie
    class_ids = np.argmax(class_scores, axis=1)
    confidences = class_scores[np.arange(rows.shape[0]), class_ids]

    if schema.use_objectness:
        confidences = confidences * rows[:, schema.box_channels]

    return boxes, confidences, class_ids


def non_max_suppression(boxes: np.ndarray, scores: np.ndarray, class_ids: np.ndarray,
                        iou_threshold: float) -> List[int]:
    """Greedy per-class non-max suppression.

    Candidates are visited by descending score, earlier index first on ties.
    A candidate is dropped when its IoU with an already kept box of the same
    class exceeds ``iou_threshold``.

    Returns:
        Indices of kept candidates, in visiting order
    """
    order = sorted(range(len(scores)), key=lambda i: (-float(scores[i]), i))

    kept: List[int] = []
    kept_by_class: Dict[int, List[int]] = {}

    for index in order:
        class_id = int(class_ids[index])
        same_class = kept_by_class.setdefault(class_id, [])
        box = tuple(float(v) for v in boxes[index])

        if any(calculate_iou(box, tuple(float(v) for v in boxes[other])) > iou_threshold
               for other in same_class):
            continue

        same_class.append(index)
        kept.append(index)

    return kept


class DetectionDecoder(DetectionDecoderInterface):
    """Turns raw model output into detections in original-image coordinates."""

    def __init__(self, output_schema: Optional[OutputSchema] = None):
        self.output_schema = output_schema or OutputSchema()

        schema_errors = self.output_schema.validate()
        if schema_errors:
            raise ValueError("; ".join(schema_errors))

    def decode(self, raw_output: np.ndarray, preprocessing: PreprocessingResult,
               confidence_threshold: float, iou_threshold: float,
               class_labels: Sequence[str]) -> Iterator[Detection]:
        """Decode raw output into detections ordered by descending confidence.

        Output is validated eagerly, so ``InvalidModelOutput`` is raised here
        rather than on first iteration. The returned iterator is lazy and can
        be consumed only once.
        """
        boxes, confidences, class_ids = parse_raw_output(
            raw_output, self.output_schema, len(class_labels)
        )

        candidates = np.flatnonzero(confidences >= confidence_threshold)
        logger.debug(f"{len(candidates)} of {len(confidences)} candidates passed "
                     f"confidence threshold {confidence_threshold}")

        kept = non_max_suppression(
            boxes[candidates], confidences[candidates], class_ids[candidates], iou_threshold
        )
        survivors = [int(candidates[i]) for i in kept]

        logger.debug(f"{len(survivors)} candidates survived non-max suppression "
                     f"(iou_threshold={iou_threshold})")

        return self._iter_detections(boxes, confidences, class_ids, survivors,
                                     preprocessing, class_labels)

    def _iter_detections(self, boxes: np.ndarray, confidences: np.ndarray,
                         class_ids: np.ndarray, survivors: List[int],
                         preprocessing: PreprocessingResult,
                         class_labels: Sequence[str]) -> Iterator[Detection]:
        for index in survivors:
            model_x, model_y, model_w, model_h = (float(v) for v in boxes[index])
            center_x, center_y = preprocessing.to_original_space(model_x, model_y)

            if not is_point_in_frame((center_x, center_y), preprocessing.original_width,
                                     preprocessing.original_height):
                logger.debug(f"Discarding out-of-frame candidate {index} at "
                             f"({center_x:.1f}, {center_y:.1f})")
                continue

            class_id = int(class_ids[index])
            yield Detection(
                center_x=center_x,
                center_y=center_y,
                width=model_w * preprocessing.scale,
                height=model_h * preprocessing.scale,
                class_id=class_id,
                confidence=float(confidences[index]),
                class_label=class_labels[class_id]
            )
