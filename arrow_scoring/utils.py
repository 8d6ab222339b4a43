"""Utility functions for the arrow scoring system."""

import os
from typing import Tuple

Box = Tuple[float, float, float, float]


def ensure_directory_exists(path: str) -> None:
    """Ensure a directory exists, create if it doesn't."""
    if path and not os.path.exists(path):
        os.makedirs(path, exist_ok=True)


def center_to_corners(box: Box) -> Box:
    """Convert (cx, cy, w, h) into (x_min, y_min, x_max, y_max)."""
    cx, cy, w, h = box
    return (cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2)


def calculate_iou(box1: Box, box2: Box) -> float:
    """Calculate Intersection over Union (IoU) of two (cx, cy, w, h) boxes."""
    x1_min, y1_min, x1_max, y1_max = center_to_corners(box1)
    x2_min, y2_min, x2_max, y2_max = center_to_corners(box2)

    inter_width = max(0.0, min(x1_max, x2_max) - max(x1_min, x2_min))
    inter_height = max(0.0, min(y1_max, y2_max) - max(y1_min, y2_min))
    intersection_area = inter_width * inter_height

    box1_area = max(0.0, box1[2]) * max(0.0, box1[3])
    box2_area = max(0.0, box2[2]) * max(0.0, box2[3])
    union_area = box1_area + box2_area - intersection_area

    return intersection_area / union_area if union_area > 0 else 0.0


def is_point_in_frame(point: Tuple[float, float], width: int, height: int) -> bool:
    """Check if a point lies in the half-open frame [0, width) x [0, height)."""
    x, y = point
    return 0.0 <= x < width and 0.0 <= y < height
