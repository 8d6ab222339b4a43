"""Default configuration values and constants."""

from typing import Dict, Any, List

# Score-ring classes "0" (miss) to "10" followed by the target face
DEFAULT_CLASS_LABELS: List[str] = [str(points) for points in range(11)] + ["target"]

# Default detection configuration
DEFAULT_CONFIG: Dict[str, Any] = {
    # Model input
    "input_size": 640,
    "pad_value": 0,
    "preprocessor": "opencv",  # opencv, pillow

    # Decoding
    "confidence_threshold": 0.25,
    "iou_threshold": 0.45,
    "class_labels": DEFAULT_CLASS_LABELS,
    "output_schema": {
        "version": 1,
        "layout": "channels_first",
        "has_objectness": True,
        "use_objectness": False
    },

    # Scoring
    "target_geometry": {
        "source": "detected",  # detected, fixed
        "center_x": None,
        "center_y": None,
        "outer_radius": None,
        "ring_count": 10,
        "max_points": 10,
        "target_class_label": "target",
        "miss_class_label": "0"
    },

    # Runtime
    "model_path": None,
    "max_workers": 2
}

# File paths and directories
DEFAULT_PATHS = {
    "config_file": "config.json",
    "logs_dir": "logs",
    "models_dir": "models"
}

# Inference runtime settings
MODEL_SETTINGS = {
    "default_model": "models/target_detection.onnx",
    "onnx_providers": ["CPUExecutionProvider"],
    "num_threads": 2
}
