"""Model asset resolution and validation."""

import hashlib
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config.defaults import DEFAULT_PATHS
from ..logging_config import get_logger
from .error_handler import ModelLoadError

logger = get_logger("model_manager")

MODEL_SUFFIXES = (".onnx", ".tflite")


class ModelManager:
    """Resolves model names to files in the models directory and checks them."""

    def __init__(self, models_dir: Optional[str] = None):
        self.models_dir = Path(models_dir or DEFAULT_PATHS["models_dir"])
        logger.debug(f"Model manager using models directory: {self.models_dir}")

    def resolve_model_path(self, name_or_path: str) -> str:
        """Resolve a model file path.

        Accepts an existing path, a file name inside the models directory, or
        a bare model name to which a known suffix is appended.
        """
        candidates = [Path(name_or_path), self.models_dir / name_or_path]
        if not Path(name_or_path).suffix:
            candidates.extend(self.models_dir / f"{name_or_path}{suffix}" for suffix in MODEL_SUFFIXES)

        for candidate in candidates:
            if candidate.is_file():
                logger.info(f"Resolved model '{name_or_path}' to {candidate}")
                return str(candidate)

        raise ModelLoadError(f"Model '{name_or_path}' not found (looked in {self.models_dir})")

    def list_models(self) -> List[str]:
        """List model files available in the models directory."""
        if not self.models_dir.is_dir():
            return []
        return sorted(p.name for p in self.models_dir.iterdir()
                      if p.is_file() and p.suffix.lower() in MODEL_SUFFIXES)

    def validate_model(self, model_path: str, expected_sha256: Optional[str] = None) -> Dict[str, Any]:
        """Check that a model file exists, has a supported type and matches a checksum."""
        path = Path(model_path)

        if not path.is_file():
            return {"valid": False, "model_path": model_path, "error": "Model file not found"}

        if path.suffix.lower() not in MODEL_SUFFIXES:
            return {"valid": False, "model_path": model_path,
                    "error": f"Unsupported model format '{path.suffix}'"}

        sha256 = self._file_sha256(path)
        result = {
            "valid": True,
            "model_path": model_path,
            "format": path.suffix.lower().lstrip("."),
            "file_size_mb": os.path.getsize(path) / (1024 * 1024),
            "sha256": sha256
        }

        if expected_sha256 and expected_sha256.lower() != sha256:
            result["valid"] = False
            result["error"] = "Checksum mismatch"
            logger.warning(f"Model checksum mismatch for {model_path}")

        return result

    @staticmethod
    def _file_sha256(path: Path) -> str:
        digest = hashlib.sha256()
        with open(path, 'rb') as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                digest.update(chunk)
        return digest.hexdigest()
