"""Photo decoding, letterboxing and tensorization for model input."""

import io
from typing import Tuple

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from ..models.config import ObjectDetectionConfig
from ..models.detection import ImageBuffer, LetterboxResult, PreprocessingResult
from ..logging_config import get_logger
from .error_decorators import log_execution_time
from .error_handler import InvalidImage
from .interfaces import ImagePreprocessorInterface

logger = get_logger("preprocessing")


def compute_letterbox_geometry(width: int, height: int,
                               input_size: int) -> Tuple[int, int, float, float, float]:
    """Compute the scaled size, back-scaling factor and half padding.

    Returns:
        (scaled_width, scaled_height, scale, pad_x, pad_y)
    """
    if input_size <= 0:
        raise ValueError(f"Input size must be positive, got {input_size}")
    if width <= 0 or height <= 0:
        raise InvalidImage(f"Image has a zero dimension: {width}x{height}")

    ratio = min(input_size / width, input_size / height)
    scale = max(width, height) / input_size

    # Rounding can leave a sliver image at 0 px or overshoot the canvas by one
    scaled_width = min(input_size, max(1, int(round(width * ratio))))
    scaled_height = min(input_size, max(1, int(round(height * ratio))))

    pad_x = (input_size - scaled_width) / 2
    pad_y = (input_size - scaled_height) / 2

    return scaled_width, scaled_height, scale, pad_x, pad_y


def decode_image(image_bytes: bytes) -> ImageBuffer:
    """Decode JPEG/PNG bytes into an RGB image buffer using OpenCV."""
    if not image_bytes:
        raise InvalidImage("Image data is empty")

    encoded = np.frombuffer(image_bytes, dtype=np.uint8)
    bgr = cv2.imdecode(encoded, cv2.IMREAD_COLOR)
    if bgr is None:
        raise InvalidImage("Image data could not be decoded")

    rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
    if rgb.shape[0] == 0 or rgb.shape[1] == 0:
        raise InvalidImage(f"Image has a zero dimension: {rgb.shape[1]}x{rgb.shape[0]}")

    return ImageBuffer(pixels=rgb)


def letterbox_matrix(scale: float, pad_x: float, pad_y: float) -> np.ndarray:
    """Canvas-to-photo affine map, the exact inverse of the recorded letterbox."""
    return np.array([[scale, 0.0, -pad_x * scale],
                     [0.0, scale, -pad_y * scale]], dtype=np.float64)


def letterbox(image: ImageBuffer, input_size: int, pad_value: int = 0) -> LetterboxResult:
    """Resize preserving aspect ratio and center on a square constant canvas.

    The photo is warped onto the canvas rather than pasted at a whole-pixel
    offset, so odd padding lands at the same half pixel the inverse map uses.
    """
    _, _, scale, pad_x, pad_y = compute_letterbox_geometry(image.width, image.height, input_size)

    canvas = cv2.warpAffine(
        image.pixels,
        letterbox_matrix(scale, pad_x, pad_y),
        (input_size, input_size),
        flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(pad_value, pad_value, pad_value)
    )

    return LetterboxResult(image=canvas, scale=scale, pad_x=pad_x, pad_y=pad_y)


def tensorize(resized: np.ndarray) -> np.ndarray:
    """Convert an (S, S, 3) RGB8 canvas into a float32 [1, 3, S, S] tensor in [0, 1]."""
    if resized.ndim != 3 or resized.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) image, got shape {resized.shape}")

    chw = resized.astype(np.float32).transpose(2, 0, 1) / 255.0
    return np.ascontiguousarray(chw[np.newaxis, ...])


class OpenCVImagePreprocessor(ImagePreprocessorInterface):
    """Preprocessor backed by OpenCV decoding and resizing."""

    def __init__(self, pad_value: int = 0):
        self.pad_value = pad_value

    @log_execution_time("preprocessing")
    def preprocess(self, image_bytes: bytes, input_size: int) -> PreprocessingResult:
        image = decode_image(image_bytes)
        boxed = letterbox(image, input_size, self.pad_value)

        logger.debug(f"Letterboxed {image.width}x{image.height} -> {input_size}x{input_size} "
                     f"(scale={boxed.scale:.4f}, pad=({boxed.pad_x}, {boxed.pad_y}))")

        return PreprocessingResult(
            tensor=tensorize(boxed.image),
            original_width=image.width,
            original_height=image.height,
            scale=boxed.scale,
            pad_x=boxed.pad_x,
            pad_y=boxed.pad_y
        )


class PillowImagePreprocessor(ImagePreprocessorInterface):
    """Generic preprocessor backed by Pillow, for hosts without OpenCV acceleration."""

    def __init__(self, pad_value: int = 0):
        self.pad_value = pad_value

    def _decode(self, image_bytes: bytes) -> Image.Image:
        if not image_bytes:
            raise InvalidImage("Image data is empty")

        try:
            image = Image.open(io.BytesIO(image_bytes))
            image = ImageOps.exif_transpose(image)
            return image.convert("RGB")
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidImage(f"Image data could not be decoded: {e}") from e

    @log_execution_time("preprocessing")
    def preprocess(self, image_bytes: bytes, input_size: int) -> PreprocessingResult:
        image = self._decode(image_bytes)
        width, height = image.size

        _, _, scale, pad_x, pad_y = compute_letterbox_geometry(width, height, input_size)

        # Pillow samples at pixel centers (x + 0.5); shift so canvas index x
        # reads photo index scale * (x - pad_x), matching the OpenCV warp.
        (a, b, c), (d, e, f) = letterbox_matrix(scale, pad_x, pad_y).tolist()
        canvas = image.transform(
            (input_size, input_size),
            Image.Transform.AFFINE,
            (a, b, c + 0.5 - 0.5 * scale, d, e, f + 0.5 - 0.5 * scale),
            resample=Image.Resampling.BILINEAR,
            fillcolor=(self.pad_value,) * 3
        )

        logger.debug(f"Letterboxed {width}x{height} -> {input_size}x{input_size} with Pillow")

        return PreprocessingResult(
            tensor=tensorize(np.asarray(canvas, dtype=np.uint8)),
            original_width=width,
            original_height=height,
            scale=scale,
            pad_x=pad_x,
            pad_y=pad_y
        )


def create_preprocessor(config: ObjectDetectionConfig) -> ImagePreprocessorInterface:
    """Select the preprocessing backend named in the configuration."""
    if config.preprocessor == "pillow":
        return PillowImagePreprocessor(pad_value=config.pad_value)
    if config.preprocessor == "opencv":
        return OpenCVImagePreprocessor(pad_value=config.pad_value)
    raise ValueError(f"Unknown preprocessor: {config.preprocessor}")
