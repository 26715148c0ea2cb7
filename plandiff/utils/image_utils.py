"""Image processing utilities."""

import io
import math
from typing import Tuple

import cv2
import numpy as np
from PIL import Image

from ..core.entities import Rect


def pixel_bounds(rect: Rect, width: int, height: int) -> Tuple[int, int, int, int]:
    """Integer ``(x1, y1, x2, y2)`` covering ``rect``, clipped to the image."""
    x1 = max(0, min(int(math.floor(rect.x)), width))
    y1 = max(0, min(int(math.floor(rect.y)), height))
    x2 = max(x1, min(int(math.ceil(rect.right)), width))
    y2 = max(y1, min(int(math.ceil(rect.bottom)), height))
    return x1, y1, x2, y2


def crop_image(image: np.ndarray, rect: Rect) -> np.ndarray:
    """Copy of the pixels inside ``rect``."""
    h, w = image.shape[:2]
    x1, y1, x2, y2 = pixel_bounds(rect, w, h)
    return image[y1:y2, x1:x2].copy()


def to_pil_rgb(image: np.ndarray) -> Image.Image:
    """Convert an OpenCV BGR array to a PIL RGB image."""
    return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def encode_jpeg(image: np.ndarray, quality: int = 80) -> bytes:
    """Encode a BGR array as JPEG bytes."""
    if image.size == 0:
        raise ValueError("Cannot encode an empty image")
    buffer = io.BytesIO()
    to_pil_rgb(image).save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def ensure_bgr(image: np.ndarray) -> np.ndarray:
    """Normalize grayscale, BGRA and single-channel arrays to 3-channel BGR uint8."""
    if image.dtype == np.uint16:
        # 16-bit PNG/TIFF keeps the high byte
        image = (image >> 8).astype(np.uint8)
    elif image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        # Transparent drawing background reads as white paper
        bgr = image[:, :, :3].astype(np.float32)
        alpha = image[:, :, 3:4].astype(np.float32) / 255.0
        return (bgr * alpha + 255.0 * (1.0 - alpha)).round().astype(np.uint8)
    if image.ndim == 3 and image.shape[2] == 3:
        return image
    raise ValueError(f"Unsupported image shape {image.shape}")
