"""Resolve image sources into decoded raster buffers."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np
from PIL import Image

from ..core.entities import RasterImage
from ..core.exceptions import ImageLoadError
from ..utils.image_utils import ensure_bgr

logger = logging.getLogger(__name__)

ImageSource = Union[str, os.PathLike, bytes, bytearray, np.ndarray, Image.Image, RasterImage]


def load_image(source: ImageSource) -> RasterImage:
    """Decode ``source`` into an immutable BGR RasterImage.

    Accepts a file path, encoded image bytes, a numpy array (BGR/BGRA/gray),
    a PIL image or an existing RasterImage.

    Raises:
        ImageLoadError: If the source is missing, empty or cannot be decoded
    """
    if source is None:
        raise ImageLoadError("No image provided")

    if isinstance(source, RasterImage):
        return source

    if isinstance(source, (str, os.PathLike)):
        path = Path(source)
        if not path.is_file():
            raise ImageLoadError(f"Image file not found: {path}")
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ImageLoadError(f"Cannot read image file {path}: {e}") from e
        pixels = _decode_bytes(data, str(path))
        label = str(path)
    elif isinstance(source, (bytes, bytearray)):
        pixels = _decode_bytes(bytes(source), "<bytes>")
        label = "<bytes>"
    elif isinstance(source, Image.Image):
        pixels = _pil_to_array(source)
        label = "<PIL.Image>"
    elif isinstance(source, np.ndarray):
        pixels = source
        label = "<ndarray>"
    else:
        raise ImageLoadError(f"Unsupported image source type: {type(source).__name__}")

    try:
        pixels = ensure_bgr(pixels)
    except ValueError as e:
        raise ImageLoadError(f"Cannot use image {label}: {e}") from e

    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise ImageLoadError(f"Image {label} has zero size")

    image = RasterImage.from_array(pixels, source=label)
    logger.debug(f"Loaded image {label} ({image.width}x{image.height})")
    return image


def _pil_to_array(source: Image.Image) -> np.ndarray:
    if "A" in source.getbands() or "transparency" in source.info:
        return cv2.cvtColor(np.asarray(source.convert("RGBA")), cv2.COLOR_RGBA2BGRA)
    return cv2.cvtColor(np.asarray(source.convert("RGB")), cv2.COLOR_RGB2BGR)


def _decode_bytes(data: bytes, label: str) -> np.ndarray:
    if not data:
        raise ImageLoadError(f"Image {label} is empty")
    buffer = np.frombuffer(data, dtype=np.uint8)
    pixels = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if pixels is None:
        raise ImageLoadError(f"Image {label} could not be decoded")
    return pixels


async def load_image_pair_async(before: ImageSource, after: ImageSource) -> Tuple[RasterImage, RasterImage]:
    """Decode both images concurrently off the event loop."""
    before_image, after_image = await asyncio.gather(
        asyncio.to_thread(load_image, before),
        asyncio.to_thread(load_image, after),
    )
    return before_image, after_image
