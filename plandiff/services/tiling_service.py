"""Split oversized regions into overlapping, bounded-size tiles."""

import logging
from typing import List

from ..core.entities import Rect
from ..utils.geometry import clamp_rect

logger = logging.getLogger(__name__)


def _axis_spans(length: float, tile_size: int, stride: int) -> List[tuple]:
    """(offset, size) pairs sweeping ``length``; consecutive spans overlap by ``tile_size - stride``."""
    spans = []
    offset = 0
    while True:
        size = min(tile_size, length - offset)
        spans.append((offset, size))
        if offset + size >= length:
            return spans
        offset += stride


def generate_tiles(rois: List[Rect], max_width: float, max_height: float,
                   tile_size: int = 900, overlap: int = 200) -> List[Rect]:
    """Cover every ROI with tiles no larger than ``tile_size`` x ``tile_size``.

    ROIs that already fit pass through unchanged. Larger ROIs are swept in
    both axes with stride ``tile_size - overlap``; the last tile of each
    axis is clipped to the ROI. Tiles are clamped to the image.
    """
    if tile_size <= 0:
        raise ValueError(f"tile_size must be positive, got {tile_size}")
    if not 0 <= overlap < tile_size:
        raise ValueError(f"overlap must be in [0, tile_size), got {overlap}")

    stride = tile_size - overlap
    tiles: List[Rect] = []

    for roi in rois:
        roi = clamp_rect(roi, max_width, max_height)
        if roi.width <= 0 or roi.height <= 0:
            logger.debug(f"Skipping empty ROI {roi}")
            continue

        if roi.width <= tile_size and roi.height <= tile_size:
            tiles.append(roi)
            continue

        for ty, th in _axis_spans(roi.height, tile_size, stride):
            for tx, tw in _axis_spans(roi.width, tile_size, stride):
                tiles.append(Rect(roi.x + tx, roi.y + ty, tw, th))

    logger.debug(f"Generated {len(tiles)} tiles from {len(rois)} ROIs")
    return tiles


class TilingService:
    """Configured tiler."""

    def __init__(self, tile_size: int = 900, overlap: int = 200):
        if not 0 <= overlap < tile_size:
            raise ValueError(f"overlap must be in [0, tile_size), got {overlap}")
        self.tile_size = tile_size
        self.overlap = overlap

    @classmethod
    def from_config(cls, config) -> "TilingService":
        return cls(tile_size=config.tile_size, overlap=config.tile_overlap)

    def tile(self, rois: List[Rect], max_width: float, max_height: float) -> List[Rect]:
        return generate_tiles(rois, max_width, max_height, self.tile_size, self.overlap)
