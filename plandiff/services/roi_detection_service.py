"""Locate candidate change regions between two aligned drawings."""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np

from ..core.entities import AffineAlignment, BlendMode, RasterImage, Rect
from ..utils.geometry import pad_and_clamp, rects_within_distance, union_rect
from .alignment_compositor import AlignmentCompositor

logger = logging.getLogger(__name__)


@dataclass
class RoiDetectionResult:
    """Result of one ROI detection pass."""
    rois: List[Rect]
    changed_cells: int
    total_cells: int
    threshold: float
    processing_time_ms: float

    @property
    def changed_ratio(self) -> float:
        return self.changed_cells / self.total_cells if self.total_cells else 0.0


def change_threshold(sensitivity: float) -> float:
    """Mean-RGB difference a sampled pixel must exceed: ``max(10, 100 - sensitivity)``."""
    return max(10.0, 100.0 - sensitivity)


def merge_rects(rects: List[Rect], merge_distance: float) -> List[Rect]:
    """Merge rectangles that overlap or touch once grown by ``merge_distance``.

    Repeats pairwise passes until a pass makes no merge, since a merged
    rectangle can newly reach a third one.
    """
    merged = list(rects)
    changed = True
    while changed:
        changed = False
        i = 0
        while i < len(merged):
            j = i + 1
            while j < len(merged):
                if rects_within_distance(merged[i], merged[j], merge_distance):
                    merged[i] = union_rect(merged[i], merged[j])
                    del merged[j]
                    changed = True
                else:
                    j += 1
            i += 1
    return merged


class RoiDetectionService:
    """Grid-quantized pixel differencing with connected-component clustering."""

    def __init__(self, cell_size: int = 40, sample_step: int = 2, padding: int = 60,
                 compositor: Optional[AlignmentCompositor] = None):
        if cell_size <= 0 or sample_step <= 0 or padding < 0:
            raise ValueError("cell_size and sample_step must be positive, padding non-negative")
        self._cell_size = cell_size
        self._sample_step = sample_step
        self._padding = padding
        self._compositor = compositor or AlignmentCompositor()

    @classmethod
    def from_config(cls, config, compositor: Optional[AlignmentCompositor] = None) -> "RoiDetectionService":
        return cls(
            cell_size=config.grid_cell_size,
            sample_step=config.sample_step,
            padding=config.roi_padding,
            compositor=compositor,
        )

    def detect_rois(self, before: RasterImage, after: RasterImage, alignment: AffineAlignment,
                    sensitivity: float, merge_distance: float) -> List[Rect]:
        """Padded, clamped rectangles around every changed area; empty when nothing changed."""
        return self.detect(before, after, alignment, sensitivity, merge_distance).rois

    def detect(self, before: RasterImage, after: RasterImage, alignment: AffineAlignment,
               sensitivity: float, merge_distance: float) -> RoiDetectionResult:
        if not 0 <= sensitivity <= 100:
            raise ValueError(f"sensitivity must be within 0-100, got {sensitivity}")
        if merge_distance < 0:
            raise ValueError(f"merge_distance must be non-negative, got {merge_distance}")

        start_time = time.time()
        threshold = change_threshold(sensitivity)

        diff = self._compositor.compose(before, after, alignment, BlendMode.DIFFERENCE)
        grid = self.changed_cell_grid(diff.pixels, threshold)
        clusters = self.cluster_changed_cells(grid)
        merged = merge_rects(clusters, merge_distance)
        rois = [pad_and_clamp(r, self._padding, before.width, before.height) for r in merged]

        processing_time = (time.time() - start_time) * 1000
        changed_cells = int(np.count_nonzero(grid))
        logger.info(
            f"ROI detection: {changed_cells}/{grid.size} cells changed (threshold {threshold:.0f}), "
            f"{len(clusters)} clusters -> {len(rois)} ROIs in {processing_time:.0f}ms"
        )
        return RoiDetectionResult(
            rois=rois,
            changed_cells=changed_cells,
            total_cells=int(grid.size),
            threshold=threshold,
            processing_time_ms=processing_time,
        )

    def changed_cell_grid(self, diff: np.ndarray, threshold: float) -> np.ndarray:
        """Boolean grid, True where any sampled pixel's mean RGB difference exceeds ``threshold``."""
        height, width = diff.shape[:2]
        cell, step = self._cell_size, self._sample_step
        grid_rows = -(-height // cell)
        grid_cols = -(-width // cell)

        sampled = diff[::step, ::step].astype(np.float32).mean(axis=2)
        hit_rows, hit_cols = np.nonzero(sampled > threshold)

        grid = np.zeros((grid_rows, grid_cols), dtype=bool)
        grid[(hit_rows * step) // cell, (hit_cols * step) // cell] = True
        return grid

    def cluster_changed_cells(self, grid: np.ndarray) -> List[Rect]:
        """Bounding boxes (in pixels) of the 4-connected components of changed cells."""
        if not grid.any():
            return []

        count, _labels, stats, _centroids = cv2.connectedComponentsWithStats(
            grid.astype(np.uint8), connectivity=4
        )
        cell = self._cell_size
        rects = []
        # label 0 is the unchanged background
        for label in range(1, count):
            gx, gy, gw, gh = (int(v) for v in stats[label, :4])
            rects.append(Rect(gx * cell, gy * cell, gw * cell, gh * cell))

        rects.sort(key=lambda r: (r.y, r.x))
        return rects
