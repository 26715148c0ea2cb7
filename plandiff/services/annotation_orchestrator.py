"""Fan tiles out to the annotation service in bounded batches."""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

import numpy as np

from ..core.cancellation import CancellationToken, check_cancelled
from ..core.entities import (
    AffineAlignment, AnalysisMode, AnnotationBatchResult, AnnotationResponse,
    ChangeCandidate, ChangeCategory, ChangeKind, Point, RasterImage, Rect,
)
from ..utils.geometry import normalized_to_global
from ..utils.image_utils import crop_image, pixel_bounds
from .alignment_compositor import AlignmentCompositor

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class AnnotationClient(Protocol):
    """Anything that can label the changes between two crops of one tile."""

    async def annotate_tile(self, before_crop: np.ndarray, after_crop: np.ndarray,
                            mode: AnalysisMode) -> AnnotationResponse:
        ...


def report_progress(on_progress: Optional[ProgressCallback], message: str) -> None:
    """Send ``message`` to the progress callback; a failing callback never stops the run."""
    logger.debug(f"Progress: {message}")
    if on_progress is None:
        return
    try:
        on_progress(message)
    except Exception as e:
        logger.warning(f"Error in progress callback: {e}")


class AnnotationOrchestrator:
    """Crops tile pairs, calls the annotation client and maps boxes back to image space.

    Tiles are processed in batches of ``batch_size`` concurrent requests;
    batches run one after another in tile order and their results are merged
    in tile order, so output never depends on network timing.
    """

    def __init__(self, client: AnnotationClient, batch_size: int = 3,
                 normalized_range: float = 1000,
                 compositor: Optional[AlignmentCompositor] = None):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self._client = client
        self._batch_size = batch_size
        self._normalized_range = normalized_range
        self._compositor = compositor or AlignmentCompositor()

    @classmethod
    def from_config(cls, config, client: AnnotationClient,
                    compositor: Optional[AlignmentCompositor] = None) -> "AnnotationOrchestrator":
        return cls(
            client,
            batch_size=config.annotation_batch_size,
            normalized_range=config.normalized_range,
            compositor=compositor,
        )

    async def annotate(self, before: RasterImage, after: RasterImage, alignment: AffineAlignment,
                       tiles: List[Rect], mode: AnalysisMode,
                       on_progress: Optional[ProgressCallback] = None,
                       cancel_token: Optional[CancellationToken] = None) -> AnnotationBatchResult:
        """Annotate every tile and collect global-space candidates and token usage.

        Raises:
            AnalysisCancelled: If the token is set before the run or before a batch
        """
        check_cancelled(cancel_token, "annotation start")
        mode = AnalysisMode.parse(mode).effective

        result = AnnotationBatchResult()
        total = len(tiles)

        for start in range(0, total, self._batch_size):
            check_cancelled(cancel_token, f"batch starting at tile {start + 1}")

            batch = tiles[start:start + self._batch_size]
            responses = await asyncio.gather(
                *(self._annotate_tile(before, after, alignment, tile, mode, start + offset)
                  for offset, tile in enumerate(batch))
            )

            for candidates, tokens in responses:
                result.candidates.extend(candidates)
                result.tokens_used += tokens

            done = min(start + self._batch_size, total)
            report_progress(on_progress, f"Analyzing in detail: {done} / {total} tiles")

        logger.info(f"Annotated {total} tiles: {len(result.candidates)} candidates, "
                    f"{result.tokens_used} tokens")
        return result

    async def _annotate_tile(self, before: RasterImage, after: RasterImage,
                             alignment: AffineAlignment, tile: Rect, mode: AnalysisMode,
                             index: int) -> tuple:
        """(candidates, tokens) for one tile; ([], 0) when the call or its output fails."""
        try:
            before_crop, after_crop = self.crop_pair(before, after, alignment, tile)
            if before_crop.size == 0:
                logger.debug(f"Tile {index + 1} is empty, skipping")
                return [], 0
            response = await self._client.annotate_tile(before_crop, after_crop, mode)
        except Exception as e:
            logger.warning(f"Annotation failed for tile {index + 1} {tile}: {e}")
            return [], 0

        candidates = []
        for raw in response.candidates:
            candidate = self.to_candidate(raw, tile)
            if candidate is not None:
                candidates.append(candidate)
        return candidates, int(response.tokens_used or 0)

    def crop_pair(self, before: RasterImage, after: RasterImage, alignment: AffineAlignment,
                  tile: Rect) -> tuple:
        """Before crop and aligned After crop of the same tile, both tile-sized."""
        x1, y1, x2, y2 = pixel_bounds(tile, before.width, before.height)
        before_crop = crop_image(before.pixels, tile)
        after_crop = self._compositor.render_aligned_crop(after, alignment, x1, y1, x2 - x1, y2 - y1)
        return before_crop, after_crop

    def to_candidate(self, raw: Dict[str, Any], tile: Rect) -> Optional[ChangeCandidate]:
        """Validate one raw item and map its normalized box into image space.

        Returns None (and logs) for items with a malformed box or unknown labels.
        """
        try:
            if not isinstance(raw["box_2d"], (list, tuple)):
                raise TypeError("box_2d is not a list")
            box_2d = [float(v) for v in raw["box_2d"]]
            if len(box_2d) != 4:
                raise ValueError(f"box_2d has {len(box_2d)} values")
            category = ChangeCategory(str(raw["category"]).upper())
            change_kind = ChangeKind(str(raw["type"]).upper())
        except (KeyError, TypeError, ValueError) as e:
            logger.debug(f"Dropping malformed annotation item {raw!r}: {e}")
            return None

        moved_from = None
        if change_kind is ChangeKind.MOVED:
            moved_from = self._moved_from(raw.get("moved_from_2d"), tile)

        return ChangeCandidate(
            title=str(raw.get("title") or "").strip(),
            description=str(raw.get("description") or "").strip(),
            category=category,
            change_kind=change_kind,
            box=normalized_to_global(box_2d, tile, self._normalized_range),
            moved_from=moved_from,
        )

    def _moved_from(self, point, tile: Rect) -> Optional[Point]:
        if not isinstance(point, (list, tuple)):
            return None
        try:
            nx, ny = (min(self._normalized_range, max(0.0, float(v))) for v in point)
        except (TypeError, ValueError):
            return None
        return Point(tile.x + nx / self._normalized_range * tile.width,
                     tile.y + ny / self._normalized_range * tile.height)
