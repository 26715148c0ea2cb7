"""End-to-end drawing comparison: load, detect ROIs, tile, annotate, consolidate.

Phases run strictly one after another. Only the annotation phase awaits
external calls (in bounded batches); ROI detection, tiling and consolidation
are synchronous and always run to completion on one snapshot of the images.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..config.settings import Config
from ..core.cancellation import CancellationToken, check_cancelled
from ..core.entities import AffineAlignment, AnalysisMode, AnalysisResult
from ..core.exceptions import AnalysisCancelled, AnalysisError, ApplicationError, ConfigError
from ..core.logging_config import CorrelationContext
from .alignment_compositor import AlignmentCompositor
from .annotation_orchestrator import (
    AnnotationClient, AnnotationOrchestrator, ProgressCallback, report_progress,
)
from .gemini_service import GeminiAnnotationService
from .image_loader import ImageSource, load_image_pair_async
from .result_consolidator import ResultConsolidator
from .roi_detection_service import RoiDetectionService
from .tiling_service import TilingService

logger = logging.getLogger(__name__)


@dataclass
class AnalysisRun:
    """State of a single analyze() call; never shared between calls."""
    run_id: str
    mode: AnalysisMode
    merge_distance: float
    sensitivity: float
    cancel_token: Optional[CancellationToken]
    on_progress: Optional[ProgressCallback]
    started_at: float

    def progress(self, message: str) -> None:
        report_progress(self.on_progress, message)

    def checkpoint(self, name: str) -> None:
        check_cancelled(self.cancel_token, name)


class AnalysisPipeline:
    """Drawing comparison pipeline.

    Holds only immutable configuration and the annotation client; all
    raster buffers belong to the analyze() call that created them, so one
    pipeline instance can serve several concurrent runs.
    """

    def __init__(self, config: Optional[Config] = None,
                 annotation_client: Optional[AnnotationClient] = None):
        self.config = config or Config()
        self._annotation_client = annotation_client
        compositor = AlignmentCompositor()
        self._roi_detector = RoiDetectionService.from_config(self.config, compositor)
        self._tiler = TilingService.from_config(self.config)
        self._consolidator = ResultConsolidator.from_config(self.config)
        self._compositor = compositor

    def _client(self) -> AnnotationClient:
        if self._annotation_client is None:
            client = GeminiAnnotationService.from_config(self.config)
            if not client.is_configured():
                raise ConfigError("Gemini API key is not configured (set GEMINI_API_KEY)")
            self._annotation_client = client
        return self._annotation_client

    async def analyze(self, before: ImageSource, after: ImageSource,
                      alignment: Optional[AffineAlignment] = None,
                      mode: Optional[AnalysisMode] = None,
                      merge_distance: Optional[float] = None,
                      on_progress: Optional[ProgressCallback] = None,
                      cancel_token: Optional[CancellationToken] = None) -> AnalysisResult:
        """Compare two drawings and return numbered change records.

        An empty ``items`` list means "no differences found" and is a success.

        Raises:
            AnalysisCancelled: If ``cancel_token`` was set at a checkpoint
            ImageLoadError: If either image is missing or unreadable
            ConfigError: If no annotation client can be created
            AnalysisError: For any other processing failure
        """
        alignment = alignment or AffineAlignment()
        mode = AnalysisMode.parse(mode or self.config.default_mode)
        if merge_distance is None:
            merge_distance = self.config.merge_distance

        with CorrelationContext() as run_id:
            run = AnalysisRun(
                run_id=run_id,
                mode=mode.effective,
                merge_distance=merge_distance,
                sensitivity=self.config.sensitivity_for(mode),
                cancel_token=cancel_token,
                on_progress=on_progress,
                started_at=time.time(),
            )
            logger.info(f"Starting analysis run {run_id} (mode {mode.value}, "
                        f"merge distance {merge_distance})")
            try:
                result = await self._run(run, before, after, alignment)
            except AnalysisCancelled as e:
                logger.info(f"Analysis run {run_id} cancelled: {e}")
                raise
            except ApplicationError as e:
                logger.error(f"Analysis run {run_id} failed: {e}")
                raise
            except Exception as e:
                logger.error(f"Analysis run {run_id} failed unexpectedly: {e}", exc_info=True)
                raise AnalysisError(f"Analysis failed: {e}") from e

            elapsed = time.time() - run.started_at
            logger.info(f"Analysis run {run_id} finished: {len(result.items)} items, "
                        f"{result.total_tokens} tokens in {elapsed:.1f}s")
            return result

    async def _run(self, run: AnalysisRun, before: ImageSource, after: ImageSource,
                   alignment: AffineAlignment) -> AnalysisResult:
        run.progress("Loading image data...")
        before_image, after_image = await load_image_pair_async(before, after)
        run.checkpoint("image load")

        # let the caller's loop repaint before the CPU-bound scan
        await asyncio.sleep(0)

        run.progress("Scanning for candidate change areas...")
        rois = self._roi_detector.detect_rois(
            before_image, after_image, alignment, run.sensitivity, run.merge_distance
        )
        if not rois:
            logger.info("No changed regions found")
            return AnalysisResult(items=[], total_tokens=0)

        run.checkpoint("ROI detection")

        run.progress(f"Optimizing analysis regions ({len(rois)} areas)...")
        tiles = self._tiler.tile(rois, before_image.width, before_image.height)

        orchestrator = AnnotationOrchestrator.from_config(self.config, self._client(), self._compositor)
        annotated = await orchestrator.annotate(
            before_image, after_image, alignment, tiles, run.mode,
            on_progress=run.on_progress, cancel_token=run.cancel_token,
        )

        run.progress("Consolidating results and removing duplicates...")
        items = self._consolidator.consolidate(annotated.candidates)
        return AnalysisResult(items=items, total_tokens=annotated.tokens_used)


async def analyze_image_diff(before: ImageSource, after: ImageSource,
                             alignment: Optional[AffineAlignment] = None,
                             mode: AnalysisMode = AnalysisMode.MICRO,
                             merge_distance: Optional[float] = None,
                             on_progress: Optional[ProgressCallback] = None,
                             cancel_token: Optional[CancellationToken] = None,
                             config: Optional[Config] = None,
                             annotation_client: Optional[AnnotationClient] = None) -> AnalysisResult:
    """One-shot convenience wrapper around AnalysisPipeline.analyze()."""
    pipeline = AnalysisPipeline(config, annotation_client)
    return await pipeline.analyze(before, after, alignment, mode, merge_distance,
                                  on_progress, cancel_token)
