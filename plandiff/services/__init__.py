"""Services package for the comparison pipeline."""

from .image_loader import load_image, load_image_pair_async
from .alignment_compositor import AlignmentCompositor, affine_matrix
from .roi_detection_service import RoiDetectionService, RoiDetectionResult, merge_rects
from .tiling_service import TilingService, generate_tiles
from .gemini_service import GeminiAnnotationService
from .annotation_orchestrator import AnnotationOrchestrator, AnnotationClient
from .result_consolidator import ResultConsolidator, consolidate, summarize
from .analysis_pipeline import AnalysisPipeline, analyze_image_diff
from .export_service import export_composite, write_report

__all__ = [
    "load_image", "load_image_pair_async",
    "AlignmentCompositor", "affine_matrix",
    "RoiDetectionService", "RoiDetectionResult", "merge_rects",
    "TilingService", "generate_tiles",
    "GeminiAnnotationService",
    "AnnotationOrchestrator", "AnnotationClient",
    "ResultConsolidator", "consolidate", "summarize",
    "AnalysisPipeline", "analyze_image_diff",
    "export_composite", "write_report",
]
