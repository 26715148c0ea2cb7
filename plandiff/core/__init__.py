"""Core domain entities, errors and cancellation."""

from .entities import (
    RasterImage, AffineAlignment, Rect, Point, ChangeCandidate, DiffItem,
    AnalysisResult, AnnotationResponse, AnnotationBatchResult,
    ChangeCategory, ChangeKind, AnalysisMode, BlendMode,
)
from .exceptions import (
    ApplicationError, ConfigError, AnalysisError, ImageLoadError,
    AnalysisCancelled, AIServiceError, AnnotationParseError,
)
from .cancellation import CancellationToken

__all__ = [
    "RasterImage", "AffineAlignment", "Rect", "Point", "ChangeCandidate", "DiffItem",
    "AnalysisResult", "AnnotationResponse", "AnnotationBatchResult",
    "ChangeCategory", "ChangeKind", "AnalysisMode", "BlendMode",
    "ApplicationError", "ConfigError", "AnalysisError", "ImageLoadError",
    "AnalysisCancelled", "AIServiceError", "AnnotationParseError",
    "CancellationToken",
]
