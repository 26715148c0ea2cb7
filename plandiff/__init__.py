"""
Visual difference analysis for revised technical drawings.
"""

__version__ = "1.0.0"
__author__ = "plandiff developers"

from .config.settings import Config, load_config, save_config
from .core.entities import AffineAlignment, AnalysisMode, AnalysisResult, DiffItem
from .core.cancellation import CancellationToken
from .services.analysis_pipeline import AnalysisPipeline, analyze_image_diff

__all__ = [
    "Config", "load_config", "save_config",
    "AffineAlignment", "AnalysisMode", "AnalysisResult", "DiffItem",
    "CancellationToken", "AnalysisPipeline", "analyze_image_diff",
]
