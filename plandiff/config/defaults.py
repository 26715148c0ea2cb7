"""Default configuration values."""

from typing import Any, Dict

DEFAULT_CONFIG: Dict[str, Any] = {
    # ROI detection
    "grid_cell_size": 40,  # px per grid cell
    "sample_step": 2,  # sample every Nth pixel in both axes
    "roi_padding": 60,
    "merge_distance": 40,
    "macro_sensitivity": 50,  # 0-100, lower ignores small noise
    "micro_sensitivity": 85,
    "default_mode": "MICRO",  # MACRO, MICRO, ELECTRICAL, CUSTOM

    # Tiling
    "tile_size": 900,
    "tile_overlap": 200,

    # Annotation
    "annotation_batch_size": 3,  # concurrent requests per batch
    "normalized_range": 1000,  # box_2d coordinate range
    "jpeg_quality": 80,
    "output_language": "Japanese",

    # Consolidation
    "dedup_iou_threshold": 0.3,
    "row_tolerance": 20,  # px, reading-order row band

    # Gemini
    "gemini_api_key": "",
    "gemini_model": "gemini-3-pro-preview",
    "gemini_timeout": 120,
    "gemini_temperature": 0.2,  # 0.0 to 1.0
    "gemini_thinking_budget": 2048,
    "annotator_persona": "You are a drawing-revision reviewer. You detect the differences between "
                         "the Before and After versions of an architectural or electrical drawing.",

    # Debug and Logging Settings
    "log_level": "INFO",
    "log_dir": "logs",
    "enable_file_logging": False,
    "structured_logging": False,
}
