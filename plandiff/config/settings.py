"""Configuration dataclass and loading utilities.

Provides a strongly-typed configuration object that is passed into the
pipeline at invocation time instead of relying on module-level globals.
Precedence: defaults < JSON file < environment (.env file, then process env).
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict, fields
from typing import Any, Dict, Optional
import json, os, logging
from .defaults import DEFAULT_CONFIG
from .env_config import load_environment_config, EnvironmentConfig, EnvironmentConfigError
from ..core.entities import AnalysisMode

logger = logging.getLogger(__name__)

@dataclass(slots=True)
class Config:
    # ROI detection
    grid_cell_size: int = DEFAULT_CONFIG["grid_cell_size"]
    sample_step: int = DEFAULT_CONFIG["sample_step"]
    roi_padding: int = DEFAULT_CONFIG["roi_padding"]
    merge_distance: int = DEFAULT_CONFIG["merge_distance"]
    macro_sensitivity: int = DEFAULT_CONFIG["macro_sensitivity"]
    micro_sensitivity: int = DEFAULT_CONFIG["micro_sensitivity"]
    default_mode: str = DEFAULT_CONFIG["default_mode"]

    # Tiling
    tile_size: int = DEFAULT_CONFIG["tile_size"]
    tile_overlap: int = DEFAULT_CONFIG["tile_overlap"]

    # Annotation
    annotation_batch_size: int = DEFAULT_CONFIG["annotation_batch_size"]
    normalized_range: int = DEFAULT_CONFIG["normalized_range"]
    jpeg_quality: int = DEFAULT_CONFIG["jpeg_quality"]
    output_language: str = DEFAULT_CONFIG["output_language"]

    # Consolidation
    dedup_iou_threshold: float = DEFAULT_CONFIG["dedup_iou_threshold"]
    row_tolerance: int = DEFAULT_CONFIG["row_tolerance"]

    # Gemini
    gemini_api_key: str = DEFAULT_CONFIG["gemini_api_key"]
    gemini_model: str = DEFAULT_CONFIG["gemini_model"]
    gemini_timeout: int = DEFAULT_CONFIG["gemini_timeout"]
    gemini_temperature: float = DEFAULT_CONFIG["gemini_temperature"]
    gemini_thinking_budget: int = DEFAULT_CONFIG["gemini_thinking_budget"]
    annotator_persona: str = DEFAULT_CONFIG["annotator_persona"]

    # Logging
    log_level: str = DEFAULT_CONFIG["log_level"]
    log_dir: str = DEFAULT_CONFIG["log_dir"]
    enable_file_logging: bool = DEFAULT_CONFIG["enable_file_logging"]
    structured_logging: bool = DEFAULT_CONFIG["structured_logging"]

    # True when the API key came from the environment; such keys are never saved
    api_key_from_env: bool = False

    # Arbitrary extra values retained for forward compatibility
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        extra = d.pop("extra", {})
        d.pop("api_key_from_env", None)
        d.update(extra)
        return d

    def get(self, key: str, default: Any = None) -> Any:
        return getattr(self, key, self.extra.get(key, default))

    def sensitivity_for(self, mode: AnalysisMode) -> int:
        """ROI sensitivity for a mode: MACRO ignores noise, MICRO catches symbol-level changes."""
        if AnalysisMode.parse(mode).effective is AnalysisMode.MACRO:
            return self.macro_sensitivity
        return self.micro_sensitivity

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key and self.gemini_api_key.strip())


def _config_field_names() -> set:
    return {f.name for f in fields(Config)} - {"extra", "api_key_from_env"}


def load_config(path: str = "config.json", env_file: Optional[str] = None) -> Config:
    """Load configuration from a JSON file, then apply environment overrides.

    A missing, empty or malformed file falls back to defaults with a log
    message; an invalid environment variable raises.

    Args:
        path: Path to config.json file
        env_file: Path to .env file (optional)

    Raises:
        ConfigError: If an environment variable holds an invalid value
    """
    data: Dict[str, Any] = {}

    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded_data = json.load(f)
            if loaded_data is None:
                logger.warning(f"Configuration file '{path}' is empty, using defaults")
            elif not isinstance(loaded_data, dict):
                logger.error(f"Configuration file '{path}' does not contain a JSON object, using defaults")
            else:
                data = loaded_data
                logger.info(f"Loaded configuration from '{path}'")
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse JSON configuration file '{path}': {e}. Using defaults.")
        except OSError as e:
            logger.error(f"Cannot read configuration file '{path}': {e}. Using defaults.")
    else:
        logger.debug(f"Configuration file '{path}' does not exist. Using defaults.")

    env_config = load_environment_config(env_file)

    merged = {**DEFAULT_CONFIG, **data}
    merged = _apply_environment_overrides(merged, env_config)
    merged = _sanitize_config_values(merged)

    known = _config_field_names()
    extra = {k: v for k, v in merged.items() if k not in known}
    if extra:
        logger.info(f"Found extra configuration keys: {list(extra.keys())}")

    cfg = Config(**{k: merged[k] for k in known if k in merged}, extra=extra)
    cfg.api_key_from_env = env_config.is_api_key_configured
    return cfg


def save_config(cfg: Config, path: str = "config.json") -> None:
    """Save configuration to JSON. API keys taken from the environment are not written."""
    config_dict = cfg.to_dict()

    if cfg.api_key_from_env:
        config_dict["gemini_api_key"] = ""
        logger.info("API key excluded from saved config (using environment variable)")

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config_dict, f, indent=2, ensure_ascii=False)
        logger.info(f"Configuration saved to '{path}'")
    except OSError as e:
        logger.error(f"Failed to save configuration file '{path}': {e}")
        raise


def _apply_environment_overrides(config_dict: Dict[str, Any], env_config: EnvironmentConfig) -> Dict[str, Any]:
    """Apply the environment values that are set on top of ``config_dict``."""
    overrides = {
        "gemini_api_key": env_config.gemini_api_key,
        "gemini_model": env_config.gemini_model,
        "gemini_timeout": env_config.gemini_timeout,
        "gemini_temperature": env_config.gemini_temperature,
        "gemini_thinking_budget": env_config.gemini_thinking_budget,
        "annotation_batch_size": env_config.annotation_batch_size,
    }
    updated = dict(config_dict)
    for key, value in overrides.items():
        if value is not None:
            updated[key] = value

    if env_config.debug_logging:
        updated["log_level"] = "DEBUG"

    return updated


# (min, max) accepted for numeric settings; anything outside falls back to the default
NUMERIC_RANGES = {
    'grid_cell_size': (4, 512),
    'sample_step': (1, 16),
    'roi_padding': (0, 1000),
    'merge_distance': (0, 2000),
    'macro_sensitivity': (0, 100),
    'micro_sensitivity': (0, 100),
    'tile_size': (64, 4096),
    'tile_overlap': (0, 4095),
    'annotation_batch_size': (1, 16),
    'normalized_range': (1, 100000),
    'jpeg_quality': (1, 100),
    'dedup_iou_threshold': (0.0, 1.0),
    'row_tolerance': (0, 1000),
    'gemini_timeout': (5, 600),
    'gemini_temperature': (0.0, 1.0),
    'gemini_thinking_budget': (0, 32768),
}


def _sanitize_config_values(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Reset out-of-range or mistyped numeric values to their defaults."""
    sanitized = config_dict.copy()

    for key, (min_val, max_val) in NUMERIC_RANGES.items():
        if key not in sanitized:
            continue
        value = sanitized[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning(f"Value {key}={value!r} is not a number, using default")
            sanitized[key] = DEFAULT_CONFIG[key]
        elif isinstance(DEFAULT_CONFIG[key], int) and not float(value).is_integer():
            logger.warning(f"Value {key}={value!r} is not a whole number, using default")
            sanitized[key] = DEFAULT_CONFIG[key]
        elif not (min_val <= value <= max_val):
            logger.warning(f"Value {key}={value} out of range [{min_val}, {max_val}], using default")
            sanitized[key] = DEFAULT_CONFIG[key]
        elif isinstance(DEFAULT_CONFIG[key], int):
            sanitized[key] = int(value)

    if sanitized.get("tile_overlap", 0) >= sanitized.get("tile_size", 1):
        logger.warning("tile_overlap must be smaller than tile_size, using defaults for both")
        sanitized["tile_size"] = DEFAULT_CONFIG["tile_size"]
        sanitized["tile_overlap"] = DEFAULT_CONFIG["tile_overlap"]

    mode = sanitized.get("default_mode")
    try:
        sanitized["default_mode"] = AnalysisMode.parse(mode).value
    except ValueError:
        logger.warning(f"Unknown default_mode {mode!r}, using default")
        sanitized["default_mode"] = DEFAULT_CONFIG["default_mode"]

    return sanitized


__all__ = ["Config", "load_config", "save_config", "EnvironmentConfigError", "NUMERIC_RANGES"]
