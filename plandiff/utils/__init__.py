"""Utility functions package."""

from .geometry import (
    iou_xyxy, rect_iou, rects_intersect, rects_within_distance, union_rect,
    pad_and_clamp, clamp_rect, normalized_to_global,
)
from .image_utils import pixel_bounds, crop_image, to_pil_rgb, encode_jpeg, ensure_bgr

__all__ = [
    "iou_xyxy", "rect_iou", "rects_intersect", "rects_within_distance", "union_rect",
    "pad_and_clamp", "clamp_rect", "normalized_to_global",
    "pixel_bounds", "crop_image", "to_pil_rgb", "encode_jpeg", "ensure_bgr",
]
