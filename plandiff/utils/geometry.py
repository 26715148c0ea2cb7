"""Geometry and bounding box utilities."""

from ..core.entities import Rect


def iou_xyxy(boxA, boxB):
    """Calculate Intersection over Union (IoU) for two boxes."""
    # boxA/B: [x1,y1,x2,y2]
    xA = max(boxA[0], boxB[0])
    yA = max(boxA[1], boxB[1])
    xB = min(boxA[2], boxB[2])
    yB = min(boxA[3], boxB[3])
    interW = max(0, xB - xA)
    interH = max(0, yB - yA)
    interArea = interW * interH
    boxAArea = max(0, boxA[2]-boxA[0]) * max(0, boxA[3]-boxA[1])
    boxBArea = max(0, boxB[2]-boxB[0]) * max(0, boxB[3]-boxB[1])
    denom = float(boxAArea + boxBArea - interArea)
    if denom == 0:
        return 0.0
    return interArea / denom


def rect_iou(a: Rect, b: Rect) -> float:
    return iou_xyxy(a.to_xyxy(), b.to_xyxy())


def rects_intersect(a: Rect, b: Rect) -> bool:
    """True when the interiors overlap (touching edges do not count)."""
    return max(a.x, b.x) < min(a.right, b.right) and max(a.y, b.y) < min(a.bottom, b.bottom)


def rects_within_distance(a: Rect, b: Rect, distance: float) -> bool:
    """True when ``b`` overlaps or touches ``a`` grown by ``distance`` on every side."""
    return not (
        b.x > a.right + distance
        or b.right + distance < a.x
        or b.y > a.bottom + distance
        or b.bottom + distance < a.y
    )


def union_rect(a: Rect, b: Rect) -> Rect:
    x = min(a.x, b.x)
    y = min(a.y, b.y)
    return Rect(x, y, max(a.right, b.right) - x, max(a.bottom, b.bottom) - y)


def pad_and_clamp(rect: Rect, padding: float, max_width: float, max_height: float) -> Rect:
    """Grow ``rect`` by ``padding`` on each side and clip it to the image."""
    x = max(0, rect.x - padding)
    y = max(0, rect.y - padding)
    right = min(max_width, rect.right + padding)
    bottom = min(max_height, rect.bottom + padding)
    return Rect(x, y, max(0, right - x), max(0, bottom - y))


def clamp_rect(rect: Rect, max_width: float, max_height: float) -> Rect:
    return pad_and_clamp(rect, 0, max_width, max_height)


def normalized_to_global(box_2d, tile: Rect, norm_range: float = 1000) -> Rect:
    """Map a ``[xmin, ymin, xmax, ymax]`` box in ``0..norm_range`` tile space to image pixels.

    Each coordinate is clamped to the normalized range first; inverted
    min/max pairs produce a zero-size box rather than a negative one.
    """
    xmin, ymin, xmax, ymax = (min(norm_range, max(0.0, float(v))) for v in box_2d)
    x1 = tile.x + (xmin / norm_range) * tile.width
    y1 = tile.y + (ymin / norm_range) * tile.height
    x2 = tile.x + (xmax / norm_range) * tile.width
    y2 = tile.y + (ymax / norm_range) * tile.height
    return Rect.from_xyxy(x1, y1, x2, y2)
