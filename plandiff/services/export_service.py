"""Composite rendering and JSON report export for finished analyses."""

import json
import logging
import math
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union

import cv2
import numpy as np

from ..core.entities import (
    AffineAlignment, AnalysisResult, BlendMode, ChangeKind, DiffItem, RasterImage,
)
from ..core.exceptions import AnalysisError
from .alignment_compositor import AlignmentCompositor
from .image_loader import ImageSource, load_image
from .result_consolidator import summarize

logger = logging.getLogger(__name__)

# BGR
KIND_COLORS: Dict[ChangeKind, Tuple[int, int, int]] = {
    ChangeKind.ADDED: (0, 170, 0),
    ChangeKind.REMOVED: (0, 0, 220),
    ChangeKind.MODIFIED: (0, 200, 230),
    ChangeKind.MOVED: (220, 90, 0),
}


def _draw_item(canvas: np.ndarray, item: DiffItem, thickness: int = 2) -> None:
    color = KIND_COLORS.get(item.change_kind, (128, 128, 128))
    x1, y1 = int(math.floor(item.box.x)), int(math.floor(item.box.y))
    x2, y2 = int(math.ceil(item.box.right)), int(math.ceil(item.box.bottom))

    cv2.rectangle(canvas, (x1, y1), (x2, y2), color, thickness)

    label = item.display_id
    (text_width, text_height), baseline = cv2.getTextSize(
        label, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1
    )
    # Label sits above the box unless that would leave the image
    top = y1 - text_height - baseline - 4
    if top < 0:
        top = y1
    cv2.rectangle(
        canvas,
        (x1, top),
        (x1 + text_width + 4, top + text_height + baseline + 4),
        color,
        -1
    )
    cv2.putText(
        canvas,
        label,
        (x1 + 2, top + text_height + 2),
        cv2.FONT_HERSHEY_SIMPLEX,
        0.5,
        (255, 255, 255),
        1
    )

    if item.change_kind is ChangeKind.MOVED and item.moved_from is not None:
        center = (int(round(item.box.x + item.box.width / 2)), int(round(item.box.y + item.box.height / 2)))
        origin = (int(round(item.moved_from.x)), int(round(item.moved_from.y)))
        cv2.arrowedLine(canvas, origin, center, color, 1, tipLength=0.05)


def export_composite(before: ImageSource, after: ImageSource, alignment: Optional[AffineAlignment],
                     items: Iterable[DiffItem],
                     path: Optional[Union[str, Path]] = None,
                     compositor: Optional[AlignmentCompositor] = None) -> RasterImage:
    """Redraw the aligned overlay and stroke every item's box in its kind color.

    The overlay is multiplied onto the Before drawing at ``alignment.opacity``,
    which is how the comparison is presented to users. When ``path`` is given
    the composite is also written there (format from the file extension).

    Raises:
        ImageLoadError: If either image cannot be loaded
        AnalysisError: If the composite cannot be written
    """
    before_image = load_image(before)
    after_image = load_image(after)
    compositor = compositor or AlignmentCompositor()

    composite = compositor.compose(before_image, after_image, alignment or AffineAlignment(),
                                   BlendMode.MULTIPLY)
    canvas = composite.pixels.copy()
    items = list(items)
    for item in items:
        _draw_item(canvas, item)

    result = RasterImage.from_array(canvas, source="composite")

    if path is not None:
        path = Path(path)
        suffix = path.suffix or ".png"
        try:
            ok, buffer = cv2.imencode(suffix, canvas)
        except cv2.error as e:
            raise AnalysisError(f"Cannot encode composite as {suffix}: {e}") from e
        if not ok:
            raise AnalysisError(f"Cannot encode composite as {suffix}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(buffer.tobytes())
        except OSError as e:
            raise AnalysisError(f"Cannot write composite to {path}: {e}") from e
        logger.info(f"Composite with {len(items)} items written to {path}")

    return result


def build_report(result: AnalysisResult) -> Dict:
    """Serializable report: the result plus its summary counts."""
    report = result.to_dict()
    report["summary"] = summarize(result.items)
    return report


def write_report(result: AnalysisResult, path: Union[str, Path]) -> Path:
    """Write the analysis result as UTF-8 JSON.

    Raises:
        AnalysisError: If the file cannot be written
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(build_report(result), f, indent=2, ensure_ascii=False)
    except OSError as e:
        raise AnalysisError(f"Cannot write report to {path}: {e}") from e

    logger.info(f"Report with {len(result.items)} items written to {path}")
    return path


__all__ = ["KIND_COLORS", "export_composite", "build_report", "write_report", "summarize"]
