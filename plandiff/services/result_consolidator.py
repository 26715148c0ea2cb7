"""Deduplicate tile detections, sort them into reading order and number them."""

import logging
from typing import Dict, Iterable, List

from ..core.entities import ChangeCandidate, ChangeKind, DiffItem
from ..utils.geometry import rect_iou, rects_intersect

logger = logging.getLogger(__name__)


def deduplicate(candidates: Iterable[ChangeCandidate], iou_threshold: float = 0.3) -> List[ChangeCandidate]:
    """Drop every candidate whose box overlaps an already accepted one with IoU above the threshold.

    First seen wins; duplicates are discarded, never merged.
    """
    accepted: List[ChangeCandidate] = []
    for candidate in candidates:
        duplicate = any(
            rects_intersect(candidate.box, kept.box) and rect_iou(candidate.box, kept.box) > iou_threshold
            for kept in accepted
        )
        if not duplicate:
            accepted.append(candidate)
    return accepted


def _tie_key(candidate: ChangeCandidate):
    return (candidate.box.x, candidate.box.y, candidate.box.width, candidate.box.height,
            candidate.change_kind.value, candidate.category.value, candidate.title, candidate.description)


def reading_order(candidates: Iterable[ChangeCandidate], row_tolerance: float = 20) -> List[ChangeCandidate]:
    """Top-to-bottom, left-to-right order with a vertical tolerance band.

    Candidates are grouped into rows: a row starts at the topmost remaining
    candidate and takes every candidate whose ``y`` lies within
    ``row_tolerance`` of it. Rows are ordered by ``y``, each row by ``x``.
    """
    by_y = sorted(candidates, key=lambda c: (c.box.y,) + _tie_key(c))
    rows: List[List[ChangeCandidate]] = []
    for candidate in by_y:
        if rows and candidate.box.y - rows[-1][0].box.y <= row_tolerance:
            rows[-1].append(candidate)
        else:
            rows.append([candidate])

    ordered: List[ChangeCandidate] = []
    for row in rows:
        ordered.extend(sorted(row, key=_tie_key))
    return ordered


def format_display_id(sequential_id: int) -> str:
    return f"#{sequential_id:04d}"


def consolidate(candidates: Iterable[ChangeCandidate], iou_threshold: float = 0.3,
                row_tolerance: float = 20) -> List[DiffItem]:
    """Final, numbered DiffItems from the raw tile candidates.

    IDs are assigned only after sorting, so the same candidate set always
    gets the same IDs.
    """
    candidates = list(candidates)
    unique = deduplicate(candidates, iou_threshold)
    ordered = reading_order(unique, row_tolerance)

    items = [
        DiffItem(
            sequential_id=index,
            display_id=format_display_id(index),
            box=candidate.box,
            area_size=candidate.box.width * candidate.box.height,
            change_kind=candidate.change_kind,
            category=candidate.category,
            title=candidate.title,
            description=candidate.description,
            moved_from=candidate.moved_from,
        )
        for index, candidate in enumerate(ordered, start=1)
    ]
    logger.info(f"Consolidated {len(candidates)} candidates into {len(items)} items "
                f"({len(candidates) - len(unique)} duplicates dropped)")
    return items


def summarize(items: Iterable[DiffItem]) -> Dict[str, int]:
    """Counts shown next to a result list: total, added, removed and other (modified + moved)."""
    items = list(items)
    return {
        "total": len(items),
        "added": sum(1 for i in items if i.change_kind is ChangeKind.ADDED),
        "removed": sum(1 for i in items if i.change_kind is ChangeKind.REMOVED),
        "other": sum(1 for i in items if i.change_kind in (ChangeKind.MODIFIED, ChangeKind.MOVED)),
    }


class ResultConsolidator:
    """Configured consolidator."""

    def __init__(self, iou_threshold: float = 0.3, row_tolerance: float = 20):
        self.iou_threshold = iou_threshold
        self.row_tolerance = row_tolerance

    @classmethod
    def from_config(cls, config) -> "ResultConsolidator":
        return cls(iou_threshold=config.dedup_iou_threshold, row_tolerance=config.row_tolerance)

    def consolidate(self, candidates: Iterable[ChangeCandidate]) -> List[DiffItem]:
        return consolidate(candidates, self.iou_threshold, self.row_tolerance)
