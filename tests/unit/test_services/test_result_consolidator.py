"""Unit tests for deduplication, reading order and numbering."""
import random

import pytest

from plandiff.core.entities import ChangeCandidate, ChangeCategory, ChangeKind, Rect
from plandiff.services.result_consolidator import (
    ResultConsolidator, consolidate, deduplicate, format_display_id, reading_order, summarize,
)
from plandiff.utils.geometry import rect_iou, rects_intersect


def _candidate(x, y, w=50, h=50, title="", kind=ChangeKind.ADDED):
    return ChangeCandidate(
        title=title or f"{x},{y}",
        description="",
        category=ChangeCategory.EQUIPMENT,
        change_kind=kind,
        box=Rect(x, y, w, h),
    )


class TestDeduplicate:

    def test_first_seen_wins(self):
        first = _candidate(0, 0, 100, 100, title="first")
        second = _candidate(10, 10, 100, 100, title="second")

        assert deduplicate([first, second]) == [first]

    def test_low_overlap_kept(self):
        a = _candidate(0, 0, 100, 100)
        b = _candidate(80, 0, 100, 100)  # IoU 2000 / 18000

        assert deduplicate([a, b]) == [a, b]

    def test_touching_boxes_kept(self):
        a = _candidate(0, 0, 100, 100)
        b = _candidate(100, 0, 100, 100)

        assert len(deduplicate([a, b])) == 2

    def test_no_survivors_overlap_above_threshold(self):
        rng = random.Random(7)
        candidates = [_candidate(rng.randint(0, 300), rng.randint(0, 300), rng.randint(10, 120),
                                 rng.randint(10, 120)) for _ in range(60)]

        kept = deduplicate(candidates)

        for i, a in enumerate(kept):
            for b in kept[i + 1:]:
                assert not (rects_intersect(a.box, b.box) and rect_iou(a.box, b.box) > 0.3)


class TestReadingOrder:

    def test_rows_within_tolerance_sorted_by_x(self):
        right_high = _candidate(300, 105)
        left_low = _candidate(10, 118)
        below = _candidate(5, 200)

        ordered = reading_order([below, right_high, left_low])

        assert ordered == [left_low, right_high, below]

    def test_rows_beyond_tolerance_sorted_by_y(self):
        a = _candidate(300, 100)
        b = _candidate(10, 121)

        assert reading_order([b, a]) == [a, b]

    def test_order_independent_of_input_order(self):
        rng = random.Random(3)
        candidates = [_candidate(rng.randint(0, 500), rng.randint(0, 500)) for _ in range(40)]
        shuffled = candidates[:]
        rng.shuffle(shuffled)

        assert reading_order(candidates) == reading_order(shuffled)


class TestConsolidate:

    def test_ids_follow_reading_order(self):
        items = consolidate([_candidate(400, 300), _candidate(10, 10), _candidate(200, 12)])

        assert [i.sequential_id for i in items] == [1, 2, 3]
        assert [i.display_id for i in items] == ["#0001", "#0002", "#0003"]
        assert [(i.box.x, i.box.y) for i in items] == [(10, 10), (200, 12), (400, 300)]

    def test_area_size_from_box(self):
        [item] = consolidate([_candidate(0, 0, 30, 40)])

        assert item.area_size == 1200

    def test_idempotent(self):
        rng = random.Random(11)
        candidates = [_candidate(rng.randint(0, 400), rng.randint(0, 400), rng.randint(20, 90),
                                 rng.randint(20, 90)) for _ in range(30)]

        once = consolidate(candidates)
        again = consolidate([
            ChangeCandidate(i.title, i.description, i.category, i.change_kind, i.box, i.moved_from)
            for i in once
        ])

        assert [(i.box, i.title) for i in again] == [(i.box, i.title) for i in once]

    def test_empty_input(self):
        assert consolidate([]) == []

    def test_configured_consolidator(self, default_config):
        default_config.dedup_iou_threshold = 0.9
        consolidator = ResultConsolidator.from_config(default_config)

        items = consolidator.consolidate([_candidate(0, 0, 100, 100), _candidate(10, 10, 100, 100)])

        assert len(items) == 2


@pytest.mark.parametrize("n,expected", [(1, "#0001"), (42, "#0042"), (12345, "#12345")])
def test_format_display_id(n, expected):
    assert format_display_id(n) == expected


def test_summarize_counts_by_kind():
    items = consolidate([
        _candidate(0, 0, kind=ChangeKind.ADDED),
        _candidate(100, 0, kind=ChangeKind.ADDED),
        _candidate(200, 0, kind=ChangeKind.REMOVED),
        _candidate(300, 0, kind=ChangeKind.MODIFIED),
        _candidate(400, 0, kind=ChangeKind.MOVED),
    ])

    assert summarize(items) == {"total": 5, "added": 2, "removed": 1, "other": 2}
