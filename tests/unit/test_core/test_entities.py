"""Unit tests for core entities.

Tests cover validation, immutability and serialization of the raster,
geometry and result types.
"""
import json
from dataclasses import FrozenInstanceError

import numpy as np
import pytest

from plandiff.core.entities import (
    AffineAlignment, AnalysisMode, AnalysisResult, ChangeCategory, ChangeKind,
    DiffItem, Point, RasterImage, Rect,
)


class TestRect:
    """Test suite for Rect entity."""

    def test_edges_and_area(self):
        rect = Rect(10, 20, 30, 40)

        assert rect.right == 40
        assert rect.bottom == 60
        assert rect.area == 1200
        assert rect.to_xyxy() == (10, 20, 40, 60)

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            Rect(0, 0, -1, 10)

    def test_from_xyxy_inverted_gives_zero_size(self):
        rect = Rect.from_xyxy(50, 50, 40, 45)

        assert rect.width == 0
        assert rect.height == 0

    def test_immutability(self):
        rect = Rect(0, 0, 1, 1)

        with pytest.raises(FrozenInstanceError):
            rect.x = 5


class TestRasterImage:
    """Test suite for RasterImage entity."""

    def test_from_array_records_dimensions(self):
        pixels = np.zeros((30, 50, 3), dtype=np.uint8)

        image = RasterImage.from_array(pixels, source="test")

        assert image.width == 50
        assert image.height == 30
        assert image.source == "test"

    def test_from_array_is_read_only_copy(self):
        pixels = np.zeros((4, 4, 3), dtype=np.uint8)

        image = RasterImage.from_array(pixels)
        pixels[0, 0] = 255

        assert image.pixels[0, 0, 0] == 0
        with pytest.raises(ValueError):
            image.pixels[0, 0] = 1

    def test_from_array_rejects_grayscale(self):
        with pytest.raises(ValueError):
            RasterImage.from_array(np.zeros((4, 4), dtype=np.uint8))


class TestAnalysisMode:
    """Test suite for AnalysisMode parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("macro", AnalysisMode.MACRO),
        ("MICRO", AnalysisMode.MICRO),
        (AnalysisMode.CUSTOM, AnalysisMode.CUSTOM),
    ])
    def test_parse(self, value, expected):
        assert AnalysisMode.parse(value) is expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown analysis mode"):
            AnalysisMode.parse("ULTRA")

    def test_electrical_and_custom_analyze_as_micro(self):
        assert AnalysisMode.ELECTRICAL.effective is AnalysisMode.MICRO
        assert AnalysisMode.CUSTOM.effective is AnalysisMode.MICRO
        assert AnalysisMode.MACRO.effective is AnalysisMode.MACRO


class TestAffineAlignment:
    """Test suite for AffineAlignment."""

    def test_defaults_are_identity(self):
        alignment = AffineAlignment()

        assert (alignment.x, alignment.y, alignment.scale, alignment.rotation) == (0, 0, 1, 0)

    def test_from_dict_ignores_unknown_keys(self):
        alignment = AffineAlignment.from_dict({"x": "12", "rotation": 90, "zoom": 3})

        assert alignment.x == 12.0
        assert alignment.rotation == 90.0
        assert alignment.scale == 1.0


class TestAnalysisResult:
    """Test suite for DiffItem and AnalysisResult serialization."""

    def _item(self, **overrides):
        values = dict(
            sequential_id=1,
            display_id="#0001",
            box=Rect(10, 20, 30, 40),
            area_size=1200,
            change_kind=ChangeKind.ADDED,
            category=ChangeCategory.EQUIPMENT,
            title="Outlet added",
            description="New duplex outlet",
        )
        values.update(overrides)
        return DiffItem(**values)

    def test_item_to_dict(self):
        data = self._item().to_dict()

        assert data == {
            "id": 1,
            "displayId": "#0001",
            "type": "ADDED",
            "category": "EQUIPMENT",
            "title": "Outlet added",
            "description": "New duplex outlet",
            "box": {"x": 10, "y": 20, "width": 30, "height": 40},
            "areaSize": 1200,
        }

    def test_moved_item_carries_origin(self):
        data = self._item(change_kind=ChangeKind.MOVED, moved_from=Point(1.5, 2.5)).to_dict()

        assert data["movedFrom"] == {"x": 1.5, "y": 2.5}

    def test_empty_result(self):
        result = AnalysisResult(items=[], total_tokens=0)

        assert result.is_empty
        assert result.to_dict() == {"items": [], "totalTokens": 0}

    def test_result_json_serializable(self):
        result = AnalysisResult(items=[self._item()], total_tokens=321)

        decoded = json.loads(json.dumps(result.to_dict()))

        assert decoded["totalTokens"] == 321
        assert decoded["items"][0]["displayId"] == "#0001"
