"""Unit tests for ROI tiling."""
import numpy as np
import pytest

from plandiff.core.entities import Rect
from plandiff.services.tiling_service import TilingService, generate_tiles


class TestGenerateTiles:

    def test_small_roi_passes_through(self):
        roi = Rect(100, 50, 500, 400)

        assert generate_tiles([roi], 2000, 2000) == [roi]

    def test_wide_roi_split_with_exact_overlap(self):
        tiles = generate_tiles([Rect(0, 0, 2000, 500)], 3000, 3000, tile_size=900, overlap=200)

        assert tiles == [
            Rect(0, 0, 900, 500),
            Rect(700, 0, 900, 500),
            Rect(1400, 0, 600, 500),
        ]
        for left, right in zip(tiles, tiles[1:]):
            assert left.right - right.x == 200

    def test_large_roi_grid(self):
        tiles = generate_tiles([Rect(0, 0, 1800, 1800)], 1800, 1800, tile_size=900, overlap=200)

        assert len(tiles) == 9
        assert all(t.width <= 900 and t.height <= 900 for t in tiles)

    def test_tiles_cover_roi(self):
        roi = Rect(37, 81, 2345, 1234)
        tiles = generate_tiles([roi], 4000, 4000)

        covered = np.zeros((int(roi.bottom) + 1, int(roi.right) + 1), dtype=bool)
        for t in tiles:
            covered[int(t.y):int(t.bottom), int(t.x):int(t.right)] = True

        assert covered[int(roi.y):int(roi.bottom), int(roi.x):int(roi.right)].all()

    def test_tiles_clamped_to_image(self):
        tiles = generate_tiles([Rect(800, 800, 900, 900)], 1000, 1000)

        assert tiles == [Rect(800, 800, 200, 200)]

    def test_roi_outside_image_skipped(self):
        assert generate_tiles([Rect(2000, 2000, 10, 10)], 1000, 1000) == []

    @pytest.mark.parametrize("overlap", [-1, 900, 1000])
    def test_invalid_overlap(self, overlap):
        with pytest.raises(ValueError):
            generate_tiles([Rect(0, 0, 10, 10)], 100, 100, tile_size=900, overlap=overlap)


class TestTilingService:

    def test_from_config(self, default_config):
        tiler = TilingService.from_config(default_config)

        assert (tiler.tile_size, tiler.overlap) == (900, 200)
        assert tiler.tile([Rect(0, 0, 100, 100)], 500, 500) == [Rect(0, 0, 100, 100)]
