"""Unit tests for the alignment compositor."""
import numpy as np
import pytest

from plandiff.core.entities import AffineAlignment, BlendMode, RasterImage
from plandiff.services.alignment_compositor import AlignmentCompositor, affine_matrix


def _apply(matrix, x, y):
    return matrix @ np.array([x, y, 1.0])


class TestAffineMatrix:

    def test_identity(self):
        matrix = affine_matrix(AffineAlignment(), 100, 80)

        assert np.allclose(matrix, [[1, 0, 0], [0, 1, 0]])

    def test_rotation_keeps_overlay_center_fixed(self):
        matrix = affine_matrix(AffineAlignment(rotation=37), 100, 60)

        assert np.allclose(_apply(matrix, 50, 30), [50, 30])

    def test_rotation_quarter_turn(self):
        matrix = affine_matrix(AffineAlignment(rotation=90), 100, 100)

        assert np.allclose(_apply(matrix, 60, 50), [50, 60])

    def test_scale_pivots_on_scaled_center(self):
        matrix = affine_matrix(AffineAlignment(scale=2.0), 100, 100)

        assert np.allclose(_apply(matrix, 100, 100), [100, 100])
        assert np.allclose(_apply(matrix, 0, 0), [-100, -100])

    def test_translation_then_offset(self):
        matrix = affine_matrix(AffineAlignment(x=15, y=-5), 100, 100, offset=(10, 10))

        assert np.allclose(_apply(matrix, 0, 0), [5, -15])


class TestCompose:

    def test_identical_images_give_zero_difference(self, before_image):
        compositor = AlignmentCompositor()

        diff = compositor.compose(before_image, before_image, AffineAlignment(), BlendMode.DIFFERENCE)

        assert diff.width == before_image.width
        assert int(diff.pixels.max()) == 0

    def test_difference_highlights_added_shape(self, before_image, after_image):
        diff = AlignmentCompositor().compose(before_image, after_image, AffineAlignment())

        changed = np.argwhere(diff.pixels.max(axis=2) > 0)
        ys, xs = changed[:, 0], changed[:, 1]
        assert xs.min() >= 259 and xs.max() <= 301
        assert ys.min() >= 199 and ys.max() <= 241

    def test_uncovered_pixels_keep_base(self):
        base = RasterImage.from_array(np.full((20, 20, 3), 200, dtype=np.uint8))
        overlay = RasterImage.from_array(np.zeros((10, 10, 3), dtype=np.uint8))

        diff = AlignmentCompositor().compose(base, overlay, AffineAlignment(), BlendMode.DIFFERENCE)

        assert (diff.pixels[:10, :10] == 200).all()
        assert (diff.pixels[15:, 15:] == 200).all()

    def test_multiply_respects_opacity(self):
        base = RasterImage.from_array(np.full((10, 10, 3), 200, dtype=np.uint8))
        overlay = RasterImage.from_array(np.zeros((10, 10, 3), dtype=np.uint8))

        half = AlignmentCompositor().compose(base, overlay, AffineAlignment(opacity=0.5), BlendMode.MULTIPLY)

        assert (half.pixels == 100).all()

    def test_base_is_not_mutated(self, before_image, after_image):
        snapshot = before_image.pixels.copy()

        AlignmentCompositor().compose(before_image, after_image, AffineAlignment(x=3, rotation=5))

        assert np.array_equal(before_image.pixels, snapshot)


class TestAlignedCrop:

    def test_crop_matches_translated_overlay(self):
        pixels = np.full((50, 50, 3), 255, dtype=np.uint8)
        pixels[10, 10] = 0
        overlay = RasterImage.from_array(pixels)

        crop = AlignmentCompositor().render_aligned_crop(
            overlay, AffineAlignment(x=5, y=7), x=10, y=10, width=20, height=20
        )

        assert crop.shape == (20, 20, 3)
        assert (crop[7, 5] == 0).all()

    def test_uncovered_area_is_white(self):
        overlay = RasterImage.from_array(np.zeros((10, 10, 3), dtype=np.uint8))

        crop = AlignmentCompositor().render_aligned_crop(overlay, AffineAlignment(), 0, 0, 20, 20)

        assert (crop[:10, :10] == 0).all()
        assert (crop[12:, 12:] == 255).all()
