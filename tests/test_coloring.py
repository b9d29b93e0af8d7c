"""Tests for heatmap colorization and overlay compositing."""

import cv2
import numpy as np
import pytest

from depthviz.coloring import colorize, composite_overlay, quantize_score, to_bgr
from depthviz.config import Palette


def test_quantize_rounds():
    score = np.array([[0.0, 0.5, 1.0, 0.999]], dtype=np.float32)
    assert quantize_score(score)[0].tolist() == [0, 128, 255, 255]


@pytest.mark.parametrize("palette", list(Palette))
def test_colorize_matches_opencv_palette(palette):
    score = np.linspace(0.0, 1.0, 64, dtype=np.float32).reshape(8, 8)
    mask = np.ones_like(score, dtype=bool)

    heatmap = colorize(score, mask, palette)

    expected = cv2.applyColorMap(quantize_score(score), palette.colormap)
    assert heatmap.shape == (8, 8, 3)
    assert heatmap.dtype == np.uint8
    np.testing.assert_array_equal(heatmap, expected)


def test_colorize_blacks_out_invalid_pixels():
    score = np.full((4, 4), 0.0, dtype=np.float32)
    mask = np.ones_like(score, dtype=bool)
    mask[0, 0] = False

    heatmap = colorize(score, mask, Palette.JET)

    assert heatmap[0, 0].tolist() == [0, 0, 0]
    # Far valid pixels are not black in the jet palette
    assert heatmap[1, 1].any()


def test_near_pixels_are_hot_in_jet():
    score = np.array([[1.0, 0.0]], dtype=np.float32)
    heatmap = colorize(score, np.ones_like(score, dtype=bool), Palette.JET)

    near_b, _, near_r = heatmap[0, 0].tolist()
    far_b, _, far_r = heatmap[0, 1].tolist()
    assert near_r > near_b
    assert far_b > far_r


class TestCompositeOverlay:
    def test_blend_weights(self):
        heatmap = np.full((4, 4, 3), 200, dtype=np.uint8)
        reference = np.full((4, 4, 3), 100, dtype=np.uint8)

        out = composite_overlay(heatmap, reference, strength=60)

        assert (out == 160).all()

    def test_strength_extremes(self):
        heatmap = np.full((4, 4, 3), 200, dtype=np.uint8)
        reference = np.full((4, 4, 3), 100, dtype=np.uint8)

        assert (composite_overlay(heatmap, reference, 100) == 200).all()
        assert (composite_overlay(heatmap, reference, 0) == 100).all()

    def test_missing_reference_returns_heatmap(self):
        heatmap = np.full((4, 4, 3), 200, dtype=np.uint8)
        assert composite_overlay(heatmap, None, 60) is heatmap

    def test_size_mismatch_returns_heatmap(self):
        heatmap = np.full((4, 4, 3), 200, dtype=np.uint8)
        reference = np.full((8, 8, 3), 100, dtype=np.uint8)
        assert composite_overlay(heatmap, reference, 60) is heatmap

    def test_non_uint8_reference_returns_heatmap(self):
        heatmap = np.full((4, 4, 3), 200, dtype=np.uint8)
        reference = np.full((4, 4, 3), 0.5, dtype=np.float32)
        assert composite_overlay(heatmap, reference, 60) is heatmap

    def test_grayscale_and_bgra_references(self):
        heatmap = np.full((4, 4, 3), 200, dtype=np.uint8)
        gray = np.full((4, 4), 100, dtype=np.uint8)
        bgra = np.full((4, 4, 4), 100, dtype=np.uint8)

        assert (composite_overlay(heatmap, gray, 50) == 150).all()
        assert (composite_overlay(heatmap, bgra, 50) == 150).all()


def test_to_bgr_rejects_two_channels():
    with pytest.raises(ValueError):
        to_bgr(np.zeros((4, 4, 2), dtype=np.uint8))
