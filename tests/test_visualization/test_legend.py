"""Tests for legend and annotated preview rendering."""

import numpy as np
import pytest
from PIL import Image

from depthviz.config import Palette
from depthviz.frame import EffectiveRange
from depthviz.scaling import normalize_depth
from depthviz.visualization import render_annotated_preview, render_legend
from depthviz.visualization.legend import _legend_mappable


@pytest.mark.parametrize("palette", list(Palette))
def test_render_legend(tmp_path, palette):
    output_path = tmp_path / f"legend_{palette.value}.png"

    render_legend(EffectiveRange(10.0, 50.0), palette, output_path)

    assert output_path.exists()
    img = Image.open(output_path)
    width, height = img.size
    assert height > width > 0


def test_render_legend_auto_log(tmp_path):
    output_path = tmp_path / "nested" / "legend.png"

    render_legend(
        EffectiveRange(12.3, 31.7, auto=True), Palette.TURBO, output_path, log_scale=True
    )

    assert output_path.exists()
    assert output_path.stat().st_size > 0


def test_render_annotated_preview(tmp_path):
    image = np.zeros((48, 64, 3), dtype=np.uint8)
    image[:, :32, 2] = 255

    output_path = tmp_path / "preview.png"
    render_annotated_preview(
        image,
        EffectiveRange(10.0, 50.0),
        Palette.JET,
        output_path,
        title="Frame 12",
    )

    img = Image.open(output_path)
    assert img.size[0] > 0
    assert img.size[1] > 0


@pytest.mark.parametrize("log_scale", [False, True])
def test_legend_norm_matches_heatmap_scaling(log_scale):
    """Legend positions agree with the score the heatmap assigns to each distance."""
    effective_range = EffectiveRange(0.5, 2.0)
    depth = np.linspace(0.5, 2.0, 16).reshape(4, 4)
    mask = np.ones_like(depth, dtype=bool)

    norm = _legend_mappable(effective_range, Palette.TURBO, log_scale).norm
    score = normalize_depth(depth, mask, effective_range, log_scale)

    np.testing.assert_allclose(np.asarray(norm(depth)), 1.0 - score, atol=1e-6)
