"""Palette legends and annotated previews for rendered heatmaps."""

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.cm import ScalarMappable
from matplotlib.colors import FuncNorm, Normalize
from pathlib import Path

from ..config import Palette
from ..frame import EffectiveRange
from ..scaling import LOG_EPSILON


def _log_forward(x):
    return np.log(np.maximum(x, 0.0) + LOG_EPSILON)


def _log_inverse(y):
    return np.exp(y) - LOG_EPSILON


def _legend_mappable(
    effective_range: EffectiveRange,
    palette: Palette,
    log_scale: bool,
) -> ScalarMappable:
    # Near distances take the top of the palette, so the colormap is reversed.
    cmap = matplotlib.colormaps[f"{palette.value}_r"]
    vmin, vmax = effective_range.low, effective_range.high
    if log_scale:
        norm = FuncNorm((_log_forward, _log_inverse), vmin=vmin, vmax=vmax)
    else:
        norm = Normalize(vmin=vmin, vmax=vmax)
    return ScalarMappable(norm=norm, cmap=cmap)


def render_legend(
    effective_range: EffectiveRange,
    palette: Palette,
    output_path: str | Path,
    log_scale: bool = False,
    dpi: int = 150,
) -> None:
    """Render a standalone colorbar for a heatmap's distance range.

    Args:
        effective_range: Range used for color mapping.
        palette: Heatmap palette.
        output_path: Path to save the PNG image.
        log_scale: Whether the heatmap used logarithmic mapping.
        dpi: Output resolution.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(1, 1, figsize=(1.6, 5))
    mappable = _legend_mappable(effective_range, palette, log_scale)
    cbar = fig.colorbar(mappable, cax=ax)
    label = "Distance (m)"
    if effective_range.auto:
        label += " [auto]"
    cbar.set_label(label)

    fig.savefig(output_path, dpi=dpi, bbox_inches="tight", pad_inches=0.1)
    plt.close(fig)


def render_annotated_preview(
    image: np.ndarray,
    effective_range: EffectiveRange,
    palette: Palette,
    output_path: str | Path,
    title: str = "",
    log_scale: bool = False,
    dpi: int = 150,
) -> None:
    """Render a heatmap image side by side with its distance colorbar.

    Args:
        image: Rendered heatmap (H, W, 3), uint8 BGR.
        effective_range: Range used for color mapping.
        palette: Heatmap palette.
        output_path: Path to save the PNG image.
        title: Optional figure title.
        log_scale: Whether the heatmap used logarithmic mapping.
        dpi: Output resolution.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig, ax = plt.subplots(1, 1, figsize=(8, 6))
    ax.imshow(image[:, :, ::-1])
    cbar = fig.colorbar(
        _legend_mappable(effective_range, palette, log_scale), ax=ax, shrink=0.8
    )
    cbar.set_label("Distance (m)")

    if title:
        ax.set_title(title)
    ax.axis("off")

    fig.savefig(output_path, dpi=dpi, bbox_inches="tight", pad_inches=0.1)
    plt.close(fig)
