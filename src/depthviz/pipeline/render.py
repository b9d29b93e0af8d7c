"""Single-frame rendering: validity mask through overlay compositing."""

import logging
from dataclasses import dataclass

import numpy as np

from ..coloring import colorize, composite_overlay
from ..config import VisualizationConfig
from ..contrast import compute_effective_range
from ..enhance import edge_boost, local_contrast
from ..frame import DepthFrame, EffectiveRange
from ..masks import build_validity_mask
from ..scaling import normalize_depth
from .context import RenderState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderResult:
    """Output of one pipeline pass over a frame.

    Attributes:
        image: Final composited image (H, W, 3), uint8 BGR.
        heatmap: Colorized heatmap before overlay (H, W, 3), uint8 BGR.
        mask: Validity mask (H, W), bool.
        effective_range: Range used for color mapping.
        confidence_applied: Whether confidence filtering shaped the mask.
        sequence_index: Source position of the frame.
    """

    image: np.ndarray
    heatmap: np.ndarray
    mask: np.ndarray
    effective_range: EffectiveRange
    confidence_applied: bool
    sequence_index: int

    @property
    def valid_pixels(self) -> int:
        return int(np.count_nonzero(self.mask))


def render_depth_frame(
    frame: DepthFrame,
    config: VisualizationConfig,
    state: RenderState | None = None,
) -> RenderResult:
    """Run mask, calibration, scaling, enhancers, colorization, and overlay.

    Temporal smoothing and motion highlighting only run when the config
    enables them and a RenderState carrying their buffers is supplied.

    Args:
        frame: Source frame (not modified).
        config: Visualization configuration.
        state: Cross-frame state of the current batch, or None for a
            stateless single-frame render.

    Returns:
        RenderResult for the frame.
    """
    mask, confidence_applied = build_validity_mask(frame, config)

    working = frame.depth
    if config.temporal_smoothing and state is not None and state.smoother is not None:
        working = state.smoother.update(frame.depth, mask)

    effective_range = compute_effective_range(working, mask, config)
    score = normalize_depth(working, mask, effective_range, config.log_scale)

    if config.edge_boost:
        score = edge_boost(score, working, mask, config.edge_factor)
    if config.clahe:
        score = local_contrast(score, mask)

    heatmap = colorize(score, mask, config.palette)

    image = heatmap
    if config.motion_highlight and state is not None and state.motion is not None:
        image = state.motion.apply(heatmap, working, mask)

    if config.overlay_enabled:
        image = composite_overlay(image, frame.reference, config.overlay_strength)

    logger.debug(
        "Frame %d: range [%.3f, %.3f]%s, %d valid pixels",
        frame.sequence_index,
        effective_range.low,
        effective_range.high,
        " (auto)" if effective_range.auto else "",
        int(np.count_nonzero(mask)),
    )

    return RenderResult(
        image=image,
        heatmap=heatmap,
        mask=mask,
        effective_range=effective_range,
        confidence_applied=confidence_applied,
        sequence_index=frame.sequence_index,
    )
