"""Per-pixel validity masks from range and confidence constraints."""

import logging

import numpy as np

from .config import VisualizationConfig
from .frame import DepthFrame

logger = logging.getLogger(__name__)

# Absolute floor on the number of valid pixels a confidence-filtered mask
# must keep before the confidence constraint is dropped.
MIN_VALID_PIXELS = 1000


def minimum_valid_pixels(total_pixels: int) -> int:
    """Smallest acceptable valid-pixel count for a confidence-filtered mask.

    Args:
        total_pixels: Number of pixels in the frame (W * H).

    Returns:
        max(1000, total_pixels // 1000).
    """
    return max(MIN_VALID_PIXELS, total_pixels // 1000)


def range_mask(depth: np.ndarray, min_distance: float, max_distance: float) -> np.ndarray:
    """Pixels with a finite, positive depth inside [min_distance, max_distance].

    Args:
        depth: Depth buffer (H, W), float32.
        min_distance: Lower bound of the configured range (meters).
        max_distance: Upper bound of the configured range (meters).

    Returns:
        Boolean mask (H, W).
    """
    with np.errstate(invalid="ignore"):
        return (
            np.isfinite(depth)
            & (depth > 0)
            & (depth >= min_distance)
            & (depth <= max_distance)
        )


def build_validity_mask(
    frame: DepthFrame,
    config: VisualizationConfig,
) -> tuple[np.ndarray, bool]:
    """Combine range and confidence constraints into a validity mask.

    The range is always the configured one, never the calibrated range.
    Confidence filtering keeps pixels with ``confidence <= threshold``. If
    that leaves fewer than :func:`minimum_valid_pixels` pixels, the
    confidence constraint is dropped and the range-only mask is returned.

    Args:
        frame: Source frame.
        config: Visualization configuration.

    Returns:
        Tuple of (mask, confidence_applied):
            - mask: Boolean mask (H, W).
            - confidence_applied: False if no confidence filtering took place
              (no buffer, filtering disabled, or fallback triggered).
    """
    mask = range_mask(frame.depth, config.min_distance, config.max_distance)

    if frame.confidence is None or not config.confidence_filtering:
        return mask, False

    filtered = mask & (frame.confidence <= config.confidence_threshold)
    valid_count = int(np.count_nonzero(filtered))
    floor = minimum_valid_pixels(frame.depth.size)

    if valid_count < floor:
        logger.debug(
            "Frame %d: confidence filter left %d valid pixels (< %d), "
            "falling back to range-only mask",
            frame.sequence_index,
            valid_count,
            floor,
        )
        return mask, False

    return filtered, True


__all__ = [
    "MIN_VALID_PIXELS",
    "build_validity_mask",
    "minimum_valid_pixels",
    "range_mask",
]
