"""Effective color-mapping range, fixed or percentile based."""

import logging

import numpy as np

from .config import VisualizationConfig
from .frame import EffectiveRange

logger = logging.getLogger(__name__)

MIN_SAMPLES = 100
LOW_PERCENTILE = 0.02
HIGH_PERCENTILE = 0.98
MIN_SPAN = 0.5  # meters


def fixed_range(config: VisualizationConfig) -> EffectiveRange:
    """The configured [min_distance, max_distance] band."""
    return EffectiveRange(config.min_distance, config.max_distance, auto=False)


def percentile_bounds(samples: np.ndarray) -> tuple[float, float]:
    """2nd and 98th percentile of a 1D sample array by order statistics.

    Uses nearest-rank selection (index ``floor(q * (n - 1))``) with
    np.partition, so no full sort is performed.

    Args:
        samples: 1D float array, at least one element.

    Returns:
        Tuple of (p2, p98).
    """
    n = samples.size
    lo_idx = int(LOW_PERCENTILE * (n - 1))
    hi_idx = int(HIGH_PERCENTILE * (n - 1))
    selected = np.partition(samples, (lo_idx, hi_idx))
    return float(selected[lo_idx]), float(selected[hi_idx])


def compute_effective_range(
    depth: np.ndarray,
    mask: np.ndarray,
    config: VisualizationConfig,
) -> EffectiveRange:
    """Derive the [low, high] band used to color one frame.

    With auto-contrast disabled this is the configured range. Otherwise it
    is the 2nd/98th percentile of the valid depths, falling back to the
    configured range when fewer than 100 samples are valid or the span is
    below 0.5 m.

    Args:
        depth: Depth buffer (H, W) in linear meters.
        mask: Validity mask (H, W), bool.
        config: Visualization configuration.

    Returns:
        EffectiveRange with low < high.
    """
    if not config.auto_contrast:
        return fixed_range(config)

    samples = depth[mask]
    if samples.size < MIN_SAMPLES:
        logger.debug(
            "Auto-contrast: %d valid samples (< %d), using fixed range",
            samples.size,
            MIN_SAMPLES,
        )
        return fixed_range(config)

    low, high = percentile_bounds(samples.astype(np.float64, copy=False))
    if high - low < MIN_SPAN:
        logger.debug(
            "Auto-contrast: span %.3f m (< %.1f m), using fixed range",
            high - low,
            MIN_SPAN,
        )
        return fixed_range(config)

    return EffectiveRange(low, high, auto=True)


__all__ = [
    "compute_effective_range",
    "fixed_range",
    "percentile_bounds",
]
