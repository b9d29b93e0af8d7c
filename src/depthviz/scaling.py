"""Map validated distances to a normalized [0, 1] closeness score."""

import numpy as np

from .frame import EffectiveRange

LOG_EPSILON = 1e-3


def normalize_depth(
    depth: np.ndarray,
    mask: np.ndarray,
    effective_range: EffectiveRange,
    log_scale: bool = False,
) -> np.ndarray:
    """Convert depth to an inverted, clamped score where 1 = near, 0 = far.

    Depths below ``effective_range.low`` map to 1, depths above
    ``effective_range.high`` map to 0. In log mode ``ln(x + 1e-3)`` is
    applied to the data and to both bounds before normalizing. Invalid
    pixels are set to 0.

    Args:
        depth: Depth buffer (H, W), meters.
        mask: Validity mask (H, W), bool.
        effective_range: Bounds in linear meters.
        log_scale: Use logarithmic mapping.

    Returns:
        Score (H, W), float32 in [0, 1].
    """
    low, high = effective_range.low, effective_range.high
    values = np.where(mask, depth, low).astype(np.float64)

    if log_scale:
        values = np.log(np.maximum(values, 0.0) + LOG_EPSILON)
        low = np.log(low + LOG_EPSILON)
        high = np.log(high + LOG_EPSILON)

    normalized = np.clip((values - low) / (high - low), 0.0, 1.0)
    score = 1.0 - normalized
    score[~mask] = 0.0
    return score.astype(np.float32)


__all__ = ["LOG_EPSILON", "normalize_depth"]
