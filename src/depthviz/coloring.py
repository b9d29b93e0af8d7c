"""Heatmap colorization and reference-image overlay compositing."""

import logging

import cv2
import numpy as np

from .config import Palette

logger = logging.getLogger(__name__)


def quantize_score(score: np.ndarray) -> np.ndarray:
    """Quantize a [0, 1] score to uint8 with rounding.

    Args:
        score: Normalized score (H, W), float.

    Returns:
        Quantized score (H, W), uint8.
    """
    return np.clip(np.rint(score * 255.0), 0, 255).astype(np.uint8)


def colorize(
    score: np.ndarray,
    mask: np.ndarray,
    palette: Palette,
) -> np.ndarray:
    """Apply a palette to the normalized score and black out invalid pixels.

    Args:
        score: Normalized score (H, W), float32 in [0, 1] (1 = near).
        mask: Validity mask (H, W), bool.
        palette: Heatmap palette.

    Returns:
        Heatmap (H, W, 3), uint8 BGR. Invalid pixels are (0, 0, 0).
    """
    heatmap = cv2.applyColorMap(quantize_score(score), palette.colormap)
    heatmap[~mask] = 0
    return heatmap


def to_bgr(image: np.ndarray) -> np.ndarray:
    """Convert a grayscale, BGR, or BGRA uint8 image to 3-channel BGR.

    Args:
        image: Image (H, W), (H, W, 1), (H, W, 3), or (H, W, 4).

    Returns:
        BGR image (H, W, 3), uint8.

    Raises:
        ValueError: If the channel count is not supported.
    """
    if image.ndim == 2 or (image.ndim == 3 and image.shape[2] == 1):
        return cv2.cvtColor(image.reshape(image.shape[:2]), cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.ndim == 3 and image.shape[2] == 3:
        return image
    raise ValueError(f"Unsupported reference image shape: {image.shape}")


def composite_overlay(
    heatmap: np.ndarray,
    reference: np.ndarray | None,
    strength: int,
) -> np.ndarray:
    """Alpha-blend the heatmap over the reference image.

    output = heatmap * a + reference * (1 - a), a = strength / 100, with
    saturating 8-bit arithmetic. A missing or size-incompatible reference
    leaves the heatmap unchanged.

    Args:
        heatmap: Heatmap (H, W, 3), uint8 BGR.
        reference: Reference image, or None.
        strength: Heatmap weight in percent (0..100).

    Returns:
        Composited image (H, W, 3), uint8 BGR.
    """
    if reference is None:
        return heatmap

    if reference.dtype != np.uint8 or reference.shape[:2] != heatmap.shape[:2]:
        logger.debug(
            "Overlay skipped: reference %s %s incompatible with heatmap %s",
            reference.shape,
            reference.dtype,
            heatmap.shape,
        )
        return heatmap

    try:
        reference = to_bgr(reference)
    except ValueError:
        logger.debug("Overlay skipped: reference shape %s", reference.shape)
        return heatmap

    alpha = strength / 100.0
    return cv2.addWeighted(heatmap, alpha, reference, 1.0 - alpha, 0.0)


__all__ = [
    "colorize",
    "composite_overlay",
    "quantize_score",
    "to_bgr",
]
