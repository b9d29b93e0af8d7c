"""Optional post-processing stages applied between scaling and output.

Edge boost and local contrast act on the normalized score. Temporal
smoothing produces the working depth that every later stage consumes.
Motion highlighting acts on the colorized image.
"""

import logging

import cv2
import numpy as np

logger = logging.getLogger(__name__)

CLAHE_CLIP_LIMIT = 2.0
CLAHE_TILE_GRID = (8, 8)
MOTION_THRESHOLD = 0.15


def gradient_magnitude(depth: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude of the depth buffer, normalized to [0, 1].

    Invalid pixels are filled with 0 before differentiation and have zero
    gradient in the result.

    Args:
        depth: Depth buffer (H, W), meters.
        mask: Validity mask (H, W), bool.

    Returns:
        Normalized gradient (H, W), float32.
    """
    filled = np.where(mask, depth, 0.0).astype(np.float32)
    gx = cv2.Sobel(filled, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(filled, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(gx, gy)
    magnitude[~mask] = 0.0

    peak = float(magnitude.max()) if magnitude.size else 0.0
    if peak <= 0.0:
        return np.zeros_like(magnitude)
    return magnitude / peak


def edge_boost(
    score: np.ndarray,
    depth: np.ndarray,
    mask: np.ndarray,
    factor: float,
) -> np.ndarray:
    """Emphasize depth discontinuities by adding the normalized gradient.

    Args:
        score: Normalized score (H, W), float32 in [0, 1].
        depth: Working depth buffer (H, W).
        mask: Validity mask (H, W), bool.
        factor: Gradient weight (0..2).

    Returns:
        Boosted score (H, W), float32, clamped to 1 and zero at invalid pixels.
    """
    boosted = np.minimum(score + factor * gradient_magnitude(depth, mask), 1.0)
    boosted[~mask] = 0.0
    return boosted.astype(np.float32)


def local_contrast(score: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Tiled histogram equalization (CLAHE) of the 8-bit quantized score.

    Args:
        score: Normalized score (H, W), float32 in [0, 1].
        mask: Validity mask (H, W), bool.

    Returns:
        Equalized score (H, W), float32 in [0, 1], zero at invalid pixels.
    """
    quantized = np.clip(np.rint(score * 255.0), 0, 255).astype(np.uint8)
    clahe = cv2.createCLAHE(clipLimit=CLAHE_CLIP_LIMIT, tileGridSize=CLAHE_TILE_GRID)
    equalized = clahe.apply(quantized).astype(np.float32) / 255.0
    equalized[~mask] = 0.0
    return equalized


class TemporalSmoother:
    """Exponential moving average of the depth buffer across frames.

    State belongs to one batch run. Pixels valid in both the previous
    average and the current frame are blended; everywhere else the current
    value is taken as-is, so invalid pixels never leave stale depth behind.
    """

    def __init__(self, alpha: float):
        self.alpha = alpha
        self.ema: np.ndarray | None = None
        self._valid: np.ndarray | None = None

    def update(self, depth: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Fold one frame into the average.

        Args:
            depth: Current depth buffer (H, W).
            mask: Current validity mask (H, W), bool.

        Returns:
            Smoothed depth (H, W), float32. A copy owned by the caller.
        """
        depth = depth.astype(np.float32, copy=False)

        if self.ema is None or self.ema.shape != depth.shape:
            if self.ema is not None:
                logger.debug(
                    "Temporal smoothing: shape changed %s -> %s, resetting",
                    self.ema.shape,
                    depth.shape,
                )
            self.ema = depth.copy()
        else:
            both = mask & self._valid
            with np.errstate(invalid="ignore"):
                blended = self.alpha * depth + (1.0 - self.alpha) * self.ema
            self.ema = np.where(both, blended, depth).astype(np.float32)

        self._valid = mask.copy()
        return self.ema.copy()


class MotionHighlighter:
    """Whiten pixels whose working depth changed since the previous frame."""

    def __init__(self, gain: float):
        self.gain = gain
        self._previous: np.ndarray | None = None
        self._previous_mask: np.ndarray | None = None

    def motion_mask(self, depth: np.ndarray, mask: np.ndarray) -> np.ndarray | None:
        """Binary motion mask against the previous frame, then remember this one.

        Args:
            depth: Current working depth (H, W).
            mask: Current validity mask (H, W), bool.

        Returns:
            Boolean motion mask (H, W), or None when there is no prior frame
            of the same shape.
        """
        previous, previous_mask = self._previous, self._previous_mask
        self._previous = depth.astype(np.float32, copy=True)
        self._previous_mask = mask.copy()

        if previous is None or previous.shape != depth.shape:
            return None

        both = mask & previous_mask
        diff = np.zeros(depth.shape, dtype=np.float32)
        diff[both] = np.abs(depth[both] - previous[both])

        peak = float(diff.max())
        if peak <= 0.0:
            return np.zeros(depth.shape, dtype=bool)

        moving = ((diff / peak) > MOTION_THRESHOLD).astype(np.uint8)
        moving = cv2.dilate(moving, np.ones((3, 3), np.uint8), iterations=1)
        return (moving > 0) & mask

    def apply(self, image: np.ndarray, depth: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Blend moving pixels of a BGR image toward white.

        Args:
            image: Colorized heatmap (H, W, 3), uint8.
            depth: Current working depth (H, W).
            mask: Current validity mask (H, W), bool.

        Returns:
            Highlighted image (H, W, 3), uint8. The input is not modified.
        """
        moving = self.motion_mask(depth, mask)
        if moving is None:
            logger.debug("Motion highlight: no prior frame, skipped")
            return image

        result = image.copy()
        pixels = result[moving].astype(np.float32)
        pixels = pixels * (1.0 - self.gain) + 255.0 * self.gain
        result[moving] = np.clip(np.rint(pixels), 0, 255).astype(np.uint8)
        return result


__all__ = [
    "MotionHighlighter",
    "TemporalSmoother",
    "edge_boost",
    "gradient_magnitude",
    "local_contrast",
]
