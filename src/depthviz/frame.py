"""Frame-level data containers shared by all pipeline stages."""

from dataclasses import dataclass, field

import numpy as np


@dataclass(frozen=True)
class DepthFrame:
    """One source frame of depth measurements.

    Never mutated after creation; use clone() to obtain an independent copy.

    Attributes:
        depth: Distance to camera in meters, shape (H, W), float32.
            Zero, negative, and non-finite values mark invalid pixels.
        sequence_index: Position of the frame in the original source.
        confidence: Optional per-pixel confidence, shape (H, W), integers
            0-100 (0 = most reliable).
        reference: Optional reference color image, shape (H, W, 3), uint8 BGR.
    """

    depth: np.ndarray
    sequence_index: int
    confidence: np.ndarray | None = None
    reference: np.ndarray | None = None

    def __post_init__(self):
        depth = np.asarray(self.depth, dtype=np.float32)
        if depth.ndim != 2:
            raise ValueError(f"depth must be 2D (H, W), got shape {depth.shape}")
        object.__setattr__(self, "depth", depth)

        if self.confidence is not None:
            confidence = np.asarray(self.confidence)
            if confidence.shape != depth.shape:
                raise ValueError(
                    f"confidence shape {confidence.shape} does not match "
                    f"depth shape {depth.shape}"
                )
            object.__setattr__(self, "confidence", confidence)

        if self.reference is not None:
            reference = np.asarray(self.reference)
            if reference.ndim not in (2, 3):
                raise ValueError(
                    f"reference must be (H, W) or (H, W, C), got {reference.shape}"
                )
            object.__setattr__(self, "reference", reference)

    @property
    def height(self) -> int:
        return self.depth.shape[0]

    @property
    def width(self) -> int:
        return self.depth.shape[1]

    @property
    def shape(self) -> tuple[int, int]:
        return self.depth.shape

    def clone(self) -> "DepthFrame":
        """Deep copy of all buffers."""
        return DepthFrame(
            depth=self.depth.copy(),
            sequence_index=self.sequence_index,
            confidence=None if self.confidence is None else self.confidence.copy(),
            reference=None if self.reference is None else self.reference.copy(),
        )


@dataclass(frozen=True)
class EffectiveRange:
    """Distance band actually used to map depths to colors for one frame.

    Attributes:
        low: Near bound (meters).
        high: Far bound (meters).
        auto: True when the band came from percentile auto-contrast.
    """

    low: float
    high: float
    auto: bool = False

    def __post_init__(self):
        if not self.low < self.high:
            raise ValueError(
                f"EffectiveRange requires low < high, got ({self.low}, {self.high})"
            )

    @property
    def span(self) -> float:
        return self.high - self.low


@dataclass(frozen=True)
class RenderedPreview:
    """A rendered heatmap plus the calibration that produced it.

    Attributes:
        image: 8-bit BGR image, shape (h, w, 3). May be downscaled.
        effective_range: Range used for color mapping.
        sequence_index: Source position of the originating frame.
        source_shape: (H, W) of the originating depth buffer.
    """

    image: np.ndarray
    effective_range: EffectiveRange
    sequence_index: int
    source_shape: tuple[int, int] = field(default=(0, 0))
