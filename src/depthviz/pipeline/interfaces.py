"""Protocol interfaces for the camera decoding and persistence collaborators."""

from typing import Any, Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class FrameSource(Protocol):
    """Protocol for sequential, seekable access to recorded depth frames.

    A source is opened once, advanced with grab_next(), and queried for the
    buffers of the current frame. Implementations are used as context
    managers so that handles are released on every exit path.
    """

    def open(self, path: str) -> bool:
        """Open a recording. Returns False if it cannot be opened."""
        ...

    def grab_next(self) -> bool:
        """Advance to the next frame. Returns False at end of stream."""
        ...

    def retrieve_depth(self) -> np.ndarray | None:
        """Depth of the current frame, shape (H, W), float32 meters."""
        ...

    def retrieve_confidence(self) -> np.ndarray | None:
        """Confidence of the current frame, shape (H, W), 0-100, if available."""
        ...

    def retrieve_color_image(self) -> np.ndarray | None:
        """Reference color image of the current frame (H, W, 3) uint8, if available."""
        ...

    def seek(self, sequence_index: int) -> bool:
        """Position the source so the next grab_next() yields sequence_index."""
        ...

    def total_frame_count(self) -> int:
        """Number of frames in the recording."""
        ...

    def frame_rate(self) -> float:
        """Recording frame rate, or 0.0 if unknown."""
        ...

    def close(self) -> None:
        """Release the recording."""
        ...

    def __enter__(self):
        """Enter context manager."""
        ...

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager."""
        ...


@runtime_checkable
class Storage(Protocol):
    """Protocol for persisting and reloading per-frame artifacts.

    All artifacts are keyed by the frame's source sequence index.
    """

    def write_raw_depth(self, index: int, buffer: np.ndarray, fmt: str) -> None:
        """Persist a raw float depth buffer in the given format."""
        ...

    def read_raw_depth(self, index: int, fmt: str) -> np.ndarray | None:
        """Load a raw depth buffer, or None if no artifact exists in that format."""
        ...

    def write_heatmap(self, index: int, image: np.ndarray) -> None:
        """Persist (or overwrite) the rendered heatmap image."""
        ...

    def write_confidence_map(self, index: int, buffer: np.ndarray) -> None:
        """Persist a confidence buffer."""
        ...

    def read_confidence_map(self, index: int) -> np.ndarray | None:
        """Load a confidence buffer, or None."""
        ...

    def write_reference_image(self, index: int, image: np.ndarray) -> None:
        """Persist a reference color image."""
        ...

    def read_reference_image(self, index: int) -> np.ndarray | None:
        """Load a reference color image, or None."""
        ...

    def write_metadata(self, metadata: dict[str, Any]) -> None:
        """Persist a run summary."""
        ...
