"""Thread-safe preview history and latest-frame publication.

PreviewStore and LivePreviewChannel are the only state shared between the
batch producer and UI readers. Both accept an external lock so that one
lock can cover every store mutation together with the publish that follows
it (see :class:`PreviewState`).
"""

import logging
import threading
from dataclasses import dataclass

import cv2
import numpy as np

from .config import VisualizationConfig
from .frame import EffectiveRange, RenderedPreview

logger = logging.getLogger(__name__)


def downscale_to_width(image: np.ndarray, max_width: int) -> np.ndarray:
    """Shrink an image to at most max_width, preserving aspect ratio.

    Images already narrow enough are returned as a copy at full size.

    Args:
        image: Image (H, W, C), uint8.
        max_width: Maximum output width (pixels).

    Returns:
        Downscaled copy.
    """
    height, width = image.shape[:2]
    if width <= max_width:
        return image.copy()
    new_height = max(1, round(height * max_width / width))
    return cv2.resize(image, (max_width, new_height), interpolation=cv2.INTER_AREA)


class PreviewStore:
    """Ordered history of rendered previews for navigation.

    Entries are indexed 0..N-1 by insertion order. A parallel list keeps the
    source sequence index of every entry.
    """

    def __init__(self, lock: "threading.RLock | None" = None):
        self._lock = lock if lock is not None else threading.RLock()
        self._entries: list[RenderedPreview] = []
        self._sequence_indices: list[int] = []

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._sequence_indices.clear()

    def append(self, preview: RenderedPreview) -> int:
        """Add a preview at the end of the history.

        Args:
            preview: Preview to store. Its image is copied.

        Returns:
            Stored index of the new entry.
        """
        entry = _frozen_copy(preview)
        with self._lock:
            self._entries.append(entry)
            self._sequence_indices.append(preview.sequence_index)
            return len(self._entries) - 1

    def replace(self, stored_index: int, preview: RenderedPreview) -> None:
        """Overwrite an existing entry in place.

        Args:
            stored_index: Index of the entry to replace.
            preview: Replacement; must carry the same sequence index.

        Raises:
            IndexError: If stored_index is out of range.
            ValueError: If the sequence index differs from the stored one.
        """
        entry = _frozen_copy(preview)
        with self._lock:
            self._check_index(stored_index)
            if self._sequence_indices[stored_index] != preview.sequence_index:
                raise ValueError(
                    f"Stored entry {stored_index} belongs to frame "
                    f"{self._sequence_indices[stored_index]}, "
                    f"not {preview.sequence_index}"
                )
            self._entries[stored_index] = entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def entry(self, stored_index: int) -> RenderedPreview:
        """Stored preview at an index (image is read-only)."""
        with self._lock:
            self._check_index(stored_index)
            return self._entries[stored_index]

    def image_at(self, stored_index: int) -> np.ndarray:
        """Writable copy of the stored image at an index."""
        with self._lock:
            self._check_index(stored_index)
            return self._entries[stored_index].image.copy()

    def sequence_index_of(self, stored_index: int) -> int:
        with self._lock:
            self._check_index(stored_index)
            return self._sequence_indices[stored_index]

    def _check_index(self, stored_index: int) -> None:
        if not 0 <= stored_index < len(self._entries):
            raise IndexError(
                f"Stored preview index {stored_index} out of range "
                f"(0..{len(self._entries) - 1})"
            )


@dataclass(frozen=True)
class _Slot:
    image: np.ndarray
    effective_range: EffectiveRange
    config: VisualizationConfig
    sequence_index: int


class LivePreviewChannel:
    """Single-slot publication of the most recent rendered frame.

    The version counter starts at 0 and increases by exactly one per
    publish. Readers never block on the producer beyond the copy and always
    see a complete (image, range, version) triple.
    """

    def __init__(self, lock: "threading.RLock | None" = None):
        self._lock = lock if lock is not None else threading.RLock()
        self._slot: _Slot | None = None
        self._version = 0

    def publish(
        self,
        image: np.ndarray,
        effective_range: EffectiveRange,
        config: VisualizationConfig,
        sequence_index: int,
    ) -> int:
        """Swap in a new frame.

        Args:
            image: Rendered image (H, W, 3), uint8. Copied inside the lock.
            effective_range: Range used for this frame.
            config: Configuration that produced it.
            sequence_index: Source position of the frame.

        Returns:
            The new version number.
        """
        with self._lock:
            frozen = image.copy()
            frozen.flags.writeable = False
            self._slot = _Slot(frozen, effective_range, config, sequence_index)
            self._version += 1
            return self._version

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def latest(self) -> tuple[np.ndarray | None, int]:
        """Copy of the latest image and its version (None, 0 before any publish)."""
        with self._lock:
            if self._slot is None:
                return None, self._version
            return self._slot.image.copy(), self._version

    def latest_calibration(
        self,
    ) -> tuple[EffectiveRange | None, VisualizationConfig | None, int]:
        """Range and config of the latest frame with its version."""
        with self._lock:
            if self._slot is None:
                return None, None, self._version
            return self._slot.effective_range, self._slot.config, self._version

    def latest_sequence_index(self) -> int | None:
        with self._lock:
            return None if self._slot is None else self._slot.sequence_index


class PreviewState:
    """PreviewStore and LivePreviewChannel sharing one lock.

    Every store mutation and every publish goes through this lock, so a
    re-render that replaces a stored entry while a batch is appending can
    never interleave with the batch's own writes.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.store = PreviewStore(self.lock)
        self.channel = LivePreviewChannel(self.lock)

    def record(
        self,
        image: np.ndarray,
        effective_range: EffectiveRange,
        config: VisualizationConfig,
        sequence_index: int,
        source_shape: tuple[int, int],
    ) -> int | None:
        """Publish a batch frame and, if enabled, append its preview.

        Returns:
            Stored index of the appended preview, or None if not stored.
        """
        with self.lock:
            stored_index = None
            if config.store_previews:
                preview = RenderedPreview(
                    image=downscale_to_width(image, config.preview_max_width),
                    effective_range=effective_range,
                    sequence_index=sequence_index,
                    source_shape=source_shape,
                )
                stored_index = self.store.append(preview)
            self.channel.publish(image, effective_range, config, sequence_index)
            return stored_index

    def replace(
        self,
        stored_index: int,
        sequence_index: int,
        image: np.ndarray,
        effective_range: EffectiveRange,
        config: VisualizationConfig,
        source_shape: tuple[int, int],
    ) -> None:
        """Replace a stored entry and publish the new rendering atomically.

        Args:
            stored_index: Index of the entry to replace.
            sequence_index: Source position the rendering was made from.
                Must still be the one stored at stored_index.
            image: Full-resolution rendering (H, W, 3), uint8.
            effective_range: Range used for the rendering.
            config: Configuration that produced it.
            source_shape: Shape of the source depth buffer.

        Raises:
            IndexError: If stored_index is out of range.
            ValueError: If the entry now belongs to another frame. Nothing
                is stored or published in that case.
        """
        with self.lock:
            preview = RenderedPreview(
                image=downscale_to_width(image, config.preview_max_width),
                effective_range=effective_range,
                sequence_index=sequence_index,
                source_shape=source_shape,
            )
            self.store.replace(stored_index, preview)
            self.channel.publish(image, effective_range, config, sequence_index)


def _frozen_copy(preview: RenderedPreview) -> RenderedPreview:
    image = preview.image.copy()
    image.flags.writeable = False
    return RenderedPreview(
        image=image,
        effective_range=preview.effective_range,
        sequence_index=preview.sequence_index,
        source_shape=preview.source_shape,
    )


__all__ = [
    "LivePreviewChannel",
    "PreviewState",
    "PreviewStore",
    "downscale_to_width",
]
