"""Re-rendering of a single stored frame with a new configuration."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import numpy as np

from ..config import VALID_RAW_DEPTH_FORMATS, VisualizationConfig
from ..errors import ReRenderError
from ..frame import DepthFrame
from ..preview import PreviewState
from .interfaces import FrameSource, Storage
from .render import render_depth_frame

logger = logging.getLogger(__name__)


class ReRenderState(str, Enum):
    """Phase of the re-render state machine."""

    IDLE = "idle"
    LOADING = "loading"
    RECONSTRUCTING = "reconstructing"
    RENDERING = "rendering"
    PUBLISHING = "publishing"


@dataclass
class _LoadedBuffers:
    depth: np.ndarray | None = None
    confidence: np.ndarray | None = None
    reference: np.ndarray | None = None
    origin: str = "storage"


class ReRenderService:
    """Rebuilds one historical frame and runs it through the pipeline again.

    Inputs come from persisted artifacts when available, otherwise from a
    FrameSource acquired for the duration of the call and released on every
    exit path. Temporal smoothing and motion highlighting are always off:
    a single frame has no neighbor context.

    Args:
        source_factory: Callable returning a fresh, unopened FrameSource, or
            None if only persisted artifacts may be used.
        storage: Artifact storage, or None.
        preview: Shared preview state to update on success.
        source_path: Path to open on the FrameSource.
        raw_depth_format: Raw depth format to try first.
    """

    def __init__(
        self,
        source_factory: Callable[[], FrameSource] | None,
        storage: Storage | None,
        preview: PreviewState,
        source_path: str = "",
        raw_depth_format: str = "npy",
    ):
        self.source_factory = source_factory
        self.storage = storage
        self.preview = preview
        self.source_path = source_path
        self.raw_depth_format = raw_depth_format
        self._state = ReRenderState.IDLE
        self._state_lock = threading.Lock()

    @property
    def state(self) -> ReRenderState:
        with self._state_lock:
            return self._state

    def _enter(self, state: ReRenderState) -> None:
        with self._state_lock:
            self._state = state
        logger.debug("Re-render: %s", state.value)

    def rerender(
        self,
        stored_index: int,
        config: VisualizationConfig,
        overwrite: bool = False,
    ) -> np.ndarray:
        """Re-render the stored frame at stored_index.

        Args:
            stored_index: Index into the PreviewStore.
            config: New visualization configuration.
            overwrite: Also replace the persisted heatmap artifact.

        Returns:
            Full-resolution rendered image (H, W, 3), uint8 BGR.

        Raises:
            IndexError: If stored_index is not in the PreviewStore.
            ReRenderError: If the frame cannot be reconstructed, the stored
                entry changed to another frame meanwhile, or the
                overwrite fails. Shared preview state is left untouched.
        """
        entry = self.preview.store.entry(stored_index)
        sequence_index = entry.sequence_index
        config = config.for_single_frame()

        try:
            self._enter(ReRenderState.LOADING)
            buffers = self._load(sequence_index, config)

            self._enter(ReRenderState.RECONSTRUCTING)
            frame = self._reconstruct(buffers, sequence_index, entry.source_shape)

            self._enter(ReRenderState.RENDERING)
            result = render_depth_frame(frame, config, state=None)

            self._enter(ReRenderState.PUBLISHING)
            # A batch may have cleared and refilled the store since the entry
            # was read. Hold the lock until the replacement is published.
            with self.preview.lock:
                self._check_still_stored(stored_index, sequence_index)
                if overwrite:
                    self._overwrite(sequence_index, result.image)
                self.preview.replace(
                    stored_index,
                    sequence_index,
                    result.image,
                    result.effective_range,
                    config,
                    frame.shape,
                )
        finally:
            self._enter(ReRenderState.IDLE)

        logger.info(
            "Re-rendered stored frame %d (sequence %d) from %s",
            stored_index,
            sequence_index,
            buffers.origin,
        )
        return result.image

    def _load(self, sequence_index: int, config: VisualizationConfig) -> _LoadedBuffers:
        buffers = self._load_from_storage(sequence_index, config)

        needs_source = buffers.depth is None or (
            config.overlay_enabled and buffers.reference is None
        )
        if not needs_source:
            return buffers

        try:
            from_source = self._load_from_source(sequence_index, config)
        except ReRenderError:
            if buffers.depth is None:
                raise
            logger.warning(
                "Frame %d: source unavailable, re-rendering cached depth "
                "without reference image",
                sequence_index,
            )
            return buffers

        # Prefer the persisted depth; it is exactly what the batch rendered.
        if buffers.depth is not None:
            from_source.depth = buffers.depth
            if buffers.confidence is not None:
                from_source.confidence = buffers.confidence
        return from_source

    def _load_from_storage(
        self, sequence_index: int, config: VisualizationConfig
    ) -> _LoadedBuffers:
        buffers = _LoadedBuffers(origin="storage")
        if self.storage is None:
            return buffers

        formats = [self.raw_depth_format] + [
            fmt for fmt in VALID_RAW_DEPTH_FORMATS if fmt != self.raw_depth_format
        ]
        for fmt in formats:
            try:
                buffers.depth = self.storage.read_raw_depth(sequence_index, fmt)
            except (OSError, ValueError) as e:
                logger.warning(
                    "Frame %d: unreadable %s depth artifact: %s", sequence_index, fmt, e
                )
                continue
            if buffers.depth is not None:
                break

        try:
            buffers.confidence = self.storage.read_confidence_map(sequence_index)
            if config.overlay_enabled:
                buffers.reference = self.storage.read_reference_image(sequence_index)
        except (OSError, ValueError) as e:
            logger.warning("Frame %d: unreadable cached artifact: %s", sequence_index, e)

        return buffers

    def _load_from_source(
        self, sequence_index: int, config: VisualizationConfig
    ) -> _LoadedBuffers:
        if self.source_factory is None:
            raise ReRenderError(
                f"Frame {sequence_index}: no persisted depth and no frame source"
            )

        with self.source_factory() as source:
            if not source.open(self.source_path):
                raise ReRenderError(f"Cannot open source: {self.source_path}")
            if not source.seek(sequence_index) or not source.grab_next():
                raise ReRenderError(f"Cannot seek source to frame {sequence_index}")

            try:
                depth = source.retrieve_depth()
                confidence = source.retrieve_confidence()
                reference = (
                    source.retrieve_color_image() if config.overlay_enabled else None
                )
            except Exception as e:
                raise ReRenderError(
                    f"Frame {sequence_index}: source retrieval failed ({e})"
                ) from e

        return _LoadedBuffers(
            depth=depth,
            confidence=confidence,
            reference=reference,
            origin="source",
        )

    def _reconstruct(
        self,
        buffers: _LoadedBuffers,
        sequence_index: int,
        source_shape: tuple[int, int],
    ) -> DepthFrame:
        if buffers.depth is None:
            raise ReRenderError(f"Frame {sequence_index}: no depth data available")

        depth = np.asarray(buffers.depth, dtype=np.float32)
        expected = tuple(source_shape)
        if depth.ndim != 2 or (expected != (0, 0) and depth.shape != expected):
            raise ReRenderError(
                f"Frame {sequence_index}: reconstructed depth shape {depth.shape} "
                f"does not match original {expected}"
            )

        confidence = buffers.confidence
        if confidence is not None and np.shape(confidence) != depth.shape:
            logger.debug(
                "Frame %d: dropping confidence with shape %s",
                sequence_index,
                np.shape(confidence),
            )
            confidence = None

        reference = buffers.reference
        if reference is not None and np.shape(reference)[:2] != depth.shape:
            logger.debug(
                "Frame %d: dropping reference with shape %s",
                sequence_index,
                np.shape(reference),
            )
            reference = None

        try:
            return DepthFrame(
                depth=depth,
                sequence_index=sequence_index,
                confidence=confidence,
                reference=reference,
            )
        except ValueError as e:
            raise ReRenderError(f"Frame {sequence_index}: {e}") from e

    def _check_still_stored(self, stored_index: int, sequence_index: int) -> None:
        store = self.preview.store
        if stored_index >= len(store):
            raise ReRenderError(
                f"Stored frame {stored_index} was removed while re-rendering"
            )
        current = store.sequence_index_of(stored_index)
        if current != sequence_index:
            raise ReRenderError(
                f"Stored frame {stored_index} now holds sequence {current}, "
                f"not {sequence_index}"
            )

    def _overwrite(self, sequence_index: int, image: np.ndarray) -> None:
        if self.storage is None:
            raise ReRenderError("Overwrite requested but no storage is configured")
        try:
            self.storage.write_heatmap(sequence_index, image)
        except (OSError, ValueError) as e:
            raise ReRenderError(
                f"Frame {sequence_index}: failed to overwrite heatmap ({e})"
            ) from e
