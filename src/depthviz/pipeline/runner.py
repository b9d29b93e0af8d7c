"""Batch runner: drives a frame source through the pipeline and exposes previews."""

import logging
import math
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from tqdm import tqdm

from ..config import DepthVizConfig, VisualizationConfig
from ..errors import FrameRetrievalError, SourceOpenError
from ..frame import DepthFrame, EffectiveRange
from ..metadata import DepthStatistics, build_run_metadata
from ..preview import PreviewState
from .context import RenderState
from .interfaces import FrameSource, Storage
from .render import RenderResult, render_depth_frame
from .rerender import ReRenderService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


class BatchStatus(str, Enum):
    """Terminal state of a batch run."""

    COMPLETED = "completed"
    FAILED = "failed"
    EMPTY = "empty"
    CANCELLED = "cancelled"


@dataclass
class BatchResult:
    """Outcome of process_batch().

    Attributes:
        status: Terminal state.
        message: Human-readable summary or failure reason.
        frames_rendered: Frames rendered and published.
        frames_failed: Frames skipped because retrieval or rendering failed.
        write_failures: Artifact writes that failed (frames still rendered).
        sequence_indices: Source positions of rendered frames, in order.
        statistics: Depth statistics over all rendered frames.
    """

    status: BatchStatus
    message: str = ""
    frames_rendered: int = 0
    frames_failed: int = 0
    write_failures: int = 0
    sequence_indices: list[int] = field(default_factory=list)
    statistics: DepthStatistics = field(default_factory=DepthStatistics)

    @property
    def success(self) -> bool:
        return self.status is BatchStatus.COMPLETED


class DepthVisualizer:
    """Depth heatmap extraction with live preview and re-rendering.

    Primary programmatic entry point. One thread calls process_batch();
    any number of other threads may poll the preview accessors or call
    cancel() concurrently.

    Example:
        visualizer = DepthVisualizer(DepthSequenceSource, DirectoryStorage(out))
        result = visualizer.process_batch(config)
        image, version = visualizer.get_latest_preview()

    Args:
        source_factory: Callable returning a fresh, unopened FrameSource.
            Called once per batch and once per source-backed re-render.
        storage: Artifact storage, or None to keep everything in memory.
    """

    def __init__(
        self,
        source_factory: Callable[[], FrameSource],
        storage: Storage | None = None,
    ):
        self.source_factory = source_factory
        self.storage = storage
        self.preview = PreviewState()
        self.rerender_service = ReRenderService(source_factory, storage, self.preview)

        self._state_lock = threading.Lock()
        self._running = threading.Event()
        self._cancel = threading.Event()

    # --- Control -----------------------------------------------------------

    def cancel(self) -> None:
        """Request cooperative cancellation at the next frame boundary."""
        self._cancel.set()

    def is_running(self) -> bool:
        return self._running.is_set()

    def process_batch(
        self,
        config: DepthVizConfig,
        progress_callback: ProgressCallback | None = None,
    ) -> BatchResult:
        """Render every sampled frame of the configured source.

        Args:
            config: Run configuration.
            progress_callback: Optional callable receiving (progress, message),
                progress in [0, 1]. Called from the batch thread.

        Returns:
            BatchResult. FAILED if the source cannot be opened or a batch is
            already running; EMPTY if no frame was rendered; CANCELLED if
            cancel() was called.
        """
        with self._state_lock:
            if self._running.is_set():
                return BatchResult(
                    status=BatchStatus.FAILED,
                    message="Batch already in progress",
                )
            self._running.set()
            self._cancel.clear()

        try:
            return self._run_batch(config, progress_callback)
        finally:
            self._running.clear()

    # --- Preview access ----------------------------------------------------

    def get_latest_preview(self) -> tuple[np.ndarray | None, int]:
        return self.preview.channel.latest()

    def get_latest_calibration(
        self,
    ) -> tuple[EffectiveRange | None, VisualizationConfig | None, int]:
        return self.preview.channel.latest_calibration()

    def get_stored_preview_count(self) -> int:
        return len(self.preview.store)

    def get_stored_preview_at(self, stored_index: int) -> np.ndarray:
        return self.preview.store.image_at(stored_index)

    def get_original_index_of(self, stored_index: int) -> int:
        return self.preview.store.sequence_index_of(stored_index)

    def rerender(
        self,
        stored_index: int,
        config: VisualizationConfig,
        overwrite: bool = False,
    ) -> np.ndarray:
        """Re-render one stored frame with a new configuration.

        See ReRenderService.rerender().
        """
        return self.rerender_service.rerender(stored_index, config, overwrite)

    # --- Batch internals ---------------------------------------------------

    def _run_batch(
        self,
        config: DepthVizConfig,
        progress_callback: ProgressCallback | None,
    ) -> BatchResult:
        viz = config.visualization
        sampling = config.sampling
        state = RenderState.for_config(viz)
        statistics = DepthStatistics()
        result = BatchResult(status=BatchStatus.COMPLETED, statistics=statistics)

        self.preview.store.clear()
        self.rerender_service.source_path = config.source_path
        self.rerender_service.raw_depth_format = config.storage.raw_depth_format

        _report(progress_callback, 0.0, "Opening source...")

        with self.source_factory() as source:
            try:
                stop, step = _prepare_source(source, config)
            except SourceOpenError as e:
                logger.error("%s", e)
                result.status = BatchStatus.FAILED
                result.message = str(e)
                return result

            start = sampling.frame_start
            expected = (
                max(0, math.ceil((stop - start) / step)) if stop is not None else None
            )
            logger.info(
                "Processing frames %d to %s (step %d)",
                start,
                stop if stop is not None else "end",
                step,
            )
            _report(progress_callback, 0.05, "Source opened")

            position = start
            cancelled = False
            with tqdm(
                total=expected,
                desc="Rendering frames",
                disable=config.runtime.quiet or not sys.stderr.isatty(),
                unit="frame",
            ) as progress_bar:
                while True:
                    if self._cancel.is_set():
                        cancelled = True
                        break
                    if stop is not None and position >= stop:
                        break
                    if not source.grab_next():
                        break

                    sequence_index = position
                    position += 1
                    if (sequence_index - start) % step != 0:
                        continue

                    try:
                        frame = self._retrieve_frame(source, sequence_index, config)
                        rendered = render_depth_frame(frame, viz, state)
                    except FrameRetrievalError as e:
                        logger.warning("Frame %d: %s, skipping", sequence_index, e)
                        result.frames_failed += 1
                        continue
                    except Exception:
                        logger.exception(
                            "Frame %d: rendering failed, skipping", sequence_index
                        )
                        result.frames_failed += 1
                        continue

                    statistics.update(frame.depth, rendered.mask)
                    result.write_failures += self._persist(frame, rendered, config)
                    self.preview.record(
                        rendered.image,
                        rendered.effective_range,
                        viz,
                        sequence_index,
                        frame.shape,
                    )
                    result.frames_rendered += 1
                    result.sequence_indices.append(sequence_index)
                    progress_bar.update(1)

                    progress = (
                        (position - start) / (stop - start) if stop is not None else 0.0
                    )
                    _report(
                        progress_callback,
                        0.05 + 0.95 * min(max(progress, 0.0), 1.0),
                        f"Rendered {result.frames_rendered} frames",
                    )

        if cancelled:
            result.status = BatchStatus.CANCELLED
            result.message = (
                f"Cancelled by user after {result.frames_rendered} frames"
            )
            logger.info(result.message)
        elif result.frames_rendered == 0:
            result.status = BatchStatus.EMPTY
            result.message = "No frames rendered; check the source and sampling range"
            logger.error(result.message)
        else:
            result.message = f"Rendered {result.frames_rendered} frames"
            logger.info(
                "Batch complete: %d rendered, %d failed, %d write failures",
                result.frames_rendered,
                result.frames_failed,
                result.write_failures,
            )
            _report(progress_callback, 1.0, "Depth extraction completed")

        self._write_metadata(config, result)
        return result

    def _retrieve_frame(
        self,
        source: FrameSource,
        sequence_index: int,
        config: DepthVizConfig,
    ) -> DepthFrame:
        """Read the current frame's buffers from the source.

        Raises:
            FrameRetrievalError: If the depth buffer is unavailable.
        """
        try:
            depth = source.retrieve_depth()
        except Exception as e:
            raise FrameRetrievalError(f"depth retrieval failed ({e})") from e
        if depth is None:
            raise FrameRetrievalError("no depth data")
        depth = np.asarray(depth, dtype=np.float32)
        if depth.ndim != 2:
            raise FrameRetrievalError(f"depth has unexpected shape {depth.shape}")

        confidence = _optional_buffer(
            source.retrieve_confidence, "confidence", sequence_index
        )
        if confidence is not None and confidence.shape != depth.shape:
            logger.warning(
                "Frame %d: confidence shape %s does not match depth %s, ignoring",
                sequence_index,
                confidence.shape,
                depth.shape,
            )
            confidence = None

        reference = None
        if config.visualization.overlay_enabled or config.storage.save_reference:
            reference = _optional_buffer(
                source.retrieve_color_image, "color image", sequence_index
            )

        return DepthFrame(
            depth=depth,
            sequence_index=sequence_index,
            confidence=confidence,
            reference=reference,
        )

    def _persist(
        self,
        frame: DepthFrame,
        rendered: RenderResult,
        config: DepthVizConfig,
    ) -> int:
        """Write enabled artifacts for one frame.

        Returns:
            Number of failed writes.
        """
        if self.storage is None:
            return 0

        storage = self.storage
        storage_config = config.storage
        index = frame.sequence_index
        writes = []
        if storage_config.save_heatmaps:
            writes.append(
                ("heatmap", lambda: storage.write_heatmap(index, rendered.image))
            )
        if storage_config.save_raw_depth:
            fmt = storage_config.raw_depth_format
            writes.append(
                ("raw depth", lambda: storage.write_raw_depth(index, frame.depth, fmt))
            )
        if storage_config.save_confidence and frame.confidence is not None:
            writes.append(
                (
                    "confidence",
                    lambda: storage.write_confidence_map(index, frame.confidence),
                )
            )
        if storage_config.save_reference and frame.reference is not None:
            writes.append(
                (
                    "reference",
                    lambda: storage.write_reference_image(index, frame.reference),
                )
            )

        failures = 0
        for name, write in writes:
            try:
                write()
            except (OSError, ValueError) as e:
                logger.warning("Frame %d: failed to write %s: %s", index, name, e)
                failures += 1
        return failures

    def _write_metadata(self, config: DepthVizConfig, result: BatchResult) -> None:
        if self.storage is None or result.frames_rendered == 0:
            return
        metadata = build_run_metadata(
            config,
            result.status.value,
            result.frames_rendered,
            result.frames_failed,
            result.statistics,
            result.sequence_indices,
        )
        try:
            self.storage.write_metadata(metadata)
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Failed to write run metadata: %s", e)


def _prepare_source(
    source: FrameSource, config: DepthVizConfig
) -> tuple[int | None, int]:
    """Open the source and position it at frame_start.

    Returns:
        Tuple of (stop, step): exclusive stop index (None if the length is
        unknown and unbounded) and the resolved frame step.

    Raises:
        SourceOpenError: If the source cannot be opened or positioned.
    """
    sampling = config.sampling
    if not source.open(config.source_path):
        raise SourceOpenError(f"Failed to open source: {config.source_path}")

    total = source.total_frame_count()
    step = sampling.effective_step(source.frame_rate())
    stop = sampling.frame_stop
    if total > 0:
        stop = total if stop is None else min(stop, total)

    start = sampling.frame_start
    if start > 0 and not source.seek(start):
        raise SourceOpenError(f"Cannot seek to frame {start}")
    return stop, step


def _report(callback: ProgressCallback | None, progress: float, message: str) -> None:
    if callback is not None:
        callback(progress, message)


def _optional_buffer(
    retrieve: Callable[[], np.ndarray | None],
    name: str,
    sequence_index: int,
) -> np.ndarray | None:
    """Best-effort retrieval of an auxiliary buffer."""
    try:
        buffer = retrieve()
    except Exception:
        logger.warning(
            "Frame %d: %s retrieval failed", sequence_index, name, exc_info=True
        )
        return None
    return None if buffer is None else np.asarray(buffer)
