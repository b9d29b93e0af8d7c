"""Shared pytest fixtures for depthviz tests."""

from collections.abc import Callable

import numpy as np
import pytest

from depthviz.config import DepthVizConfig, VisualizationConfig


class FakeFrameSource:
    """In-memory FrameSource over a list of frame dicts.

    Each frame is a dict with a ``depth`` array and optional ``confidence``
    and ``color`` arrays. A frame dict with ``"raise": True`` makes
    retrieve_depth() raise.

    Args:
        frames: Frame dicts in sequence order.
        fps: Value reported by frame_rate().
        open_ok: Whether open() succeeds.
        on_grab: Optional callable invoked with the new position after every
            successful grab_next().
    """

    def __init__(
        self,
        frames: list[dict],
        fps: float = 0.0,
        open_ok: bool = True,
        on_grab: Callable[[int], None] | None = None,
    ):
        self.frames = frames
        self.fps = fps
        self.open_ok = open_ok
        self.on_grab = on_grab
        self.position = -1
        self.opened_path: str | None = None
        self.closed = False
        self.seeks: list[int] = []

    def open(self, path: str) -> bool:
        self.opened_path = path
        return self.open_ok

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def total_frame_count(self) -> int:
        return len(self.frames)

    def frame_rate(self) -> float:
        return self.fps

    def seek(self, sequence_index: int) -> bool:
        self.seeks.append(sequence_index)
        if not 0 <= sequence_index < len(self.frames):
            return False
        self.position = sequence_index - 1
        return True

    def grab_next(self) -> bool:
        if self.position + 1 >= len(self.frames):
            return False
        self.position += 1
        if self.on_grab is not None:
            self.on_grab(self.position)
        return True

    def _current(self) -> dict:
        return self.frames[self.position]

    def retrieve_depth(self):
        frame = self._current()
        if frame.get("raise"):
            raise RuntimeError("decoder error")
        return frame.get("depth")

    def retrieve_confidence(self):
        return self._current().get("confidence")

    def retrieve_color_image(self):
        return self._current().get("color")


class MemoryStorage:
    """Dict-backed Storage.

    Args:
        fail_heatmaps: Make write_heatmap() raise OSError.
    """

    def __init__(self, fail_heatmaps: bool = False):
        self.fail_heatmaps = fail_heatmaps
        self.raw_depth: dict[tuple[int, str], np.ndarray] = {}
        self.heatmaps: dict[int, np.ndarray] = {}
        self.confidence: dict[int, np.ndarray] = {}
        self.reference: dict[int, np.ndarray] = {}
        self.metadata: dict | None = None

    def write_raw_depth(self, index, buffer, fmt):
        self.raw_depth[(index, fmt)] = buffer.copy()

    def read_raw_depth(self, index, fmt):
        return self.raw_depth.get((index, fmt))

    def write_heatmap(self, index, image):
        if self.fail_heatmaps:
            raise OSError("disk full")
        self.heatmaps[index] = image.copy()

    def write_confidence_map(self, index, buffer):
        self.confidence[index] = buffer.copy()

    def read_confidence_map(self, index):
        return self.confidence.get(index)

    def write_reference_image(self, index, image):
        self.reference[index] = image.copy()

    def read_reference_image(self, index):
        return self.reference.get(index)

    def write_metadata(self, metadata):
        self.metadata = metadata


def make_frame_dict(
    index: int,
    shape: tuple[int, int] = (48, 64),
    base: float = 20.0,
    with_color: bool = True,
) -> dict:
    """Synthetic frame: a horizontal depth ramp shifted by the frame index."""
    height, width = shape
    ramp = np.linspace(base - 5.0, base + 5.0, width, dtype=np.float32)
    depth = np.tile(ramp, (height, 1)) + 0.1 * index
    frame = {
        "depth": depth.astype(np.float32),
        "confidence": np.full(shape, 10, dtype=np.uint8),
    }
    if with_color:
        frame["color"] = np.full((height, width, 3), 128, dtype=np.uint8)
    return frame


@pytest.fixture
def make_source():
    """The FakeFrameSource class, for tests that need custom sources."""
    return FakeFrameSource


@pytest.fixture
def make_frame():
    """The synthetic frame builder."""
    return make_frame_dict


@pytest.fixture
def frames() -> list[dict]:
    """Ten synthetic 48x64 frames."""
    return [make_frame_dict(i) for i in range(10)]


@pytest.fixture
def source_factory(frames):
    """Factory producing FakeFrameSources over ``frames``; records instances."""

    created: list[FakeFrameSource] = []

    def factory() -> FakeFrameSource:
        source = FakeFrameSource(frames)
        created.append(source)
        return source

    factory.created = created
    return factory


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def make_storage():
    """The MemoryStorage class, for tests that need failing storage."""
    return MemoryStorage


@pytest.fixture
def run_config() -> DepthVizConfig:
    """Config with a small preview width and the default distance range."""
    return DepthVizConfig(
        source_path="memory://capture",
        visualization=VisualizationConfig(preview_max_width=32),
    )
