"""Directory-backed frame source and artifact storage."""

import json
import logging
from pathlib import Path
from typing import Any

import cv2
import numpy as np

from .config import VALID_RAW_DEPTH_FORMATS

logger = logging.getLogger(__name__)

RAW_DEPTH_SUFFIXES = {"npy": ".npy", "npz": ".npz", "tiff": ".tiff"}


def frame_stem(index: int) -> str:
    """Artifact file stem for a sequence index."""
    return f"frame_{index:06d}"


class DepthSequenceSource:
    """FrameSource over a directory of per-frame ``.npz`` captures.

    Each file holds a ``depth`` array (H, W) and optionally ``confidence``
    (H, W) and ``color`` (H, W, 3) arrays. Frames are ordered by filename;
    the sequence index of a frame is its position in that order.

    Args:
        fps: Recording frame rate reported by frame_rate() (0 = unknown).
    """

    def __init__(self, fps: float = 0.0):
        self.fps = fps
        self.frame_files: list[Path] = []
        self._position = -1
        self._current: dict[str, np.ndarray] | None = None
        self._is_open = False

    def open(self, path: str) -> bool:
        directory = Path(path)
        if not directory.is_dir():
            logger.error("Depth sequence directory does not exist: %s", directory)
            return False

        self.frame_files = sorted(directory.glob("*.npz"), key=lambda p: p.name)
        if not self.frame_files:
            logger.error("No .npz frames found in %s", directory)
            return False

        self._position = -1
        self._current = None
        self._is_open = True
        logger.info(
            "Opened depth sequence %s (%d frames)", directory, len(self.frame_files)
        )
        return True

    def close(self) -> None:
        self._current = None
        self._is_open = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def total_frame_count(self) -> int:
        return len(self.frame_files)

    def frame_rate(self) -> float:
        return self.fps

    def seek(self, sequence_index: int) -> bool:
        if not self._is_open or not 0 <= sequence_index < len(self.frame_files):
            return False
        self._position = sequence_index - 1
        self._current = None
        return True

    def grab_next(self) -> bool:
        if not self._is_open or self._position + 1 >= len(self.frame_files):
            return False
        self._position += 1

        frame_path = self.frame_files[self._position]
        try:
            with np.load(frame_path) as data:
                self._current = {key: data[key] for key in data.files}
        except (OSError, ValueError):
            logger.warning("Failed to read frame file: %s", frame_path)
            self._current = None
        return True

    def retrieve_depth(self) -> np.ndarray | None:
        if self._current is None or "depth" not in self._current:
            return None
        return self._current["depth"].astype(np.float32, copy=False)

    def retrieve_confidence(self) -> np.ndarray | None:
        if self._current is None:
            return None
        return self._current.get("confidence")

    def retrieve_color_image(self) -> np.ndarray | None:
        if self._current is None:
            return None
        return self._current.get("color")


class DirectoryStorage:
    """Storage writing per-frame artifacts under one output directory.

    Layout::

        output_dir/depth/frame_000042.{npy,npz,tiff}
        output_dir/heatmaps/frame_000042.png
        output_dir/confidence/frame_000042.png
        output_dir/reference/frame_000042.png
        output_dir/metadata.json
    """

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)
        self.depth_dir = self.output_dir / "depth"
        self.heatmap_dir = self.output_dir / "heatmaps"
        self.confidence_dir = self.output_dir / "confidence"
        self.reference_dir = self.output_dir / "reference"

    def raw_depth_path(self, index: int, fmt: str) -> Path:
        if fmt not in RAW_DEPTH_SUFFIXES:
            raise ValueError(
                f"Invalid raw depth format: {fmt!r}. "
                f"Valid formats: {VALID_RAW_DEPTH_FORMATS}"
            )
        return self.depth_dir / f"{frame_stem(index)}{RAW_DEPTH_SUFFIXES[fmt]}"

    def heatmap_path(self, index: int) -> Path:
        return self.heatmap_dir / f"{frame_stem(index)}.png"

    def write_raw_depth(self, index: int, buffer: np.ndarray, fmt: str) -> None:
        path = self.raw_depth_path(index, fmt)
        path.parent.mkdir(parents=True, exist_ok=True)
        buffer = buffer.astype(np.float32, copy=False)

        if fmt == "npy":
            np.save(path, buffer)
        elif fmt == "npz":
            np.savez_compressed(path, depth=buffer)
        else:
            _imwrite(path, buffer)

    def read_raw_depth(self, index: int, fmt: str) -> np.ndarray | None:
        path = self.raw_depth_path(index, fmt)
        if not path.exists():
            return None

        if fmt == "npy":
            depth = np.load(path)
        elif fmt == "npz":
            with np.load(path) as data:
                depth = data["depth"]
        else:
            depth = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
            if depth is None:
                logger.warning("Failed to decode raw depth artifact %s", path)
                return None
        return depth.astype(np.float32, copy=False)

    def write_heatmap(self, index: int, image: np.ndarray) -> None:
        _imwrite(self.heatmap_path(index), image)

    def write_confidence_map(self, index: int, buffer: np.ndarray) -> None:
        confidence = np.clip(buffer, 0, 100).astype(np.uint8)
        _imwrite(self.confidence_dir / f"{frame_stem(index)}.png", confidence)

    def read_confidence_map(self, index: int) -> np.ndarray | None:
        path = self.confidence_dir / f"{frame_stem(index)}.png"
        return _imread(path, cv2.IMREAD_GRAYSCALE)

    def write_reference_image(self, index: int, image: np.ndarray) -> None:
        _imwrite(self.reference_dir / f"{frame_stem(index)}.png", image)

    def read_reference_image(self, index: int) -> np.ndarray | None:
        path = self.reference_dir / f"{frame_stem(index)}.png"
        return _imread(path, cv2.IMREAD_COLOR)

    def write_metadata(self, metadata: dict[str, Any]) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        with open(self.output_dir / "metadata.json", "w") as f:
            json.dump(metadata, f, indent=2)


def _imwrite(path: Path, image: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), image):
        raise OSError(f"Failed to write image: {path}")


def _imread(path: Path, flags: int) -> np.ndarray | None:
    if not path.exists():
        return None
    image = cv2.imread(str(path), flags)
    if image is None:
        logger.warning("Failed to decode image artifact %s", path)
    return image
