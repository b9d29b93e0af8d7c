"""Tests for the directory frame source and artifact storage."""

import json
from pathlib import Path

import cv2
import numpy as np
import pytest

from depthviz.io import DepthSequenceSource, DirectoryStorage, frame_stem
from depthviz.pipeline.interfaces import FrameSource, Storage


def _write_sequence(directory: Path, n_frames: int, shape=(12, 16)) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for i in range(n_frames):
        np.savez(
            directory / f"capture_{i:04d}.npz",
            depth=np.full(shape, 10.0 + i, dtype=np.float32),
            confidence=np.full(shape, i, dtype=np.uint8),
            color=np.full((*shape, 3), i, dtype=np.uint8),
        )


def test_frame_stem():
    assert frame_stem(42) == "frame_000042"


class TestDepthSequenceSource:
    def test_satisfies_protocol(self):
        assert isinstance(DepthSequenceSource(), FrameSource)

    def test_sequential_read(self, tmp_path: Path):
        _write_sequence(tmp_path / "seq", 3)

        with DepthSequenceSource(fps=15.0) as source:
            assert source.open(str(tmp_path / "seq"))
            assert source.total_frame_count() == 3
            assert source.frame_rate() == 15.0

            values = []
            while source.grab_next():
                depth = source.retrieve_depth()
                assert depth.dtype == np.float32
                values.append(float(depth[0, 0]))
                assert source.retrieve_confidence().shape == (12, 16)
                assert source.retrieve_color_image().shape == (12, 16, 3)

        assert values == [10.0, 11.0, 12.0]

    def test_seek(self, tmp_path: Path):
        _write_sequence(tmp_path / "seq", 5)
        source = DepthSequenceSource()
        assert source.open(str(tmp_path / "seq"))

        assert source.seek(3)
        assert source.grab_next()
        assert source.retrieve_depth()[0, 0] == 13.0
        assert not source.seek(5)
        assert not source.seek(-1)

    def test_open_missing_directory(self, tmp_path: Path):
        source = DepthSequenceSource()
        assert not source.open(str(tmp_path / "missing"))
        assert not source.grab_next()

    def test_open_empty_directory(self, tmp_path: Path):
        (tmp_path / "empty").mkdir()
        assert not DepthSequenceSource().open(str(tmp_path / "empty"))

    def test_optional_buffers_missing(self, tmp_path: Path):
        seq = tmp_path / "seq"
        seq.mkdir()
        np.savez(seq / "a.npz", depth=np.ones((4, 4), dtype=np.float32))

        source = DepthSequenceSource()
        source.open(str(seq))
        source.grab_next()

        assert source.retrieve_depth() is not None
        assert source.retrieve_confidence() is None
        assert source.retrieve_color_image() is None

    def test_corrupt_frame_yields_no_depth(self, tmp_path: Path):
        seq = tmp_path / "seq"
        seq.mkdir()
        (seq / "a.npz").write_bytes(b"not a numpy archive")

        source = DepthSequenceSource()
        source.open(str(seq))

        assert source.grab_next()
        assert source.retrieve_depth() is None


class TestDirectoryStorage:
    def test_satisfies_protocol(self, tmp_path: Path):
        assert isinstance(DirectoryStorage(tmp_path), Storage)

    @pytest.mark.parametrize("fmt", ["npy", "npz", "tiff"])
    def test_raw_depth_formats(self, tmp_path: Path, fmt):
        storage = DirectoryStorage(tmp_path)
        depth = np.linspace(10.0, 50.0, 48 * 64, dtype=np.float32).reshape(48, 64)

        storage.write_raw_depth(7, depth, fmt)
        loaded = storage.read_raw_depth(7, fmt)

        assert storage.raw_depth_path(7, fmt).exists()
        assert loaded.dtype == np.float32
        np.testing.assert_array_equal(loaded, depth)

    def test_read_missing_raw_depth(self, tmp_path: Path):
        assert DirectoryStorage(tmp_path).read_raw_depth(0, "npy") is None

    def test_invalid_raw_format(self, tmp_path: Path):
        with pytest.raises(ValueError, match="Invalid raw depth format"):
            DirectoryStorage(tmp_path).write_raw_depth(0, np.ones((2, 2)), "exr")

    def test_heatmap_overwrite(self, tmp_path: Path):
        storage = DirectoryStorage(tmp_path)
        storage.write_heatmap(3, np.full((8, 8, 3), 10, dtype=np.uint8))
        storage.write_heatmap(3, np.full((8, 8, 3), 20, dtype=np.uint8))

        path = tmp_path / "heatmaps" / "frame_000003.png"
        assert path.exists()
        assert (cv2.imread(str(path)) == 20).all()

    def test_confidence_round_trip_clipped(self, tmp_path: Path):
        storage = DirectoryStorage(tmp_path)
        confidence = np.array([[0, 50, 100, 250]], dtype=np.int32)

        storage.write_confidence_map(1, confidence)
        loaded = storage.read_confidence_map(1)

        assert loaded.tolist() == [[0, 50, 100, 100]]
        assert storage.read_confidence_map(2) is None

    def test_reference_round_trip(self, tmp_path: Path):
        storage = DirectoryStorage(tmp_path)
        image = np.zeros((6, 8, 3), dtype=np.uint8)
        image[..., 2] = 255

        storage.write_reference_image(0, image)

        np.testing.assert_array_equal(storage.read_reference_image(0), image)

    def test_metadata(self, tmp_path: Path):
        storage = DirectoryStorage(tmp_path / "out")
        storage.write_metadata({"frames_rendered": 3, "status": "completed"})

        with open(tmp_path / "out" / "metadata.json") as f:
            assert json.load(f) == {"frames_rendered": 3, "status": "completed"}
