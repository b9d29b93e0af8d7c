"""Tests for CLI init, run, and legend commands."""

from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest
import yaml
from PIL import Image

from depthviz.cli import (
    format_batch_summary,
    init_config,
    legend_command,
    main,
    run_command,
)
from depthviz.config import DepthVizConfig
from depthviz.pipeline import BatchResult, BatchStatus


@pytest.fixture
def sequence_dir(tmp_path: Path) -> Path:
    """Directory with five 24x32 .npz depth captures.

    Args:
        tmp_path: Pytest temporary directory fixture.

    Returns:
        Path to the sequence directory.
    """
    directory = tmp_path / "capture"
    directory.mkdir()
    for i in range(5):
        depth = np.tile(np.linspace(12.0, 40.0, 32, dtype=np.float32), (24, 1))
        np.savez(
            directory / f"frame_{i:03d}.npz",
            depth=depth + i,
            confidence=np.full((24, 32), 5, dtype=np.uint8),
            color=np.full((24, 32, 3), 90, dtype=np.uint8),
        )
    return directory


def test_init_happy_path(tmp_path: Path, sequence_dir: Path, capsys):
    config_path = tmp_path / "config.yaml"
    output_dir = str(tmp_path / "output")

    config = init_config(sequence_dir, output_dir, config_path)

    assert config_path.exists()
    assert config.source_path == str(sequence_dir.resolve())
    assert config.output_dir == output_dir
    loaded = DepthVizConfig.from_yaml(config_path)
    assert loaded.source_path == config.source_path
    assert "Found 5 frame(s)" in capsys.readouterr().out


def test_init_missing_directory(tmp_path: Path):
    with pytest.raises(SystemExit) as exc_info:
        init_config(tmp_path / "missing", "out", tmp_path / "config.yaml")
    assert exc_info.value.code == 1


def test_init_no_frames(tmp_path: Path):
    (tmp_path / "empty").mkdir()
    with pytest.raises(SystemExit):
        init_config(tmp_path / "empty", "out", tmp_path / "config.yaml")


def test_run_command(tmp_path: Path, sequence_dir: Path, capsys):
    config_path = tmp_path / "config.yaml"
    output_dir = tmp_path / "output"
    init_config(sequence_dir, str(output_dir), config_path)

    result = run_command(config_path, quiet=True)

    assert result.status is BatchStatus.COMPLETED
    assert result.frames_rendered == 5
    for i in range(5):
        assert (output_dir / "heatmaps" / f"frame_{i:06d}.png").exists()
        assert (output_dir / "depth" / f"frame_{i:06d}.npy").exists()
    assert (output_dir / "metadata.json").exists()
    assert (output_dir / "config.yaml").exists()
    assert Image.open(output_dir / "legend.png").size[0] > 0
    assert (output_dir / "latest_preview.png").exists()
    assert "Frames rendered" in capsys.readouterr().out


def test_run_command_sampling(tmp_path: Path, sequence_dir: Path):
    config_path = tmp_path / "config.yaml"
    with open(config_path, "w") as f:
        yaml.safe_dump(
            {
                "source_path": str(sequence_dir),
                "output_dir": str(tmp_path / "out"),
                "sampling": {"target_fps": 10.0},
                "storage": {"raw_depth_format": "npz"},
            },
            f,
        )

    result = run_command(config_path, quiet=True, fps=20.0)

    assert result.sequence_indices == [0, 2, 4]
    assert (tmp_path / "out" / "depth" / "frame_000002.npz").exists()


def test_run_missing_config(tmp_path: Path):
    with pytest.raises(SystemExit) as exc_info:
        run_command(tmp_path / "missing.yaml")
    assert exc_info.value.code == 1


def test_run_invalid_config(tmp_path: Path, capsys):
    config_path = tmp_path / "bad.yaml"
    with open(config_path, "w") as f:
        yaml.safe_dump({"visualization": {"min_distance": 60.0}}, f)

    with pytest.raises(SystemExit):
        run_command(config_path)

    assert "Failed to load config" in capsys.readouterr().err


def test_run_missing_source_exits(tmp_path: Path):
    config_path = tmp_path / "config.yaml"
    DepthVizConfig(
        source_path=str(tmp_path / "missing"), output_dir=str(tmp_path / "out")
    ).to_yaml(config_path)

    with pytest.raises(SystemExit) as exc_info:
        run_command(config_path, quiet=True)

    assert exc_info.value.code == 1
    assert not (tmp_path / "out" / "legend.png").exists()


def test_legend_command(tmp_path: Path):
    output = tmp_path / "legend.png"
    legend_command(5.0, 25.0, "Viridis", output)
    assert Image.open(output).size[1] > 0


def test_legend_command_invalid_range(tmp_path: Path):
    with pytest.raises(SystemExit):
        legend_command(25.0, 5.0, "jet", tmp_path / "legend.png")


def test_legend_command_invalid_palette(tmp_path: Path):
    with pytest.raises(SystemExit):
        legend_command(5.0, 25.0, "rainbow", tmp_path / "legend.png")


def test_format_batch_summary():
    summary = format_batch_summary(
        BatchResult(status=BatchStatus.EMPTY, message="nothing")
    )
    assert "empty" in summary
    assert "Min distance" not in summary


def test_main_dispatches_init(tmp_path: Path, sequence_dir: Path):
    config_path = tmp_path / "cfg.yaml"
    argv = [
        "depthviz",
        "init",
        "--source",
        str(sequence_dir),
        "--output-dir",
        str(tmp_path / "out"),
        "--config",
        str(config_path),
    ]
    with patch("sys.argv", argv):
        main()

    assert config_path.exists()


def test_main_dispatches_run(tmp_path: Path):
    with patch("depthviz.cli.run_command") as mock_run:
        with patch("sys.argv", ["depthviz", "run", "cfg.yaml", "-v", "--fps", "30"]):
            main()

    mock_run.assert_called_once_with(
        config_path=Path("cfg.yaml"), verbose=True, quiet=False, fps=30.0
    )


def test_main_without_command():
    with patch("sys.argv", ["depthviz"]):
        with pytest.raises(SystemExit):
            main()
