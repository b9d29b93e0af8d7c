"""Construction of a ready-to-run visualizer from a run configuration."""

import logging
from pathlib import Path

from ..config import DepthVizConfig
from ..io import DepthSequenceSource, DirectoryStorage
from .runner import BatchResult, DepthVisualizer, ProgressCallback

logger = logging.getLogger(__name__)


def build_visualizer(config: DepthVizConfig, fps: float = 0.0) -> DepthVisualizer:
    """Create a DepthVisualizer backed by directory source and storage.

    When an output directory is configured it is created and a copy of the
    configuration is saved to ``output_dir/config.yaml``.

    Args:
        config: Run configuration.
        fps: Frame rate reported by the source (0 = unknown).

    Returns:
        DepthVisualizer ready for process_batch(config).
    """
    storage = None
    if config.output_dir:
        output_dir = Path(config.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        config.to_yaml(output_dir / "config.yaml")
        logger.info("Config saved to %s", output_dir / "config.yaml")
        storage = DirectoryStorage(output_dir)

    return DepthVisualizer(lambda: DepthSequenceSource(fps=fps), storage)


def run_batch(
    config: DepthVizConfig,
    progress_callback: ProgressCallback | None = None,
) -> BatchResult:
    """Build a visualizer and process one batch.

    Args:
        config: Run configuration.
        progress_callback: Optional (progress, message) callable.

    Returns:
        BatchResult of the run.
    """
    visualizer = build_visualizer(config)
    return visualizer.process_batch(config, progress_callback)
