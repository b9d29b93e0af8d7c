"""Run-level depth statistics and metadata summary."""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

import numpy as np

from .config import DepthVizConfig


@dataclass
class DepthStatistics:
    """Distances observed over all valid pixels of a run.

    Attributes:
        min_distance: Smallest valid distance (meters), None before any data.
        max_distance: Largest valid distance (meters), None before any data.
        mean_distance: Mean of all valid distances (meters).
        valid_pixels: Number of valid pixels accumulated.
        frames_with_data: Frames contributing at least one valid pixel.
    """

    min_distance: float | None = None
    max_distance: float | None = None
    mean_distance: float | None = None
    valid_pixels: int = 0
    frames_with_data: int = 0

    def update(self, depth: np.ndarray, mask: np.ndarray) -> None:
        """Fold the valid pixels of one frame into the totals."""
        values = depth[mask]
        if values.size == 0:
            return

        frame_min = float(values.min())
        frame_max = float(values.max())
        frame_sum = float(values.sum(dtype=np.float64))

        total = self.valid_pixels + values.size
        previous_sum = (self.mean_distance or 0.0) * self.valid_pixels
        self.mean_distance = (previous_sum + frame_sum) / total
        self.valid_pixels = total
        self.min_distance = (
            frame_min if self.min_distance is None else min(self.min_distance, frame_min)
        )
        self.max_distance = (
            frame_max if self.max_distance is None else max(self.max_distance, frame_max)
        )
        self.frames_with_data += 1

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def build_run_metadata(
    config: DepthVizConfig,
    status: str,
    frames_rendered: int,
    frames_failed: int,
    statistics: DepthStatistics,
    sequence_indices: list[int],
) -> dict[str, Any]:
    """Summary of one batch run for persistence next to its artifacts.

    Args:
        config: Run configuration.
        status: Final batch status value.
        frames_rendered: Number of frames rendered.
        frames_failed: Number of frames skipped after a retrieval failure.
        statistics: Accumulated depth statistics.
        sequence_indices: Source positions of rendered frames, in order.

    Returns:
        JSON-serializable dictionary.
    """
    return {
        "extraction_time": datetime.now(timezone.utc).isoformat(),
        "source_path": config.source_path,
        "status": status,
        "frames_rendered": frames_rendered,
        "frames_failed": frames_failed,
        "first_frame": sequence_indices[0] if sequence_indices else None,
        "last_frame": sequence_indices[-1] if sequence_indices else None,
        "visualization": config.visualization.model_dump(mode="json"),
        "statistics": statistics.as_dict(),
    }
