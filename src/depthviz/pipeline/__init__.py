"""Pipeline orchestration package for depth heatmap rendering.

Provides single-frame rendering, the batch runner with live preview state,
and the re-render service for historical frames.
"""

from .builder import build_visualizer, run_batch
from .context import RenderState
from .interfaces import FrameSource, Storage
from .render import RenderResult, render_depth_frame
from .rerender import ReRenderService, ReRenderState
from .runner import BatchResult, BatchStatus, DepthVisualizer

__all__ = [
    "BatchResult",
    "BatchStatus",
    "DepthVisualizer",
    "FrameSource",
    "ReRenderService",
    "ReRenderState",
    "RenderResult",
    "RenderState",
    "Storage",
    "build_visualizer",
    "render_depth_frame",
    "run_batch",
]
