"""Calibrated distance heatmaps from recorded stereo depth, with live preview and re-rendering."""

from .config import (
    DepthVizConfig,
    Palette,
    RuntimeConfig,
    SamplingConfig,
    StorageConfig,
    VisualizationConfig,
)
from .errors import DepthVizError, FrameRetrievalError, ReRenderError, SourceOpenError
from .frame import DepthFrame, EffectiveRange, RenderedPreview
from .io import DepthSequenceSource, DirectoryStorage
from .metadata import DepthStatistics
from .pipeline import (
    BatchResult,
    BatchStatus,
    DepthVisualizer,
    FrameSource,
    ReRenderState,
    RenderResult,
    Storage,
    build_visualizer,
    render_depth_frame,
    run_batch,
)
from .preview import LivePreviewChannel, PreviewState, PreviewStore

__version__ = "0.1.0"

__all__ = [
    "BatchResult",
    "BatchStatus",
    "DepthFrame",
    "DepthSequenceSource",
    "DepthStatistics",
    "DepthVisualizer",
    "DepthVizConfig",
    "DepthVizError",
    "DirectoryStorage",
    "EffectiveRange",
    "FrameRetrievalError",
    "FrameSource",
    "LivePreviewChannel",
    "Palette",
    "PreviewState",
    "PreviewStore",
    "ReRenderError",
    "ReRenderState",
    "RenderResult",
    "RenderedPreview",
    "RuntimeConfig",
    "SamplingConfig",
    "SourceOpenError",
    "Storage",
    "StorageConfig",
    "VisualizationConfig",
    "build_visualizer",
    "render_depth_frame",
    "run_batch",
    "__version__",
]
