"""Per-run mutable state for the rendering pipeline."""

from dataclasses import dataclass

from ..config import VisualizationConfig
from ..enhance import MotionHighlighter, TemporalSmoother


@dataclass
class RenderState:
    """Cross-frame state owned by one batch run.

    Created fresh at the start of every batch and never shared with
    re-renders. Enhancers are only instantiated when the config enables them.
    """

    smoother: TemporalSmoother | None = None
    motion: MotionHighlighter | None = None

    @classmethod
    def for_config(cls, config: VisualizationConfig) -> "RenderState":
        return cls(
            smoother=(
                TemporalSmoother(config.temporal_alpha)
                if config.temporal_smoothing
                else None
            ),
            motion=(
                MotionHighlighter(config.motion_gain)
                if config.motion_highlight
                else None
            ),
        )

