"""Exception types raised by depthviz."""


class DepthVizError(RuntimeError):
    """Base class for depthviz failures."""


class SourceOpenError(DepthVizError):
    """The frame source could not be opened. Aborts the whole batch."""


class FrameRetrievalError(DepthVizError):
    """A single frame's buffers could not be retrieved. The batch continues."""


class ReRenderError(DepthVizError):
    """A stored frame could not be reconstructed or re-rendered.

    Raised before any shared preview state is modified.
    """
