class FrameTransformError(Exception):
    """Raised when a frame image cannot be decoded or transformed."""
