from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class FrameImages:
    """Derived images for one frame: the normalized frame and its subtitle band crop."""

    normalized: bytes
    crop: bytes


class BaseFrameTransformer(ABC):
    """Contract for all frame image transform adapters."""

    @abstractmethod
    def transform(self, image_bytes: bytes) -> FrameImages:
        """Normalize a frame and cut out the band sent to recognition.

        Raises:
            FrameTransformError: if the image cannot be processed.
        """

    @abstractmethod
    def thumbnail(self, normalized_bytes: bytes) -> bytes:
        """Return a small JPEG preview of a normalized frame."""
