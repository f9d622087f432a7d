import io

from PIL import Image, ImageOps, UnidentifiedImageError

from ocr_worker.preprocessing.exceptions import FrameTransformError
from ocr_worker.preprocessing.transform_base import BaseFrameTransformer, FrameImages


class PillowFrameTransformer(BaseFrameTransformer):
    """Letterboxes frames to 1280x720 and crops the bottom subtitle band with Pillow."""

    TARGET_SIZE = (1280, 720)
    SUBTITLE_BAND_RATIO = 0.32
    THUMBNAIL_SIZE = (200, 200)
    THUMBNAIL_QUALITY = 85

    def transform(self, image_bytes: bytes) -> FrameImages:
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                normalized = self._normalize(image)
        except (UnidentifiedImageError, OSError) as exc:
            raise FrameTransformError(f"Cannot decode frame image: {exc}") from exc

        width, height = normalized.size
        band_height = int(height * self.SUBTITLE_BAND_RATIO)
        crop = normalized.crop((0, max(0, height - band_height), width, height))
        return FrameImages(normalized=_png(normalized), crop=_png(crop))

    def thumbnail(self, normalized_bytes: bytes) -> bytes:
        try:
            with Image.open(io.BytesIO(normalized_bytes)) as image:
                preview = image.convert("RGB")
        except (UnidentifiedImageError, OSError) as exc:
            raise FrameTransformError(f"Cannot decode frame image: {exc}") from exc
        preview.thumbnail(self.THUMBNAIL_SIZE)
        buf = io.BytesIO()
        preview.save(buf, format="JPEG", quality=self.THUMBNAIL_QUALITY)
        return buf.getvalue()

    def _normalize(self, image: Image.Image) -> Image.Image:
        rgb = image.convert("RGB")
        target_w, target_h = self.TARGET_SIZE
        if abs(rgb.width / rgb.height - target_w / target_h) < 0.01:
            return rgb.resize(self.TARGET_SIZE)
        return ImageOps.pad(rgb, self.TARGET_SIZE, color=(0, 0, 0))


def _png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()
