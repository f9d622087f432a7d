import io
import zipfile
from collections.abc import Callable

import pytest
from PIL import Image


def _image_bytes(size: tuple[int, int] = (640, 360), fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=(20, 40, 60)).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def png_bytes() -> bytes:
    """A small 16:9 PNG frame."""
    return _image_bytes()


@pytest.fixture()
def jpeg_bytes() -> bytes:
    return _image_bytes(fmt="JPEG")


@pytest.fixture()
def make_archive() -> Callable[[dict[str, bytes]], bytes]:
    """Build an in-memory zip archive from a name -> content mapping."""

    def _make(entries: dict[str, bytes]) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as archive:
            for name, content in entries.items():
                archive.writestr(name, content)
        return buf.getvalue()

    return _make
