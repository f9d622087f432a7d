from collections import defaultdict

from ocr_worker.database.models import FrameRecord
from ocr_worker.preprocessing.filenames import base_key_from_filename, natural_sort_key
from ocr_worker.processor.exceptions import EmptyDocumentError


def build_paragraphs(frames: list[FrameRecord]) -> list[str]:
    """One paragraph per base key, in natural base key order.

    Frames sharing a base key (``3.png``, ``3-1.png``) are joined in index
    order with a single space; empty texts are skipped, so a base key whose
    frames are all empty yields an empty paragraph.

    Raises:
        EmptyDocumentError: if no paragraph has any text.
    """
    groups: dict[str, list[FrameRecord]] = defaultdict(list)
    for frame in frames:
        groups[frame.base_key or base_key_from_filename(frame.filename)].append(frame)

    paragraphs = []
    for base_key in sorted(groups, key=natural_sort_key):
        texts = (frame.text.strip() for frame in sorted(groups[base_key], key=lambda f: f.index))
        paragraphs.append(" ".join(text for text in texts if text))

    if not any(paragraphs):
        raise EmptyDocumentError("No subtitle text was recognized in any frame")
    return paragraphs


def render_plain_text(paragraphs: list[str]) -> str:
    return "\n\n".join(paragraphs)
