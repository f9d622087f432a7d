from pathlib import Path

from docx import Document


def write_docx(paragraphs: list[str], path: Path) -> Path:
    """Write one paragraph per entry, separated by an empty paragraph."""
    document = Document()
    for position, text in enumerate(paragraphs):
        if position:
            document.add_paragraph("")
        document.add_paragraph(text)
    path.parent.mkdir(parents=True, exist_ok=True)
    document.save(str(path))
    return path
