from pathlib import Path

from ocr_worker.inference.exceptions import InferenceError

_DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"


def load_ocr_prompt(path: Path | None = None) -> str:
    """Load the subtitle OCR instruction sent with every frame.

    Args:
        path: Path to the prompt file.
              Defaults to the bundled ocr_prompt.txt.

    Raises:
        InferenceError: if the file cannot be read.
    """
    if path is None:
        path = _DEFAULT_PROMPT_DIR / "ocr_prompt.txt"
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise InferenceError(f"Failed to load OCR prompt: {exc}") from exc
