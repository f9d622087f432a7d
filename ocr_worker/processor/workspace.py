import shutil
from pathlib import Path

from ocr_worker.logging.logger import Log


class JobWorkspace:
    """Local scratch files of one job under ``<work_dir>/<job_id>``."""

    # Extra batch indices scanned on purge; a capacity step-down creates more
    # batches than were planned when the job started.
    PURGE_BATCH_MARGIN = 10

    def __init__(self, work_dir: Path, job_id: str) -> None:
        self.job_id = job_id
        self.root = work_dir / job_id

    @property
    def source_archive_path(self) -> Path:
        return self.root / "input.zip"

    @property
    def filtered_archive_path(self) -> Path:
        return self.root / "raw-images.zip"

    @property
    def txt_path(self) -> Path:
        return self.root / f"{self.job_id}.txt"

    @property
    def docx_path(self) -> Path:
        return self.root / f"{self.job_id}.docx"

    def batch_jsonl_path(self, batch_index: int) -> Path:
        return self.root / "tmp" / f"{self.job_id}-ocr-batch-{batch_index}.jsonl"

    def ensure(self) -> None:
        (self.root / "tmp").mkdir(parents=True, exist_ok=True)

    def purge(self, expected_batches: int) -> None:
        """Remove every scratch file of the job; failures are logged, not raised."""
        for index in range(expected_batches + self.PURGE_BATCH_MARGIN):
            self._unlink(self.batch_jsonl_path(index))
        for path in (
            self.source_archive_path,
            self.filtered_archive_path,
            self.txt_path,
            self.docx_path,
        ):
            self._unlink(path)
        shutil.rmtree(self.root, ignore_errors=True)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            Log.warning(f"Could not remove {path}: {exc}")
