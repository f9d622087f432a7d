"""Document Assembler: frames to the plain text and Word deliverables."""

from pathlib import Path

import psycopg

from ocr_worker.database.repositories.batch_repository import BatchRepository
from ocr_worker.database.repositories.frame_repository import FrameRepository
from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.database.repositories.step_repository import StepRepository
from ocr_worker.logging.logger import Log
from ocr_worker.preprocessing.manifest import ManifestStore
from ocr_worker.processor.docx_writer import write_docx
from ocr_worker.processor.paragraphs import build_paragraphs, render_plain_text
from ocr_worker.processor.workspace import JobWorkspace
from ocr_worker.storage import keys
from ocr_worker.storage.exceptions import StorageError
from ocr_worker.storage.object_storage import ObjectStorage

TXT_CONTENT_TYPE = "text/plain; charset=utf-8"
DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class DocumentAssembler:
    """Builds, uploads and records the job documents, then purges transient state."""

    def __init__(
        self,
        storage: ObjectStorage,
        frame_repo: FrameRepository,
        job_repo: JobRepository,
        batch_repo: BatchRepository,
        step_repo: StepRepository,
        manifest_store: ManifestStore,
        work_dir: Path,
    ) -> None:
        self._storage = storage
        self._frame_repo = frame_repo
        self._job_repo = job_repo
        self._batch_repo = batch_repo
        self._step_repo = step_repo
        self._manifest_store = manifest_store
        self._work_dir = work_dir

    def assemble(self, job_id: str) -> None:
        """Raises EmptyDocumentError if the job's frames hold no text."""
        frames = self._frame_repo.list_for_job(job_id)
        paragraphs = build_paragraphs(frames)

        workspace = JobWorkspace(self._work_dir, job_id)
        workspace.ensure()
        workspace.txt_path.write_text(render_plain_text(paragraphs), encoding="utf-8")
        write_docx(paragraphs, workspace.docx_path)

        txt_key = keys.txt_key(job_id)
        docx_key = keys.docx_key(job_id)
        txt_size = self._storage.upload_file(txt_key, workspace.txt_path, TXT_CONTENT_TYPE)
        docx_size = self._storage.upload_file(docx_key, workspace.docx_path, DOCX_CONTENT_TYPE)

        self._job_repo.mark_done(
            job_id,
            txt_path=txt_key,
            txt_size_bytes=txt_size,
            docx_path=docx_key,
            docx_size_bytes=docx_size,
        )
        Log.info(
            f"Built documents for job {job_id}: {len(paragraphs)} paragraphs, "
            f"{txt_size} bytes text, {docx_size} bytes docx"
        )
        self.purge(job_id)

    def purge(self, job_id: str) -> None:
        """Remove every transient artifact of a finished job; failures are only logged."""
        try:
            total_batches = len(self._batch_repo.list_for_job(job_id))
        except psycopg.Error as exc:
            Log.warning(f"Could not count batches of job {job_id}: {exc}")
            total_batches = 0
        JobWorkspace(self._work_dir, job_id).purge(total_batches)

        try:
            self._manifest_store.delete(job_id)
        except StorageError as exc:
            Log.warning(f"Could not delete manifest of job {job_id}: {exc}")
        try:
            removed = self._storage.delete_prefix(keys.crops_prefix(job_id))
            Log.debug(f"Deleted {removed} crops of job {job_id}")
        except StorageError as exc:
            Log.warning(f"Could not delete crops of job {job_id}: {exc}")
        try:
            self._batch_repo.delete_for_job(job_id)
            self._step_repo.delete_for_job(job_id)
        except psycopg.Error as exc:
            Log.warning(f"Could not delete bookkeeping rows of job {job_id}: {exc}")
