from ocr_worker.config.settings import Settings
from ocr_worker.database.models import JobRecord
from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.logging.logger import Log
from ocr_worker.processor.exceptions import OcrPipelineError
from ocr_worker.processor.processor import OcrJobProcessor


class JobRunner:
    """Run one job, catch exceptions, and apply retry logic."""

    def __init__(
        self,
        processor: OcrJobProcessor,
        job_repo: JobRepository,
        settings: Settings,
    ) -> None:
        self._processor = processor
        self._job_repo = job_repo
        self._settings = settings

    def run(self, job: JobRecord) -> None:
        """Execute a single job with error handling."""
        Log.info(f"Running job {job.job_id} (attempt {job.attempts + 1}, step {job.step.value})")
        try:
            self._processor.process(job)
            Log.info(f"Job {job.job_id} completed successfully")
        except Exception as exc:
            self._handle_failure(job, exc)

    def _handle_failure(self, job: JobRecord, exc: Exception) -> None:
        """Leave the job in error, or send it back to pending while attempts remain.

        The processor has already recorded the error on the job. Pipeline
        errors are final unless flagged retryable; anything else is an
        infrastructure failure and is retried from the persisted step.
        """
        message = f"Job {job.job_id} failed at step {job.step.value}: {exc}"
        if isinstance(exc, OcrPipelineError):
            Log.error(message)
        else:
            Log.exception(message)
        if isinstance(exc, OcrPipelineError) and not exc.retryable:
            Log.error(f"Job {job.job_id} permanently failed: {type(exc).__name__}")
        elif job.attempts + 1 >= self._settings.max_job_attempts:
            Log.error(f"Job {job.job_id} permanently failed after {job.attempts + 1} attempts")
        else:
            self._job_repo.increment_attempts(job.job_id)
            Log.warning(f"Job {job.job_id} will be retried (attempt {job.attempts + 2})")
