import time

import psycopg

from ocr_worker.config.settings import Settings
from ocr_worker.database.connection import get_connection
from ocr_worker.database.models import JobRecord
from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.logging.logger import Log
from ocr_worker.worker.job_runner import JobRunner


class Worker:
    """Poll loop: sleep -> claim -> dispatch."""

    def __init__(
        self,
        job_repo: JobRepository,
        job_runner: JobRunner,
        settings: Settings,
    ) -> None:
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._settings = settings

    def run(self, max_jobs: int | None = None) -> None:
        """Main poll loop. Runs until interrupted, or after ``max_jobs`` jobs when set."""
        Log.info("OCR worker started, polling for jobs")
        jobs_done = 0
        try:
            while max_jobs is None or jobs_done < max_jobs:
                job = self._try_claim_job()
                if job is None:
                    Log.debug("No jobs available, sleeping")
                    time.sleep(self._settings.job_poll_interval_seconds)
                    continue
                self._job_runner.run(job)
                jobs_done += 1
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _try_claim_job(self) -> JobRecord | None:
        """Claim the next runnable job; database errors are logged and retried later."""
        try:
            with get_connection() as conn:
                return self._job_repo.claim_next_job(conn)
        except (psycopg.Error, RuntimeError) as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None
