from ocr_worker.config.settings import Settings
from ocr_worker.database.connection import close_pool, init_pool
from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.logging.logger import Log
from ocr_worker.processor.processor import build_processor
from ocr_worker.worker.job_runner import JobRunner
from ocr_worker.worker.worker import Worker


def main() -> None:
    """Entry point: initialize pool -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        job_repo = JobRepository(settings.max_job_attempts, settings.stale_lock_seconds)
        processor = build_processor(settings, job_repo)
        job_runner = JobRunner(processor, job_repo, settings)
        worker = Worker(job_repo, job_runner, settings)
        worker.run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
