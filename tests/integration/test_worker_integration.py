from unittest.mock import MagicMock

import pytest

from ocr_worker.config.settings import Settings
from ocr_worker.database.models import JobStatus, JobStep
from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.processor.processor import OcrJobProcessor
from ocr_worker.worker.job_runner import JobRunner
from ocr_worker.worker.worker import Worker


@pytest.mark.integration
class TestWorkerIntegration:
    def test_worker_claims_and_completes_one_job(
        self,
        seed_job,
        db_conn,
        test_settings: Settings,
    ) -> None:
        db_conn.execute(
            "UPDATE ocr_jobs SET attempts = 999 WHERE status IN ('pending', 'processing') "
            "AND job_id <> %s",
            (seed_job.job_id,),
        )
        db_conn.commit()
        job_repo = JobRepository(max_attempts=test_settings.max_job_attempts)
        processor = MagicMock(spec=OcrJobProcessor)
        processor.process.side_effect = lambda job: job_repo.mark_done(job.job_id)
        worker = Worker(job_repo, JobRunner(processor, job_repo, test_settings), test_settings)

        worker.run(max_jobs=1)

        [claimed] = [call.args[0] for call in processor.process.call_args_list]
        assert claimed.job_id == seed_job.job_id
        job = job_repo.find_by_id(seed_job.job_id)
        assert job.status == JobStatus.DONE
        assert job.step == JobStep.DOCS_BUILT
