from datetime import datetime, timedelta, timezone

import pytest

from ocr_worker.database.models import FrameRecord
from ocr_worker.database.repositories.batch_repository import BatchRepository
from ocr_worker.database.repositories.frame_repository import FrameRepository
from ocr_worker.database.repositories.step_repository import StepRepository


def _reserve(repo: BatchRepository, job_id: str, batch_index: int = 0, **overrides: object):
    values: dict[str, object] = {
        "job_id": job_id,
        "batch_index": batch_index,
        "start_index": 0,
        "item_count": 500,
        "batch_size": 500,
        "input_file_id": "file-a",
    }
    values.update(overrides)
    return repo.reserve(**values)


@pytest.mark.integration
class TestBatchRepository:
    def test_reserve_then_submit(self, seed_job) -> None:
        repo = BatchRepository()
        _reserve(repo, seed_job.job_id)

        repo.mark_submitted(seed_job.job_id, 0, "batch_1", "validating")

        [batch] = repo.list_for_job(seed_job.job_id)
        assert batch.provider_batch_id == "batch_1"
        assert batch.status == "validating"

    def test_unsubmitted_reservation_can_be_resized(self, seed_job) -> None:
        repo = BatchRepository()
        _reserve(repo, seed_job.job_id)

        batch = _reserve(repo, seed_job.job_id, item_count=400, batch_size=400, input_file_id="file-b")

        assert batch.item_count == 400
        assert batch.input_file_id == "file-b"
        assert len(repo.list_for_job(seed_job.job_id)) == 1

    def test_submitted_batch_cannot_be_reserved_again(self, seed_job) -> None:
        repo = BatchRepository()
        _reserve(repo, seed_job.job_id)
        repo.mark_submitted(seed_job.job_id, 0, "batch_1", "validating")

        with pytest.raises(RuntimeError, match="already submitted"):
            _reserve(repo, seed_job.job_id, item_count=400)

    def test_step_down_is_recorded_on_refused_row(self, seed_job) -> None:
        repo = BatchRepository()
        _reserve(repo, seed_job.job_id)

        repo.record_step_down(seed_job.job_id, 0, 400)

        [batch] = repo.list_for_job(seed_job.job_id)
        assert batch.batch_size == 400
        assert batch.input_file_id is None

    def test_record_poll_persists_schedule(self, seed_job) -> None:
        repo = BatchRepository()
        _reserve(repo, seed_job.job_id)
        next_poll = datetime.now(timezone.utc) + timedelta(seconds=20)

        repo.record_poll(
            seed_job.job_id, 0, status="in_progress", poll_attempts=2, next_poll_at=next_poll
        )
        repo.record_poll(
            seed_job.job_id,
            0,
            status="completed",
            poll_attempts=3,
            next_poll_at=None,
            output_file_id="file-out",
            completed=True,
        )

        [batch] = repo.list_for_job(seed_job.job_id)
        assert batch.poll_attempts == 3
        assert batch.output_file_id == "file-out"
        assert batch.completed_at is not None

    def test_list_is_ordered_and_deletable(self, seed_job) -> None:
        repo = BatchRepository()
        _reserve(repo, seed_job.job_id, batch_index=1, start_index=500)
        _reserve(repo, seed_job.job_id, batch_index=0)

        assert [b.batch_index for b in repo.list_for_job(seed_job.job_id)] == [0, 1]
        assert repo.delete_for_job(seed_job.job_id) == 2


@pytest.mark.integration
class TestFrameRepository:
    def test_replace_is_idempotent(self, seed_job) -> None:
        repo = FrameRepository()
        frames = [
            FrameRecord(seed_job.job_id, "2.png", "2", 1, "b"),
            FrameRecord(seed_job.job_id, "1.png", "1", 0, ""),
        ]

        repo.replace_for_job(seed_job.job_id, frames)
        repo.replace_for_job(seed_job.job_id, frames)

        stored = repo.list_for_job(seed_job.job_id)
        assert [f.index for f in stored] == [0, 1]
        assert stored[0].text == ""


@pytest.mark.integration
class TestStepRepository:
    def test_save_and_find(self, seed_job) -> None:
        repo = StepRepository()

        assert repo.find_result(seed_job.job_id, "ocr.preprocess-images-and-crops") is None
        repo.save_result(seed_job.job_id, "ocr.preprocess-images-and-crops", {"total_images": 3})

        assert repo.find_result(seed_job.job_id, "ocr.preprocess-images-and-crops") == {
            "total_images": 3
        }
        repo.delete_for_job(seed_job.job_id)
        assert repo.find_result(seed_job.job_id, "ocr.preprocess-images-and-crops") is None
