from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from ocr_worker.database.models import BatchRecord
from ocr_worker.inference.client_base import BatchStatus
from ocr_worker.processor.exceptions import BatchFailedError
from ocr_worker.processor.poller import CompletionPoller

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)


def _make_poller(clock: FakeClock | None = None) -> tuple[CompletionPoller, MagicMock, MagicMock, FakeClock]:
    clock = clock or FakeClock(NOW)
    batch_repo = MagicMock()
    job_repo = MagicMock()
    poller = CompletionPoller(batch_repo, job_repo, 20, clock=clock, sleep=clock.sleep)
    return poller, batch_repo, job_repo, clock


def _batch(**overrides: object) -> BatchRecord:
    values: dict[str, object] = {
        "id": 1,
        "job_id": "j1",
        "batch_index": 0,
        "start_index": 0,
        "item_count": 10,
        "batch_size": 500,
        "input_file_id": "file_in",
        "provider_batch_id": "batch_1",
        "status": "validating",
    }
    values.update(overrides)
    return BatchRecord(**values)


class TestCheck:
    def test_in_flight_schedules_next_poll(self) -> None:
        poller, batch_repo, _job_repo, _clock = _make_poller()
        client = MagicMock()
        client.retrieve_batch.return_value = BatchStatus("batch_1", "in_progress")
        batch = _batch()

        outcome = poller.check(client, batch)

        assert outcome.done is False
        assert batch.poll_attempts == 1
        assert batch.next_poll_at == NOW + timedelta(seconds=20)
        assert batch_repo.record_poll.call_args.kwargs["next_poll_at"] == NOW + timedelta(seconds=20)

    def test_not_due_is_a_no_op(self) -> None:
        poller, batch_repo, _job_repo, _clock = _make_poller()
        client = MagicMock()
        batch = _batch(next_poll_at=NOW + timedelta(seconds=5), poll_attempts=3)

        outcome = poller.check(client, batch)

        assert outcome.done is False
        client.retrieve_batch.assert_not_called()
        batch_repo.record_poll.assert_not_called()

    def test_completed_returns_output(self) -> None:
        poller, batch_repo, job_repo, _clock = _make_poller()
        client = MagicMock()
        client.retrieve_batch.return_value = BatchStatus("batch_1", "completed", "file_out")
        batch = _batch()

        outcome = poller.check(client, batch)

        assert outcome.done is True
        assert outcome.output_file_id == "file_out"
        assert batch_repo.record_poll.call_args.kwargs["completed"] is True
        job_repo.increment_batches_completed.assert_called_once_with("j1")

    def test_completed_with_only_error_file_has_empty_output(self) -> None:
        poller, _batch_repo, _job_repo, _clock = _make_poller()
        client = MagicMock()
        client.retrieve_batch.return_value = BatchStatus("batch_1", "completed", None, "file_err")

        outcome = poller.check(client, _batch())

        assert outcome.done is True
        assert outcome.output_file_id is None

    @pytest.mark.parametrize("status", ["failed", "expired", "cancelled"])
    def test_terminal_failure_raises(self, status: str) -> None:
        poller, batch_repo, _job_repo, _clock = _make_poller()
        client = MagicMock()
        client.retrieve_batch.return_value = BatchStatus("batch_1", status)

        with pytest.raises(BatchFailedError, match=status):
            poller.check(client, _batch())

        assert batch_repo.record_poll.call_args.kwargs["status"] == status

    def test_already_completed_batch_is_not_polled(self) -> None:
        poller, _batch_repo, job_repo, _clock = _make_poller()
        client = MagicMock()
        batch = _batch(status="completed", output_file_id="file_out", completed_at=NOW)

        outcome = poller.check(client, batch)

        assert outcome.done is True
        assert outcome.output_file_id == "file_out"
        client.retrieve_batch.assert_not_called()
        job_repo.increment_batches_completed.assert_not_called()


class TestWait:
    def test_sleeps_between_polls_and_refreshes_lock(self) -> None:
        poller, _batch_repo, job_repo, clock = _make_poller()
        client = MagicMock()
        client.retrieve_batch.side_effect = [
            BatchStatus("batch_1", "validating"),
            BatchStatus("batch_1", "in_progress"),
            BatchStatus("batch_1", "completed", "file_out"),
        ]

        assert poller.wait(client, _batch()) == "file_out"

        assert clock.sleeps == [20.0, 20.0]
        assert job_repo.touch.call_count == 2

    def test_resumes_persisted_schedule(self) -> None:
        poller, _batch_repo, _job_repo, clock = _make_poller()
        client = MagicMock()
        client.retrieve_batch.return_value = BatchStatus("batch_1", "completed", "file_out")
        batch = _batch(poll_attempts=4, next_poll_at=NOW + timedelta(seconds=7))

        poller.wait(client, batch)

        assert clock.sleeps == [7.0]
        assert batch.poll_attempts == 5
