import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ocr_worker.database.models import BatchRecord
from ocr_worker.database.repositories.batch_repository import BatchRepository
from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.inference.client_base import BaseBatchClient
from ocr_worker.logging.logger import Log
from ocr_worker.processor.exceptions import BatchFailedError

IN_FLIGHT_STATES = frozenset({"validating", "in_progress", "finalizing", "cancelling"})
FAILED_STATES = frozenset({"failed", "expired", "cancelled"})
COMPLETED_STATE = "completed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PollOutcome:
    done: bool
    status: str | None
    output_file_id: str | None = None


class CompletionPoller:
    """Drives a submitted batch to a terminal state.

    Every check records the provider status, the attempt count and the next
    eligible check time on the batch row, so a restarted worker picks up the
    schedule where the previous one left it.
    """

    def __init__(
        self,
        batch_repo: BatchRepository,
        job_repo: JobRepository,
        interval_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._batch_repo = batch_repo
        self._job_repo = job_repo
        self._interval = timedelta(seconds=interval_seconds)
        self._clock = clock
        self._sleep = sleep

    def check(self, client: BaseBatchClient, batch: BatchRecord) -> PollOutcome:
        """Check the batch once if it is due; ``batch`` is updated in place.

        Raises:
            BatchFailedError: if the batch ended failed, expired or cancelled.
        """
        if batch.completed_at is not None:
            return PollOutcome(done=True, status=batch.status, output_file_id=batch.output_file_id)
        if batch.provider_batch_id is None:
            raise ValueError(f"Batch {batch.batch_index} of job {batch.job_id} was never submitted")

        now = self._clock()
        if batch.next_poll_at is not None and now < batch.next_poll_at:
            return PollOutcome(done=False, status=batch.status)

        remote = client.retrieve_batch(batch.provider_batch_id)
        batch.status = remote.status
        batch.poll_attempts += 1
        Log.info(
            f"Batch {remote.batch_id} of job {batch.job_id} is {remote.status} "
            f"(poll {batch.poll_attempts})"
        )

        if remote.status in FAILED_STATES:
            batch.next_poll_at = None
            self._record(batch)
            raise BatchFailedError(
                f"Batch {remote.batch_id} of job {batch.job_id} ended with status {remote.status}"
            )

        if remote.status == COMPLETED_STATE:
            if remote.output_file_id is None:
                Log.warning(
                    f"Batch {remote.batch_id} completed without output "
                    f"(error file {remote.error_file_id}); every item counts as missing"
                )
            batch.output_file_id = remote.output_file_id
            batch.error_file_id = remote.error_file_id
            batch.next_poll_at = None
            batch.completed_at = now
            self._record(batch, completed=True)
            self._job_repo.increment_batches_completed(batch.job_id)
            return PollOutcome(done=True, status=remote.status, output_file_id=remote.output_file_id)

        if remote.status not in IN_FLIGHT_STATES:
            Log.warning(f"Unknown batch status {remote.status}, polling again")
        batch.next_poll_at = now + self._interval
        self._record(batch)
        return PollOutcome(done=False, status=remote.status)

    def wait(self, client: BaseBatchClient, batch: BatchRecord) -> str | None:
        """Poll until the batch is terminal and return its output file id, if any."""
        while True:
            outcome = self.check(client, batch)
            if outcome.done:
                return outcome.output_file_id
            self._job_repo.touch(batch.job_id)
            delay = self._interval.total_seconds()
            if batch.next_poll_at is not None:
                delay = max(0.0, (batch.next_poll_at - self._clock()).total_seconds())
            self._sleep(delay)

    def _record(self, batch: BatchRecord, completed: bool = False) -> None:
        self._batch_repo.record_poll(
            batch.job_id,
            batch.batch_index,
            status=batch.status or "",
            poll_attempts=batch.poll_attempts,
            next_poll_at=batch.next_poll_at,
            output_file_id=batch.output_file_id,
            error_file_id=batch.error_file_id,
            completed=completed,
        )
