"""Adaptive Batch Submitter: sequential batch submission with size step-down."""

from collections import deque
from dataclasses import replace
from pathlib import Path

from ocr_worker.database.models import BatchRecord
from ocr_worker.database.repositories.batch_repository import BatchRepository
from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.inference.batch_lines import CorrelationId, build_request_line
from ocr_worker.inference.client_base import BaseBatchClient
from ocr_worker.inference.exceptions import InferenceCapacityError, InferenceError
from ocr_worker.logging.logger import Log
from ocr_worker.preprocessing.models import WorkItem
from ocr_worker.processor.exceptions import BatchCapacityExhaustedError
from ocr_worker.processor.poller import CompletionPoller
from ocr_worker.processor.workspace import JobWorkspace

BATCH_SIZE_LADDER = (500, 400, 300, 200, 100, 50)

# (global index, item) pairs; global indices survive resizing and retries.
Entries = list[tuple[int, WorkItem]]


def snap_to_ladder(size: int) -> int:
    """Largest rung not above ``size``; the smallest rung for anything below it."""
    for rung in BATCH_SIZE_LADDER:
        if rung <= size:
            return rung
    return BATCH_SIZE_LADDER[-1]


def next_rung(size: int) -> int | None:
    smaller = [rung for rung in BATCH_SIZE_LADDER if rung < size]
    return smaller[0] if smaller else None


def partition(items: list[WorkItem], start: int, size: int) -> list[Entries]:
    """Split ``items[start:]`` into consecutive chunks of at most ``size``."""
    return [
        [(index, items[index]) for index in range(chunk_start, min(chunk_start + size, len(items)))]
        for chunk_start in range(start, len(items), size)
    ]


class AdaptiveBatchSubmitter:
    """Submits a job's work items as provider batches, one at a time.

    Batch N+1 is only created after batch N was accepted and polled to a
    terminal state. When the provider refuses a batch for capacity reasons the
    batch size drops one rung and every not yet accepted item is re-partitioned;
    the size never grows back within a job.
    """

    def __init__(
        self,
        batch_repo: BatchRepository,
        job_repo: JobRepository,
        poller: CompletionPoller,
        *,
        model: str,
        prompt: str,
        completion_window: str,
        start_size: int,
        work_dir: Path,
    ) -> None:
        self._batch_repo = batch_repo
        self._job_repo = job_repo
        self._poller = poller
        self._model = model
        self._prompt = prompt
        self._completion_window = completion_window
        self._start_size = snap_to_ladder(start_size)
        self._work_dir = work_dir

    def run(self, client: BaseBatchClient, job_id: str, items: list[WorkItem]) -> list[BatchRecord]:
        """Submit and await every primary batch of the job; returns them in order.

        Batches already recorded for the job are resumed, never resubmitted.

        Raises:
            BatchCapacityExhaustedError: if even the smallest batch size is refused.
            BatchFailedError: if a batch ends failed, expired or cancelled.
        """
        accepted: list[BatchRecord] = []
        batch_size = self._start_size
        offset = 0
        batch_index = 0

        for batch in self._batch_repo.list_for_job(job_id):
            if batch.is_retry:
                continue
            batch_size = batch.batch_size
            resumed = self.resume(client, batch)
            if resumed is None:
                # Never accepted by the provider: submit again from this chunk.
                offset = batch.start_index
                batch_index = batch.batch_index
                break
            self._poller.wait(client, resumed)
            accepted.append(resumed)
            offset = batch.start_index + batch.item_count
            batch_index = batch.batch_index + 1

        if accepted:
            Log.info(
                f"Resuming job {job_id} at item {offset} with batch size {batch_size} "
                f"({len(accepted)} batches already accepted)"
            )

        queue = deque(partition(items, offset, batch_size))
        while queue:
            entries = queue.popleft()
            try:
                batch = self.submit(client, job_id, batch_index, entries, batch_size)
            except InferenceCapacityError as exc:
                smaller = next_rung(batch_size)
                if smaller is None:
                    raise BatchCapacityExhaustedError(
                        f"Provider refused batches of {batch_size} items for job {job_id}: {exc}"
                    ) from exc
                Log.warning(
                    f"Batch {batch_index} of job {job_id} refused at size {batch_size}, "
                    f"retrying with {smaller}: {exc}"
                )
                self._batch_repo.record_step_down(job_id, batch_index, smaller)
                batch_size = smaller
                queue = deque(partition(items, entries[0][0], batch_size))
                continue
            self._poller.wait(client, batch)
            accepted.append(batch)
            batch_index += 1

        Log.info(f"All {len(accepted)} batches of job {job_id} completed")
        return accepted

    def submit(
        self,
        client: BaseBatchClient,
        job_id: str,
        batch_index: int,
        entries: Entries,
        batch_size: int,
        is_retry: bool = False,
    ) -> BatchRecord:
        """Write, upload and create one batch, memoized by its batch row.

        Raises:
            InferenceCapacityError: if the provider refuses the batch for its size.
        """
        workspace = JobWorkspace(self._work_dir, job_id)
        workspace.ensure()
        path = workspace.batch_jsonl_path(batch_index)
        with path.open("w", encoding="utf-8") as handle:
            for global_index, item in entries:
                correlation_id = CorrelationId(job_id, batch_index, global_index, item.filename)
                handle.write(
                    build_request_line(correlation_id, item, model=self._model, prompt=self._prompt)
                )
                handle.write("\n")

        input_file_id = client.upload_batch_file(path)
        record = self._batch_repo.reserve(
            job_id=job_id,
            batch_index=batch_index,
            start_index=entries[0][0],
            item_count=len(entries),
            batch_size=batch_size,
            input_file_id=input_file_id,
            is_retry=is_retry,
        )
        try:
            remote = client.create_batch(
                input_file_id,
                completion_window=self._completion_window,
                metadata={"job_id": job_id, "batch_index": str(batch_index)},
            )
        except InferenceCapacityError:
            self._discard_input_file(client, input_file_id)
            raise

        return self._accept(record, remote.batch_id, remote.status)

    def resume(self, client: BaseBatchClient, batch: BatchRecord) -> BatchRecord | None:
        """Return a recorded batch as accepted, or None if the provider never created it.

        A row without a provider batch id may still have been created right
        before a crash; the provider's batch list is searched for its input file.
        """
        if batch.provider_batch_id is not None:
            return batch
        if batch.input_file_id is None:
            return None
        remote = client.find_batch_by_input_file(batch.input_file_id)
        if remote is None:
            return None
        Log.info(
            f"Recovered batch {remote.batch_id} for batch {batch.batch_index} of job {batch.job_id}"
        )
        return self._accept(batch, remote.batch_id, remote.status)

    def _accept(self, record: BatchRecord, provider_batch_id: str, status: str) -> BatchRecord:
        self._batch_repo.mark_submitted(record.job_id, record.batch_index, provider_batch_id, status)
        changes: dict[str, object] = {
            "total_batches": record.batch_index + 1,
            "batch_id": provider_batch_id,
            "batch_input_file_id": record.input_file_id,
        }
        if not record.is_retry:
            changes["submitted_images"] = record.start_index + record.item_count
        self._job_repo.update_fields(record.job_id, **changes)
        Log.info(
            f"Batch {record.batch_index} of job {record.job_id} accepted as {provider_batch_id} "
            f"({record.item_count} items{', retry' if record.is_retry else ''})"
        )
        return replace(record, provider_batch_id=provider_batch_id, status=status)

    @staticmethod
    def _discard_input_file(client: BaseBatchClient, input_file_id: str) -> None:
        try:
            client.delete_file(input_file_id)
        except InferenceError as exc:
            Log.warning(f"Could not delete orphaned batch input file {input_file_id}: {exc}")
