"""Result Reconciler: batch output lines back to ordered frames."""

import json
from typing import Any

from ocr_worker.database.models import BatchRecord, FrameRecord, JobStep
from ocr_worker.database.repositories.batch_repository import BatchRepository
from ocr_worker.database.repositories.frame_repository import FrameRepository
from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.inference.batch_lines import (
    extract_completion_text,
    normalize_frame_text,
    parse_correlation_id,
)
from ocr_worker.inference.client_base import BaseBatchClient
from ocr_worker.logging.logger import Log
from ocr_worker.preprocessing.models import WorkItem
from ocr_worker.processor.exceptions import FrameCountMismatchError, ReconciliationError
from ocr_worker.processor.poller import CompletionPoller
from ocr_worker.processor.submitter import AdaptiveBatchSubmitter


def _is_failed_line(record: dict[str, Any]) -> bool:
    if record.get("error"):
        return True
    status_code = (record.get("response") or {}).get("status_code")
    return status_code is not None and not 200 <= int(status_code) < 300


class ResultReconciler:
    """Turns batch outputs into exactly one frame per work item.

    A failed line is kept as a provisional empty frame so the frame count
    stays complete. Failed and missing items are sent once more in a single
    supplementary batch whose results replace the provisional entries. Items
    that never appear in any output make the job fail.
    """

    def __init__(
        self,
        batch_repo: BatchRepository,
        frame_repo: FrameRepository,
        job_repo: JobRepository,
        submitter: AdaptiveBatchSubmitter,
        poller: CompletionPoller,
    ) -> None:
        self._batch_repo = batch_repo
        self._frame_repo = frame_repo
        self._job_repo = job_repo
        self._submitter = submitter
        self._poller = poller

    def reconcile(
        self, client: BaseBatchClient, job_id: str, items: list[WorkItem]
    ) -> list[FrameRecord]:
        """Collect, retry once if needed, persist the frames and advance to RESULTS_SAVED.

        Raises:
            ReconciliationError: if an output line is not valid JSON.
            FrameCountMismatchError: if some items are still missing after the retry round.
        """
        batches = self._batch_repo.list_for_job(job_id)
        primary = [batch for batch in batches if not batch.is_retry]
        if not primary:
            raise ReconciliationError(f"Job {job_id} has no submitted batches")

        texts: dict[int, str] = {}
        failed: set[int] = set()
        for batch in primary:
            expected = set(range(batch.start_index, batch.start_index + batch.item_count))
            self._collect(client, batch, items, expected, texts, failed)

        unresolved = sorted(failed | {index for index in range(len(items)) if index not in texts})
        if unresolved:
            Log.warning(
                f"{len(unresolved)} of {len(items)} frames of job {job_id} failed or are "
                f"missing, submitting a retry batch"
            )
            retry = self._retry_batch(client, job_id, batches, primary, items, unresolved)
            self._poller.wait(client, retry)
            self._collect(client, retry, items, set(unresolved), texts, failed)

        if failed:
            Log.warning(
                f"{len(failed)} frames of job {job_id} still failed after the retry round "
                f"and are saved with empty text: {sorted(failed)[:20]}"
            )
        missing = [index for index in range(len(items)) if index not in texts]
        if missing:
            raise FrameCountMismatchError(
                f"Reconciled {len(texts)} of {len(items)} frames for job {job_id}; "
                f"missing indices: {missing[:20]}"
            )

        frames = [
            FrameRecord(
                job_id=job_id,
                filename=items[index].filename,
                base_key=items[index].base_key,
                index=index,
                text=texts[index],
            )
            for index in range(len(items))
        ]
        self._frame_repo.replace_for_job(job_id, frames)
        self._job_repo.advance_step(job_id, JobStep.RESULTS_SAVED)
        Log.info(f"Saved {len(frames)} frames for job {job_id}")
        return frames

    def _retry_batch(
        self,
        client: BaseBatchClient,
        job_id: str,
        batches: list[BatchRecord],
        primary: list[BatchRecord],
        items: list[WorkItem],
        unresolved: list[int],
    ) -> BatchRecord:
        entries = [(index, items[index]) for index in unresolved]
        existing = next((batch for batch in batches if batch.is_retry), None)
        if existing is not None:
            resumed = self._submitter.resume(client, existing)
            if resumed is not None:
                return resumed
            batch_index = existing.batch_index
        else:
            batch_index = max(batch.batch_index for batch in primary) + 1
        return self._submitter.submit(
            client,
            job_id,
            batch_index,
            entries,
            batch_size=primary[-1].batch_size,
            is_retry=True,
        )

    def _collect(
        self,
        client: BaseBatchClient,
        batch: BatchRecord,
        items: list[WorkItem],
        expected: set[int],
        texts: dict[int, str],
        failed: set[int],
    ) -> None:
        """Merge one batch output into ``texts``.

        A failed line gets a provisional empty text, unless the item already has
        one, and its index is added to ``failed``. A successful line overwrites
        whatever is there and clears the index from ``failed``.
        """
        if batch.output_file_id is None:
            Log.warning(f"Batch {batch.batch_index} of job {batch.job_id} has no output file")
            return

        content = client.download_file_text(batch.output_file_id)
        failed_lines = 0
        for line_number, raw in enumerate(content.splitlines(), start=1):
            if not raw.strip():
                continue
            try:
                record = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ReconciliationError(
                    f"Invalid JSON on line {line_number} of batch output "
                    f"{batch.output_file_id}: {exc}"
                ) from exc
            if not isinstance(record, dict):
                raise ReconciliationError(
                    f"Unexpected line {line_number} in batch output {batch.output_file_id}"
                )

            index = self._item_index(batch, items, expected, str(record.get("custom_id", "")))
            if index is None:
                Log.warning(
                    f"Ignoring unknown correlation id {record.get('custom_id')!r} "
                    f"in batch {batch.batch_index} of job {batch.job_id}"
                )
                continue

            if _is_failed_line(record):
                failed_lines += 1
                if index not in texts:
                    texts[index] = ""
                    failed.add(index)
                continue
            body = (record.get("response") or {}).get("body")
            texts[index] = normalize_frame_text(extract_completion_text(body))
            failed.discard(index)

        if failed_lines:
            Log.warning(f"{failed_lines} lines failed in batch {batch.batch_index} of job {batch.job_id}")

    @staticmethod
    def _item_index(
        batch: BatchRecord, items: list[WorkItem], expected: set[int], custom_id: str
    ) -> int | None:
        """Global index of the item a correlation id refers to, if this batch sent it."""
        parsed = parse_correlation_id(custom_id)
        if parsed is None:
            return None
        if parsed.job_id != batch.job_id or parsed.batch_index != batch.batch_index:
            return None
        if parsed.global_index not in expected or parsed.global_index >= len(items):
            return None
        if items[parsed.global_index].filename != parsed.filename:
            return None
        return parsed.global_index
