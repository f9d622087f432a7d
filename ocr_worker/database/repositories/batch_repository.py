from dataclasses import fields
from datetime import datetime

from psycopg import sql
from psycopg.rows import dict_row

from ocr_worker.database.connection import get_connection
from ocr_worker.database.models import BatchRecord

_BATCH_COLUMNS = [f.name for f in fields(BatchRecord)]
_SELECT = sql.SQL("SELECT {columns} FROM ocr_job_batches").format(
    columns=sql.SQL(", ").join(map(sql.Identifier, _BATCH_COLUMNS))
)


class BatchRepository:
    """Database operations for the ocr_job_batches ledger.

    One row per submission to the inference provider. A row is reserved before
    the provider is asked to create the batch and completed right after, which
    makes the row the memo that keeps a resumed job from submitting twice.
    """

    def list_for_job(self, job_id: str) -> list[BatchRecord]:
        """Return all batches of a job ordered by batch index."""
        query = _SELECT + sql.SQL(" WHERE job_id = %s ORDER BY batch_index")
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (job_id,))
                rows = cur.fetchall()
        return [BatchRecord(**row) for row in rows]

    def reserve(
        self,
        *,
        job_id: str,
        batch_index: int,
        start_index: int,
        item_count: int,
        batch_size: int,
        input_file_id: str,
        is_retry: bool = False,
    ) -> BatchRecord:
        """Insert (or refresh, when nothing was created yet) the row for a batch."""
        query = sql.SQL(
            """
            INSERT INTO ocr_job_batches
                (job_id, batch_index, start_index, item_count, batch_size,
                 is_retry, input_file_id)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (job_id, batch_index) DO UPDATE
            SET start_index = EXCLUDED.start_index,
                item_count = EXCLUDED.item_count,
                batch_size = EXCLUDED.batch_size,
                is_retry = EXCLUDED.is_retry,
                input_file_id = EXCLUDED.input_file_id,
                updated_at = NOW()
            WHERE ocr_job_batches.provider_batch_id IS NULL
            RETURNING {columns}
            """
        ).format(columns=sql.SQL(", ").join(map(sql.Identifier, _BATCH_COLUMNS)))
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    query,
                    (
                        job_id,
                        batch_index,
                        start_index,
                        item_count,
                        batch_size,
                        is_retry,
                        input_file_id,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError(
                f"Batch {batch_index} of job {job_id} was already submitted"
            )
        return BatchRecord(**row)

    def mark_submitted(
        self, job_id: str, batch_index: int, provider_batch_id: str, status: str
    ) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE ocr_job_batches
                SET provider_batch_id = %s, status = %s, updated_at = NOW()
                WHERE job_id = %s AND batch_index = %s
                """,
                (provider_batch_id, status, job_id, batch_index),
            )
            conn.commit()

    def record_step_down(self, job_id: str, batch_index: int, batch_size: int) -> None:
        """Lower the size of a batch the provider refused, before anything is resubmitted.

        The refused input file is gone, so it is cleared as well. A resumed job
        then restarts this chunk at the smaller size.
        """
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE ocr_job_batches
                SET batch_size = %s, input_file_id = NULL, updated_at = NOW()
                WHERE job_id = %s AND batch_index = %s AND provider_batch_id IS NULL
                """,
                (batch_size, job_id, batch_index),
            )
            conn.commit()

    def record_poll(
        self,
        job_id: str,
        batch_index: int,
        *,
        status: str,
        poll_attempts: int,
        next_poll_at: datetime | None,
        output_file_id: str | None = None,
        error_file_id: str | None = None,
        completed: bool = False,
    ) -> None:
        """Persist the outcome of one status check and the next eligible check time."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE ocr_job_batches
                SET status = %s,
                    poll_attempts = %s,
                    next_poll_at = %s,
                    output_file_id = COALESCE(%s, output_file_id),
                    error_file_id = COALESCE(%s, error_file_id),
                    completed_at = CASE WHEN %s THEN NOW() ELSE completed_at END,
                    updated_at = NOW()
                WHERE job_id = %s AND batch_index = %s
                """,
                (
                    status,
                    poll_attempts,
                    next_poll_at,
                    output_file_id,
                    error_file_id,
                    completed,
                    job_id,
                    batch_index,
                ),
            )
            conn.commit()

    def delete_for_job(self, job_id: str) -> int:
        with get_connection() as conn:
            cur = conn.execute(
                "DELETE FROM ocr_job_batches WHERE job_id = %s", (job_id,)
            )
            deleted = cur.rowcount
            conn.commit()
        return deleted
