from dataclasses import fields
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from ocr_worker.database.connection import get_connection
from ocr_worker.database.models import JobRecord, JobStatus, JobStep, JobType

_JOB_COLUMNS = [f.name for f in fields(JobRecord)]

# Columns the pipeline may write through partial updates.
_UPDATABLE_COLUMNS = frozenset(
    {
        "error",
        "raw_zip_path",
        "raw_zip_size_bytes",
        "thumbnail_key",
        "txt_path",
        "txt_size_bytes",
        "docx_path",
        "docx_size_bytes",
        "total_images",
        "processed_images",
        "submitted_images",
        "total_batches",
        "batches_completed",
        "batch_id",
        "batch_input_file_id",
    }
)


def _row_to_job(row: dict[str, Any]) -> JobRecord:
    values = {name: row[name] for name in _JOB_COLUMNS if name in row}
    values["status"] = JobStatus(row["status"])
    values["step"] = JobStep(row["step"])
    values["job_type"] = JobType(row["job_type"])
    return JobRecord(**values)


def _assignments(changes: dict[str, object]) -> list[sql.Composed]:
    unknown = set(changes) - _UPDATABLE_COLUMNS
    if unknown:
        raise ValueError(f"Columns not updatable on ocr_jobs: {sorted(unknown)}")
    return [
        sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder(column))
        for column in changes
    ]


class JobRepository:
    """Database operations for the ocr_jobs table."""

    def __init__(self, max_attempts: int, stale_lock_seconds: int = 900) -> None:
        self._max_attempts = max_attempts
        self._stale_lock_seconds = stale_lock_seconds

    def claim_next_job(self, conn: psycopg.Connection[Any]) -> JobRecord | None:
        """Claim the next runnable job using SELECT FOR UPDATE SKIP LOCKED.

        Pending jobs are claimed first-come first-served. A processing job whose
        lock has not been refreshed for ``stale_lock_seconds`` belongs to a worker
        that died mid-pipeline and is claimed again so it resumes at its step.
        """
        query = sql.SQL(
            """
            SELECT {columns}
            FROM ocr_jobs
            WHERE attempts < %s
              AND (
                status = 'pending'
                OR (status = 'processing'
                    AND locked_at < NOW() - make_interval(secs => %s))
              )
            ORDER BY created_at
            LIMIT 1
            FOR UPDATE SKIP LOCKED
            """
        ).format(columns=sql.SQL(", ").join(map(sql.Identifier, _JOB_COLUMNS)))
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(query, (self._max_attempts, self._stale_lock_seconds))
            row = cur.fetchone()

        if row is None:
            conn.commit()
            return None

        conn.execute(
            """
            UPDATE ocr_jobs
            SET status = 'processing', locked_at = NOW(), updated_at = NOW()
            WHERE job_id = %s
            """,
            (row["job_id"],),
        )
        conn.commit()

        job = _row_to_job(row)
        job.status = JobStatus.PROCESSING
        return job

    def find_by_id(self, job_id: str) -> JobRecord | None:
        """Find a job by its external job id."""
        query = sql.SQL("SELECT {columns} FROM ocr_jobs WHERE job_id = %s").format(
            columns=sql.SQL(", ").join(map(sql.Identifier, _JOB_COLUMNS))
        )
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (job_id,))
                row = cur.fetchone()

        if row is None:
            return None
        return _row_to_job(row)

    def update_fields(self, job_id: str, **changes: object) -> None:
        """Partial single-row update of pipeline bookkeeping columns."""
        if not changes:
            return
        query = sql.SQL(
            "UPDATE ocr_jobs SET {assignments}, updated_at = NOW() WHERE job_id = {job_id}"
        ).format(
            assignments=sql.SQL(", ").join(_assignments(changes)),
            job_id=sql.Placeholder("job_id"),
        )
        with get_connection() as conn:
            conn.execute(query, {**changes, "job_id": job_id})
            conn.commit()

    def advance_step(self, job_id: str, step: JobStep, **changes: object) -> bool:
        """Move the job forward to ``step`` together with any extra columns.

        The update only matches while the persisted step is still earlier than
        ``step``, so a step can never move backwards. Returns False when the
        job was already at or past ``step``.
        """
        assignments = [sql.SQL("step = {}").format(sql.Placeholder("step"))]
        assignments += _assignments(changes)
        query = sql.SQL(
            """
            UPDATE ocr_jobs
            SET {assignments}, updated_at = NOW()
            WHERE job_id = {job_id} AND step = ANY({earlier})
            """
        ).format(
            assignments=sql.SQL(", ").join(assignments),
            job_id=sql.Placeholder("job_id"),
            earlier=sql.Placeholder("earlier"),
        )
        params = {
            **changes,
            "step": step.value,
            "job_id": job_id,
            "earlier": [s.value for s in step.earlier_steps()],
        }
        with get_connection() as conn:
            cur = conn.execute(query, params)
            advanced = cur.rowcount > 0
            conn.commit()
        return advanced

    def mark_done(self, job_id: str, **changes: object) -> None:
        """Mark a job as done at its final step, writing output pointers atomically."""
        assignments = _assignments(changes)
        assignments.append(sql.SQL("step = 'docs_built'"))
        query = sql.SQL(
            """
            UPDATE ocr_jobs
            SET status = 'done', {assignments}, error = NULL,
                locked_at = NULL, updated_at = NOW()
            WHERE job_id = {job_id}
            """
        ).format(
            assignments=sql.SQL(", ").join(assignments),
            job_id=sql.Placeholder("job_id"),
        )
        with get_connection() as conn:
            conn.execute(query, {**changes, "job_id": job_id})
            conn.commit()

    def mark_failed(self, job_id: str, error: str) -> None:
        """Record the error; the step is left untouched so a retry resumes there."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE ocr_jobs
                SET status = 'error', error = %s, locked_at = NULL, updated_at = NOW()
                WHERE job_id = %s
                """,
                (error, job_id),
            )
            conn.commit()

    def increment_attempts(self, job_id: str) -> None:
        """Increment attempt count and return job to pending."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE ocr_jobs
                SET attempts = attempts + 1, status = 'pending',
                    locked_at = NULL, updated_at = NOW()
                WHERE job_id = %s
                """,
                (job_id,),
            )
            conn.commit()

    def increment_batches_completed(self, job_id: str) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE ocr_jobs
                SET batches_completed = batches_completed + 1, updated_at = NOW()
                WHERE job_id = %s
                """,
                (job_id,),
            )
            conn.commit()

    def touch(self, job_id: str) -> None:
        """Refresh the claim lock of a job that is still being worked on."""
        with get_connection() as conn:
            conn.execute(
                "UPDATE ocr_jobs SET locked_at = NOW() WHERE job_id = %s",
                (job_id,),
            )
            conn.commit()
