from typing import Any

from psycopg.types.json import Jsonb

from ocr_worker.database.connection import get_connection


class StepRepository:
    """Database operations for the ocr_job_steps memo ledger."""

    def find_result(self, job_id: str, step_name: str) -> Any | None:
        """Return the stored result of a completed step, or None if it never completed."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT result FROM ocr_job_steps WHERE job_id = %s AND step_name = %s",
                    (job_id, step_name),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return row[0]

    def save_result(self, job_id: str, step_name: str, result: Any) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO ocr_job_steps (job_id, step_name, result)
                VALUES (%s, %s, %s)
                ON CONFLICT (job_id, step_name) DO UPDATE
                SET result = EXCLUDED.result, updated_at = NOW()
                """,
                (job_id, step_name, Jsonb(result)),
            )
            conn.commit()

    def delete_for_job(self, job_id: str) -> None:
        with get_connection() as conn:
            conn.execute("DELETE FROM ocr_job_steps WHERE job_id = %s", (job_id,))
            conn.commit()
