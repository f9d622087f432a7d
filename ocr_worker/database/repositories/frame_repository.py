from psycopg.rows import dict_row

from ocr_worker.database.connection import get_connection
from ocr_worker.database.models import FrameRecord


class FrameRepository:
    """Database operations for the ocr_job_frames table."""

    def replace_for_job(self, job_id: str, frames: list[FrameRecord]) -> None:
        """Delete every frame of the job and insert ``frames`` in one transaction.

        Re-running reconciliation for a job therefore always leaves exactly the
        latest frame set behind.
        """
        with get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute("DELETE FROM ocr_job_frames WHERE job_id = %s", (job_id,))
                    cur.executemany(
                        """
                        INSERT INTO ocr_job_frames (job_id, filename, base_key, index, text)
                        VALUES (%s, %s, %s, %s, %s)
                        """,
                        [
                            (job_id, f.filename, f.base_key, f.index, f.text)
                            for f in frames
                        ],
                    )

    def list_for_job(self, job_id: str) -> list[FrameRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT job_id, filename, base_key, index, text
                    FROM ocr_job_frames
                    WHERE job_id = %s
                    ORDER BY index
                    """,
                    (job_id,),
                )
                rows = cur.fetchall()
        return [FrameRecord(**row) for row in rows]
