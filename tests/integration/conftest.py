import os
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from ocr_worker.config.settings import Settings
from ocr_worker.database.connection import close_pool, get_connection, init_pool
from ocr_worker.database.models import JobRecord, JobStatus, JobStep

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "ocr_worker" / "database" / "schema.sql"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "ocr_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute(SCHEMA_PATH.read_text(encoding="utf-8"))
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run integration tests")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(integration_pool: None) -> Generator[list[str], None, None]:
    """Job ids to delete after the test; dependent rows cascade."""
    cleanup: list[str] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        conn.execute("DELETE FROM ocr_jobs WHERE job_id = ANY(%s)", (cleanup,))
        conn.commit()


@pytest.fixture
def make_job(
    db_conn: psycopg.Connection[Any], integration_cleanup: list[str]
) -> Any:
    def _make(status: str = "pending", step: str = "preprocessing", attempts: int = 0) -> JobRecord:
        job_id = f"test-{uuid.uuid4()}"
        with db_conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO ocr_jobs (job_id, user_id, status, step, attempts, zip_path)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (job_id, "user-1", status, step, attempts, f"uploads/{job_id}.zip"),
            )
            row = cur.fetchone()
            assert row is not None
        db_conn.commit()
        integration_cleanup.append(job_id)
        return JobRecord(
            id=row[0],
            job_id=job_id,
            user_id="user-1",
            status=JobStatus(status),
            step=JobStep(step),
            attempts=attempts,
            zip_path=f"uploads/{job_id}.zip",
        )

    return _make


@pytest.fixture
def seed_job(make_job: Any) -> JobRecord:
    return make_job()
