from unittest.mock import MagicMock, patch

import pytest

from ocr_worker.database.models import JobStatus, JobStep, JobType
from ocr_worker.database.repositories.job_repository import JobRepository


def _mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


def _make_row(**overrides: object) -> dict:
    row: dict[str, object] = {
        "id": 1,
        "job_id": "j1",
        "user_id": "u1",
        "status": "pending",
        "step": "batch_submitted",
        "job_type": "ocr",
        "attempts": 0,
        "total_images": 12,
    }
    row.update(overrides)
    return row


class TestJobStep:
    def test_earlier_steps(self) -> None:
        assert JobStep.RESULTS_SAVED.earlier_steps() == [JobStep.PREPROCESSING, JobStep.BATCH_SUBMITTED]
        assert JobStep.PREPROCESSING.earlier_steps() == []

    def test_positions_follow_pipeline_order(self) -> None:
        assert [s.position for s in JobStep] == [0, 1, 2, 3]


class TestFindById:
    @patch("ocr_worker.database.repositories.job_repository.get_connection")
    def test_maps_row_to_record(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row()

        job = JobRepository(max_attempts=3).find_by_id("j1")

        assert job is not None
        assert job.status == JobStatus.PENDING
        assert job.step == JobStep.BATCH_SUBMITTED
        assert job.job_type == JobType.OCR
        assert job.total_images == 12

    @patch("ocr_worker.database.repositories.job_repository.get_connection")
    def test_returns_none_when_missing(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert JobRepository(max_attempts=3).find_by_id("nope") is None


class TestUpdates:
    @patch("ocr_worker.database.repositories.job_repository.get_connection")
    def test_update_fields_rejects_unknown_columns(self, mock_get_conn: MagicMock) -> None:
        with pytest.raises(ValueError, match="status"):
            JobRepository(max_attempts=3).update_fields("j1", status="done")

        mock_get_conn.assert_not_called()

    @patch("ocr_worker.database.repositories.job_repository.get_connection")
    def test_update_fields_without_changes_is_a_no_op(self, mock_get_conn: MagicMock) -> None:
        JobRepository(max_attempts=3).update_fields("j1")

        mock_get_conn.assert_not_called()

    @patch("ocr_worker.database.repositories.job_repository.get_connection")
    def test_advance_step_only_matches_earlier_steps(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)
        mock_conn.execute.return_value.rowcount = 1

        advanced = JobRepository(max_attempts=3).advance_step(
            "j1", JobStep.RESULTS_SAVED, total_images=3
        )

        assert advanced is True
        params = mock_conn.execute.call_args.args[1]
        assert params["step"] == "results_saved"
        assert params["earlier"] == ["preprocessing", "batch_submitted"]
        assert params["total_images"] == 3
        mock_conn.commit.assert_called_once()

    @patch("ocr_worker.database.repositories.job_repository.get_connection")
    def test_advance_step_reports_stale_update(self, mock_get_conn: MagicMock) -> None:
        mock_conn, _cursor = _mock_connection(mock_get_conn)
        mock_conn.execute.return_value.rowcount = 0

        assert JobRepository(max_attempts=3).advance_step("j1", JobStep.BATCH_SUBMITTED) is False
