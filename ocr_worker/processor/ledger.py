from collections.abc import Callable
from typing import Any, TypeVar

from ocr_worker.database.repositories.step_repository import StepRepository
from ocr_worker.logging.logger import Log

T = TypeVar("T")


class StepLedger:
    """Durable memo of completed stage results, keyed by (job_id, step name).

    A stage that already completed for a job is not executed again; its
    stored result is decoded and returned instead.
    """

    def __init__(self, step_repo: StepRepository) -> None:
        self._step_repo = step_repo

    def run(
        self,
        job_id: str,
        name: str,
        fn: Callable[[], T],
        encode: Callable[[T], Any],
        decode: Callable[[Any], T],
    ) -> T:
        stored = self._step_repo.find_result(job_id, name)
        if stored is not None:
            Log.info(f"Step {name} already completed for job {job_id}, reusing result")
            return decode(stored)
        result = fn()
        self._step_repo.save_result(job_id, name, encode(result))
        Log.debug(f"Recorded step {name} for job {job_id}")
        return result
