from pathlib import Path
from typing import Any

import httpx
import openai

from ocr_worker.inference.client_base import BaseBatchClient, BatchStatus
from ocr_worker.inference.exceptions import (
    InferenceCapacityError,
    InferenceError,
    InferenceNetworkError,
)

CHAT_COMPLETIONS_ENDPOINT = "/v1/chat/completions"

# Error codes OpenAI uses when a batch is too large for the account's limits.
_CAPACITY_ERROR_CODES = frozenset(
    {
        "token_limit_exceeded",
        "rate_limit_exceeded",
        "insufficient_quota",
        "batch_size_exceeded",
    }
)


def _is_capacity_error(exc: openai.APIStatusError) -> bool:
    if isinstance(exc, openai.RateLimitError) or exc.status_code == 429:
        return True
    return (exc.code or "") in _CAPACITY_ERROR_CODES


class OpenAIBatchAdapter(BaseBatchClient):
    """Batch client built on the OpenAI Files and Batches APIs."""

    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: int,
        base_url: str | None = None,
    ) -> None:
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )

    def upload_batch_file(self, path: Path) -> str:
        try:
            with path.open("rb") as handle:
                uploaded = self._client.files.create(file=handle, purpose="batch")
        except openai.APIStatusError as exc:
            if _is_capacity_error(exc):
                raise InferenceCapacityError(f"Batch file rejected: {exc}") from exc
            raise InferenceError(f"Batch file upload failed: {exc}") from exc
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise InferenceNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise InferenceError(f"Batch file upload failed: {exc}") from exc
        return uploaded.id

    def create_batch(
        self, input_file_id: str, *, completion_window: str, metadata: dict[str, str]
    ) -> BatchStatus:
        try:
            batch = self._client.batches.create(
                input_file_id=input_file_id,
                endpoint=CHAT_COMPLETIONS_ENDPOINT,
                completion_window=completion_window,
                metadata=metadata,
            )
        except openai.APIStatusError as exc:
            if _is_capacity_error(exc):
                raise InferenceCapacityError(f"Batch rejected for capacity: {exc}") from exc
            raise InferenceError(f"Batch creation failed: {exc}") from exc
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise InferenceNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise InferenceError(f"Batch creation failed: {exc}") from exc
        return self._to_status(batch)

    def find_batch_by_input_file(self, input_file_id: str) -> BatchStatus | None:
        try:
            for batch in self._client.batches.list(limit=100):
                if batch.input_file_id == input_file_id:
                    return self._to_status(batch)
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise InferenceNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise InferenceError(f"Listing batches failed: {exc}") from exc
        return None

    def retrieve_batch(self, batch_id: str) -> BatchStatus:
        try:
            batch = self._client.batches.retrieve(batch_id)
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise InferenceNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise InferenceError(f"Retrieving batch {batch_id} failed: {exc}") from exc
        return self._to_status(batch)

    def download_file_text(self, file_id: str) -> str:
        try:
            return self._client.files.content(file_id).text
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise InferenceNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise InferenceError(f"Downloading file {file_id} failed: {exc}") from exc

    def delete_file(self, file_id: str) -> None:
        try:
            self._client.files.delete(file_id)
        except openai.APIError as exc:
            raise InferenceError(f"Deleting file {file_id} failed: {exc}") from exc

    @staticmethod
    def _to_status(batch: Any) -> BatchStatus:
        return BatchStatus(
            batch_id=batch.id,
            status=batch.status,
            output_file_id=batch.output_file_id,
            error_file_id=batch.error_file_id,
        )
