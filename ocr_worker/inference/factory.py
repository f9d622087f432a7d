from ocr_worker.config.settings import Settings
from ocr_worker.inference.client_base import BaseBatchClient
from ocr_worker.inference.openai_batch_adapter import OpenAIBatchAdapter


class BatchClientFactory:
    """Creates batch clients bound to a resolved API key."""

    @classmethod
    def create(cls, settings: Settings, api_key: str) -> BaseBatchClient:
        return OpenAIBatchAdapter(
            api_key=api_key,
            timeout_seconds=settings.openai_timeout_seconds,
            base_url=settings.openai_base_url,
        )
