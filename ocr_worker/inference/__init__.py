from ocr_worker.inference.client_base import BaseBatchClient, BatchStatus
from ocr_worker.inference.factory import BatchClientFactory
from ocr_worker.inference.openai_batch_adapter import OpenAIBatchAdapter

__all__ = ["BaseBatchClient", "BatchClientFactory", "BatchStatus", "OpenAIBatchAdapter"]
