from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class BatchStatus:
    """Provider-side snapshot of a batch."""

    batch_id: str
    status: str
    output_file_id: str | None = None
    error_file_id: str | None = None


class BaseBatchClient(ABC):
    """Contract for provider-specific batch inference clients."""

    @abstractmethod
    def upload_batch_file(self, path: Path) -> str:
        """Upload a JSONL request file and return its provider file id."""

    @abstractmethod
    def create_batch(
        self, input_file_id: str, *, completion_window: str, metadata: dict[str, str]
    ) -> BatchStatus:
        """Create a batch over an uploaded input file.

        Raises:
            InferenceCapacityError: if the provider refuses the batch for its size.
        """

    @abstractmethod
    def find_batch_by_input_file(self, input_file_id: str) -> BatchStatus | None:
        """Return an existing batch created from ``input_file_id``, if any."""

    @abstractmethod
    def retrieve_batch(self, batch_id: str) -> BatchStatus:
        """Fetch the current status of a batch."""

    @abstractmethod
    def download_file_text(self, file_id: str) -> str:
        """Return the text content of a provider file."""

    @abstractmethod
    def delete_file(self, file_id: str) -> None:
        """Delete a provider file."""
