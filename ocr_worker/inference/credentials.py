from abc import ABC, abstractmethod

from ocr_worker.config.settings import Settings
from ocr_worker.inference.exceptions import MissingCredentialError


class BaseCredentialProvider(ABC):
    """Resolves the inference provider API key to use for a job owner."""

    @abstractmethod
    def api_key_for(self, user_id: str) -> str:
        """Return the API key for ``user_id``.

        Raises:
            MissingCredentialError: if the owner has no usable credential.
        """


class SettingsCredentialProvider(BaseCredentialProvider):
    """Uses the single key configured for the worker, whoever owns the job."""

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettingsCredentialProvider":
        return cls(settings.openai_api_key)

    def api_key_for(self, user_id: str) -> str:
        if not self._api_key.strip():
            raise MissingCredentialError(
                f"No OpenAI API key is configured for user {user_id}"
            )
        return self._api_key
