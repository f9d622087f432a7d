class InferenceError(Exception):
    """Raised when a call to the inference provider fails."""


class InferenceNetworkError(InferenceError):
    """Raised when the provider cannot be reached (connection, timeout, 5xx)."""


class InferenceCapacityError(InferenceError):
    """Raised when the provider rejects a batch for its size (token or rate limits)."""


class MissingCredentialError(InferenceError):
    """Raised when no provider credential is available for a job owner."""
