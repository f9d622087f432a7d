class StorageError(Exception):
    """Raised when an object storage operation fails."""


class ObjectNotFoundError(StorageError):
    """Raised when a key does not exist in the bucket."""
