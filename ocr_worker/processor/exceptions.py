class OcrPipelineError(Exception):
    """Base exception for all pipeline errors.

    ``retryable`` tells the job runner whether running the job again without
    outside intervention could succeed.
    """

    retryable = False


class JobInputError(OcrPipelineError):
    """Raised when a job lacks what it needs to run (owner, archive, supported type)."""


class EmptyArchiveError(JobInputError):
    """Raised when an archive holds no processable frame images."""


class InvalidArchiveError(JobInputError):
    """Raised when the source archive cannot be read as a zip file."""


class BatchCapacityExhaustedError(OcrPipelineError):
    """Raised when the provider rejects even the smallest batch size."""


class BatchFailedError(OcrPipelineError):
    """Raised when a provider batch ends failed, expired or cancelled."""


class ReconciliationError(OcrPipelineError):
    """Raised when batch output cannot be parsed."""


class FrameCountMismatchError(ReconciliationError):
    """Raised when reconciled frames do not cover every expected work item."""


class EmptyDocumentError(OcrPipelineError):
    """Raised when the frames of a job contain no text at all."""
