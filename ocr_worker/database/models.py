from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class JobStep(str, Enum):
    """Pipeline checkpoints, in the only order a job may move through them."""

    PREPROCESSING = "preprocessing"
    BATCH_SUBMITTED = "batch_submitted"
    RESULTS_SAVED = "results_saved"
    DOCS_BUILT = "docs_built"

    @property
    def position(self) -> int:
        return list(JobStep).index(self)

    def earlier_steps(self) -> list["JobStep"]:
        return list(JobStep)[: self.position]


class JobType(str, Enum):
    OCR = "ocr"
    SUBTITLE_REMOVAL = "subtitle_removal"


@dataclass
class JobRecord:
    """Represents a row from the ocr_jobs table."""

    id: int
    job_id: str
    user_id: str | None
    status: JobStatus
    step: JobStep
    attempts: int = 0
    job_type: JobType = JobType.OCR
    parent_job_id: str | None = None
    error: str | None = None
    zip_path: str | None = None
    raw_zip_path: str | None = None
    raw_zip_size_bytes: int | None = None
    thumbnail_key: str | None = None
    txt_path: str | None = None
    txt_size_bytes: int | None = None
    docx_path: str | None = None
    docx_size_bytes: int | None = None
    total_images: int = 0
    processed_images: int = 0
    submitted_images: int = 0
    total_batches: int = 0
    batches_completed: int = 0
    batch_id: str | None = None
    batch_input_file_id: str | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class BatchRecord:
    """Represents a row from the ocr_job_batches table."""

    id: int
    job_id: str
    batch_index: int
    start_index: int
    item_count: int
    batch_size: int
    is_retry: bool = False
    input_file_id: str | None = None
    provider_batch_id: str | None = None
    status: str | None = None
    output_file_id: str | None = None
    error_file_id: str | None = None
    poll_attempts: int = 0
    next_poll_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class FrameRecord:
    """Represents a row from the ocr_job_frames table."""

    job_id: str
    filename: str
    base_key: str
    index: int
    text: str
