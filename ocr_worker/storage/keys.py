"""Object storage key layout for OCR jobs."""

IMAGES_PREFIX = "image-files"
TXT_PREFIX = "txt"
WORD_PREFIX = "word"
TMP_PREFIX = "tmp"


def job_root_key(job_id: str) -> str:
    return f"{IMAGES_PREFIX}/{job_id}"


def raw_archive_key(job_id: str) -> str:
    return f"{job_root_key(job_id)}/raw-images.zip"


def thumbnail_key(job_id: str) -> str:
    return f"{job_root_key(job_id)}/thumbnail.jpg"


def crops_prefix(job_id: str) -> str:
    return f"{job_root_key(job_id)}/crops/"


def crop_key(job_id: str, filename: str) -> str:
    return f"{crops_prefix(job_id)}{filename}"


def txt_key(job_id: str) -> str:
    return f"{TXT_PREFIX}/{job_id}.txt"


def docx_key(job_id: str) -> str:
    return f"{WORD_PREFIX}/{job_id}.docx"


def manifest_key(job_id: str) -> str:
    return f"{TMP_PREFIX}/{job_id}/manifest.json"
