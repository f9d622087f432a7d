"""Work-Item Builder: archive in, sorted work items out."""

import zipfile
from pathlib import Path

from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.logging.logger import Log
from ocr_worker.preprocessing.filenames import natural_sort_key, validate_processable_entry
from ocr_worker.preprocessing.models import BuildResult, WorkItem
from ocr_worker.preprocessing.transform_base import BaseFrameTransformer
from ocr_worker.processor.exceptions import EmptyArchiveError, InvalidArchiveError
from ocr_worker.processor.workspace import JobWorkspace
from ocr_worker.storage import keys
from ocr_worker.storage.object_storage import ObjectStorage

THUMBNAIL_CACHE_CONTROL = "public, max-age=31536000, immutable"


class WorkItemBuilder:
    """Streams a frame archive entry by entry into crops, a thumbnail and a filtered archive.

    Only one entry is held in memory at a time: the archive is streamed to the
    job workspace, each entry is read, transformed and its crop uploaded before
    the next one is touched, and accepted originals are appended to the
    filtered archive on disk.
    """

    def __init__(
        self,
        storage: ObjectStorage,
        transformer: BaseFrameTransformer,
        job_repo: JobRepository,
        signed_url_ttl_seconds: int,
        work_dir: Path,
    ) -> None:
        self._storage = storage
        self._transformer = transformer
        self._job_repo = job_repo
        self._signed_url_ttl_seconds = signed_url_ttl_seconds
        self._work_dir = work_dir

    def build(self, job_id: str, archive_key: str) -> BuildResult:
        """Preprocess the archive at ``archive_key``.

        Raises:
            InvalidArchiveError: if the archive is not a readable zip file.
            EmptyArchiveError: if no entry is a processable frame image.
            FrameTransformError: if any frame fails to transform.
        """
        workspace = JobWorkspace(self._work_dir, job_id)
        workspace.ensure()
        source_path = self._storage.download_file(archive_key, workspace.source_archive_path)
        Log.info(f"Downloaded archive {archive_key} for job {job_id}")

        items: list[WorkItem] = []
        archived_bases: set[str] = set()
        thumbnail_key: str | None = None

        try:
            with (
                zipfile.ZipFile(source_path) as source,
                zipfile.ZipFile(
                    workspace.filtered_archive_path,
                    "w",
                    compression=zipfile.ZIP_DEFLATED,
                    compresslevel=9,
                ) as filtered,
            ):
                for info in source.infolist():
                    if info.is_dir():
                        continue
                    entry = validate_processable_entry(info.filename)
                    if entry is None:
                        Log.debug(f"Skipping archive entry {info.filename}")
                        continue

                    original = source.read(info)
                    images = self._transformer.transform(original)

                    if entry.include_in_archive and entry.base_key not in archived_bases:
                        archived_bases.add(entry.base_key)
                        filtered.writestr(entry.archive_filename, original)

                    items.append(
                        self._upload_crop(
                            job_id,
                            entry.original_name,
                            entry.crop_filename(len(items)),
                            entry.base_key,
                            images.crop,
                        )
                    )

                    if thumbnail_key is None:
                        thumbnail_key = keys.thumbnail_key(job_id)
                        self._storage.put_bytes(
                            thumbnail_key,
                            self._transformer.thumbnail(images.normalized),
                            "image/jpeg",
                            cache_control=THUMBNAIL_CACHE_CONTROL,
                        )

                    self._job_repo.update_fields(
                        job_id, processed_images=len(items), total_images=len(items)
                    )
        except zipfile.BadZipFile as exc:
            raise InvalidArchiveError(f"Archive {archive_key} is not a valid zip: {exc}") from exc

        if not items:
            raise EmptyArchiveError("No processable frame images found in the archive")

        raw_zip_key = keys.raw_archive_key(job_id)
        raw_zip_size = self._storage.upload_file(
            raw_zip_key, workspace.filtered_archive_path, "application/zip"
        )

        items.sort(key=lambda item: natural_sort_key(item.filename))
        Log.info(
            f"Preprocessed {len(items)} frames for job {job_id} "
            f"({len(archived_bases)} in filtered archive)"
        )
        return BuildResult(
            total_images=len(items),
            raw_zip_key=raw_zip_key,
            raw_zip_size_bytes=raw_zip_size,
            thumbnail_key=thumbnail_key,
            items=items,
        )

    def _upload_crop(
        self, job_id: str, filename: str, crop_filename: str, base_key: str, crop: bytes
    ) -> WorkItem:
        crop_key = keys.crop_key(job_id, crop_filename)
        self._storage.put_bytes(crop_key, crop, "image/png")
        signed_url = self._storage.presign_get(
            crop_key,
            self._signed_url_ttl_seconds,
            response_content_type="image/png",
            download_filename=crop_filename,
        )
        return WorkItem(
            filename=filename,
            base_key=base_key,
            crop_key=crop_key,
            signed_url=signed_url,
        )
