from collections.abc import Callable
from pathlib import Path
from typing import Any

from ocr_worker.config.settings import Settings
from ocr_worker.database.models import JobRecord, JobStep, JobType
from ocr_worker.database.repositories.batch_repository import BatchRepository
from ocr_worker.database.repositories.frame_repository import FrameRepository
from ocr_worker.database.repositories.job_repository import JobRepository
from ocr_worker.database.repositories.step_repository import StepRepository
from ocr_worker.inference.client_base import BaseBatchClient
from ocr_worker.inference.credentials import BaseCredentialProvider, SettingsCredentialProvider
from ocr_worker.inference.exceptions import MissingCredentialError
from ocr_worker.inference.factory import BatchClientFactory
from ocr_worker.inference.prompt_loader import load_ocr_prompt
from ocr_worker.logging.logger import Log
from ocr_worker.preprocessing.builder import WorkItemBuilder
from ocr_worker.preprocessing.factory import FrameTransformerFactory
from ocr_worker.preprocessing.manifest import ManifestStore
from ocr_worker.preprocessing.models import BuildResult
from ocr_worker.processor.assembler import DocumentAssembler
from ocr_worker.processor.exceptions import JobInputError
from ocr_worker.processor.ledger import StepLedger
from ocr_worker.processor.poller import CompletionPoller
from ocr_worker.processor.reconciler import ResultReconciler
from ocr_worker.processor.submitter import AdaptiveBatchSubmitter
from ocr_worker.storage import keys
from ocr_worker.storage.object_storage import ObjectStorage

PREPROCESS_STEP_NAME = "ocr.preprocess-images-and-crops"


class OcrJobProcessor:
    """Drives one OCR job through its durable pipeline.

    Pipeline: preprocess -> submit and await batches -> reconcile -> documents.
    Each stage ends with a forward-only step update, and a job that is run
    again starts at the stage of its persisted step.
    """

    def __init__(
        self,
        job_repo: JobRepository,
        builder: WorkItemBuilder,
        manifest_store: ManifestStore,
        ledger: StepLedger,
        submitter: AdaptiveBatchSubmitter,
        reconciler: ResultReconciler,
        assembler: DocumentAssembler,
        credentials: BaseCredentialProvider,
        client_factory: Callable[[str], BaseBatchClient],
    ) -> None:
        self._job_repo = job_repo
        self._builder = builder
        self._manifest_store = manifest_store
        self._ledger = ledger
        self._submitter = submitter
        self._reconciler = reconciler
        self._assembler = assembler
        self._credentials = credentials
        self._client_factory = client_factory

    def process(self, job: JobRecord) -> None:
        """Run every remaining stage of ``job``.

        On failure the job is marked as errored with the message, its step is
        left where it was, and the exception is re-raised.
        """
        Log.info(f"Processing job {job.job_id} from step {job.step.value}")
        try:
            self._run(job)
        except Exception as exc:
            self._job_repo.mark_failed(job.job_id, str(exc))
            raise

    def _run(self, job: JobRecord) -> None:
        if job.step == JobStep.DOCS_BUILT:
            Log.warning(f"Job {job.job_id} already has its documents, nothing to do")
            return

        api_key = self._validate(job)
        items = None

        if job.step == JobStep.PREPROCESSING:
            result = self._preprocess(job)
            self._job_repo.advance_step(
                job.job_id,
                JobStep.BATCH_SUBMITTED,
                raw_zip_path=result.raw_zip_key,
                raw_zip_size_bytes=result.raw_zip_size_bytes,
                thumbnail_key=result.thumbnail_key,
                total_images=result.total_images,
                processed_images=result.total_images,
            )
            items = result.items
            Log.info(f"Job {job.job_id} preprocessed {result.total_images} frames")

        if job.step.position <= JobStep.BATCH_SUBMITTED.position:
            if items is None:
                items = self._manifest_store.load(job.job_id)
            client = self._client_factory(api_key)
            self._submitter.run(client, job.job_id, items)
            self._reconciler.reconcile(client, job.job_id, items)

        self._assembler.assemble(job.job_id)
        Log.info(f"Job {job.job_id} is done")

    def _validate(self, job: JobRecord) -> str:
        if job.job_type != JobType.OCR:
            raise JobInputError(
                f"Job {job.job_id} has type {job.job_type.value}, not handled by the OCR worker"
            )
        if not job.user_id:
            raise JobInputError(f"Job {job.job_id} has no owner")
        if job.step == JobStep.PREPROCESSING and not job.zip_path:
            raise JobInputError(f"Job {job.job_id} has no source archive")
        try:
            return self._credentials.api_key_for(job.user_id)
        except MissingCredentialError as exc:
            raise JobInputError(str(exc)) from exc

    def _preprocess(self, job: JobRecord) -> BuildResult:
        def build() -> BuildResult:
            result = self._builder.build(job.job_id, job.zip_path or "")
            self._manifest_store.save(job.job_id, result.items)
            return result

        def encode(result: BuildResult) -> dict[str, Any]:
            return {**result.summary(), "manifest_key": keys.manifest_key(job.job_id)}

        def decode(stored: dict[str, Any]) -> BuildResult:
            summary = {k: v for k, v in stored.items() if k != "manifest_key"}
            return BuildResult(**summary, items=self._manifest_store.load(job.job_id))

        return self._ledger.run(job.job_id, PREPROCESS_STEP_NAME, build, encode, decode)


def build_processor(settings: Settings, job_repo: JobRepository) -> OcrJobProcessor:
    """Build an OcrJobProcessor with all required adapters."""
    work_dir = Path(settings.work_dir)
    storage = ObjectStorage.from_settings(settings)
    batch_repo = BatchRepository()
    frame_repo = FrameRepository()
    step_repo = StepRepository()
    manifest_store = ManifestStore(storage)

    builder = WorkItemBuilder(
        storage=storage,
        transformer=FrameTransformerFactory.create(settings),
        job_repo=job_repo,
        signed_url_ttl_seconds=settings.crop_signed_url_ttl_seconds,
        work_dir=work_dir,
    )
    poller = CompletionPoller(batch_repo, job_repo, settings.batch_poll_interval_seconds)
    submitter = AdaptiveBatchSubmitter(
        batch_repo,
        job_repo,
        poller,
        model=settings.openai_model_name,
        prompt=load_ocr_prompt(),
        completion_window=settings.batch_completion_window,
        start_size=settings.batch_start_size,
        work_dir=work_dir,
    )
    reconciler = ResultReconciler(batch_repo, frame_repo, job_repo, submitter, poller)
    assembler = DocumentAssembler(
        storage=storage,
        frame_repo=frame_repo,
        job_repo=job_repo,
        batch_repo=batch_repo,
        step_repo=step_repo,
        manifest_store=manifest_store,
        work_dir=work_dir,
    )
    return OcrJobProcessor(
        job_repo=job_repo,
        builder=builder,
        manifest_store=manifest_store,
        ledger=StepLedger(step_repo),
        submitter=submitter,
        reconciler=reconciler,
        assembler=assembler,
        credentials=SettingsCredentialProvider.from_settings(settings),
        client_factory=lambda api_key: BatchClientFactory.create(settings, api_key),
    )
