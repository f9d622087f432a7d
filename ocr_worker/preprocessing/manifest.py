import json
from dataclasses import asdict

from ocr_worker.preprocessing.models import WorkItem
from ocr_worker.storage import keys
from ocr_worker.storage.object_storage import ObjectStorage


class ManifestStore:
    """Transient, durable copy of a job's sorted work items.

    Kept in object storage rather than on the job row because every item
    carries a short-lived signed URL; it is deleted once the job is done.
    """

    def __init__(self, storage: ObjectStorage) -> None:
        self._storage = storage

    def save(self, job_id: str, items: list[WorkItem]) -> str:
        key = keys.manifest_key(job_id)
        payload = json.dumps([asdict(item) for item in items]).encode("utf-8")
        self._storage.put_bytes(key, payload, "application/json")
        return key

    def load(self, job_id: str) -> list[WorkItem]:
        raw = self._storage.get_bytes(keys.manifest_key(job_id))
        return [WorkItem.from_dict(entry) for entry in json.loads(raw)]

    def delete(self, job_id: str) -> None:
        self._storage.delete(keys.manifest_key(job_id))
