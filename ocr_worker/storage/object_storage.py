from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ocr_worker.config.settings import Settings
from ocr_worker.logging.logger import Log
from ocr_worker.storage.exceptions import ObjectNotFoundError, StorageError

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


class ObjectStorage:
    """Key-addressed access to one S3-compatible bucket (AWS S3, Cloudflare R2, MinIO)."""

    def __init__(self, client: Any, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStorage":
        client = boto3.client(
            "s3",
            endpoint_url=settings.storage_endpoint_url,
            region_name=settings.storage_region,
            aws_access_key_id=settings.storage_access_key_id or None,
            aws_secret_access_key=settings.storage_secret_access_key or None,
            config=Config(signature_version="s3v4"),
        )
        return cls(client, settings.storage_bucket)

    def put_bytes(
        self,
        key: str,
        body: bytes,
        content_type: str,
        cache_control: str | None = None,
    ) -> int:
        """Upload an in-memory object and return its size in bytes."""
        extra: dict[str, str] = {"ContentType": content_type}
        if cache_control:
            extra["CacheControl"] = cache_control
        try:
            self._client.put_object(Bucket=self._bucket, Key=key, Body=body, **extra)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to upload {key}: {exc}") from exc
        Log.debug(f"Stored {key} ({len(body)} bytes)")
        return len(body)

    def upload_file(self, key: str, path: Path, content_type: str) -> int:
        """Stream a local file to storage (multipart for large files) and return its size."""
        try:
            self._client.upload_file(
                str(path),
                self._bucket,
                key,
                ExtraArgs={"ContentType": content_type},
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to upload {path} to {key}: {exc}") from exc
        size = path.stat().st_size
        Log.debug(f"Stored {key} from {path} ({size} bytes)")
        return size

    def download_file(self, key: str, path: Path) -> Path:
        """Stream an object to a local file without holding it in memory."""
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._client.download_file(self._bucket, key, str(path))
        except ClientError as exc:
            raise self._translate(key, exc) from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to download {key}: {exc}") from exc
        return path

    def get_bytes(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
            return response["Body"].read()
        except ClientError as exc:
            raise self._translate(key, exc) from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    def list_keys(self, prefix: str) -> list[str]:
        keys: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to list {prefix}: {exc}") from exc
        return keys

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to delete {key}: {exc}") from exc

    def delete_prefix(self, prefix: str) -> int:
        """Delete every object under ``prefix``; returns how many were removed."""
        keys = self.list_keys(prefix)
        # DeleteObjects accepts at most 1000 keys per request.
        for start in range(0, len(keys), 1000):
            chunk = keys[start : start + 1000]
            try:
                self._client.delete_objects(
                    Bucket=self._bucket,
                    Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as exc:
                raise StorageError(f"Failed to delete under {prefix}: {exc}") from exc
        return len(keys)

    def presign_get(
        self,
        key: str,
        ttl_seconds: int,
        response_content_type: str | None = None,
        download_filename: str | None = None,
    ) -> str:
        """Time-boxed download URL that a third party (the inference provider) can fetch."""
        params: dict[str, str] = {"Bucket": self._bucket, "Key": key}
        if response_content_type:
            params["ResponseContentType"] = response_content_type
        if download_filename:
            params["ResponseContentDisposition"] = (
                f'inline; filename="{download_filename}"'
            )
        try:
            return self._client.generate_presigned_url(
                "get_object", Params=params, ExpiresIn=ttl_seconds
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to sign download URL for {key}: {exc}") from exc

    @staticmethod
    def _translate(key: str, exc: ClientError) -> StorageError:
        code = exc.response.get("Error", {}).get("Code", "")
        if code in _NOT_FOUND_CODES:
            return ObjectNotFoundError(f"Object not found: {key}")
        return StorageError(f"Storage request for {key} failed: {exc}")
