"""S3 storage adapter for recorded answers."""

from __future__ import annotations

import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from oralassess.application.interfaces import MediaStoreInterface
from oralassess.config.settings import settings
from oralassess.services.aws import create_boto3_client

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when S3 asset persistence fails."""


class S3MediaStore(MediaStoreInterface):
    """Store audio blobs in a single bucket and hand out presigned URLs."""

    def __init__(self, bucket: str | None = None, region: str | None = None) -> None:
        self._bucket = bucket or settings.s3.bucket_name
        self._client = create_boto3_client("s3", region_name=region or settings.s3.region)

    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        if not data:
            raise StorageError("Audio payload for upload was empty.")
        if not self._bucket:
            raise StorageError("S3 bucket name is not configured.")

        try:
            await run_in_threadpool(
                self._client.put_object,
                Bucket=self._bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload recording: {exc}") from exc

    async def download(self, path: str) -> bytes:
        def _read() -> bytes:
            response = self._client.get_object(Bucket=self._bucket, Key=path)
            return response["Body"].read()

        try:
            return await run_in_threadpool(_read)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to download recording {path}: {exc}") from exc

    async def signed_url(self, path: str, ttl_seconds: int) -> str:
        try:
            return await run_in_threadpool(
                self._client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self._bucket, "Key": path},
                ExpiresIn=ttl_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to sign recording URL: {exc}") from exc

    async def delete(self, path: str) -> None:
        try:
            await run_in_threadpool(self._client.delete_object, Bucket=self._bucket, Key=path)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete recording {path}: {exc}") from exc


__all__ = ["S3MediaStore", "StorageError"]
