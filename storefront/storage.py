"""S3 compatible object storage for catalog images."""
from __future__ import annotations

import logging
import re
import time
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from .config import settings
from .errors import ApiError

logger = logging.getLogger(__name__)

_unsafe = re.compile(r"[^A-Za-z0-9._-]+")


class ObjectStorage:
    def __init__(self, bucket: Optional[str] = None, client=None):
        self.bucket = bucket if bucket is not None else settings.S3_BUCKET
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.bucket)

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=settings.AWS_REGION,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                endpoint_url=settings.S3_ENDPOINT_URL,
            )
        return self._client

    @staticmethod
    def make_key(folder: str, filename: str) -> str:
        name = _unsafe.sub("-", filename or "upload").strip("-") or "upload"
        return f"{folder.strip('/')}/{int(time.time() * 1000)}-{name}"

    async def upload_image(self, data: bytes, filename: str, content_type: Optional[str], folder: str) -> str:
        if not (content_type or "").startswith("image/"):
            raise ApiError(400, "Only image files are allowed")
        if len(data) > settings.MAX_UPLOAD_BYTES:
            raise ApiError(400, f"File too large (max {settings.MAX_UPLOAD_BYTES // (1024 * 1024)} MB)")
        if not self.enabled:
            raise ApiError(503, "Object storage is not configured")

        key = self.make_key(folder, filename)
        try:
            await run_in_threadpool(
                self.client.put_object, Bucket=self.bucket, Key=key, Body=data, ContentType=content_type
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception("Upload of %s failed", key)
            raise ApiError(502, f"Failed to upload file: {e}")
        logger.info("Uploaded %s (%d bytes)", key, len(data))
        return key

    async def delete(self, key: Optional[str]) -> None:
        """Best effort delete; failures are only logged."""
        if not key or not self.enabled or key.startswith("http"):
            return
        try:
            await run_in_threadpool(self.client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError):
            logger.warning("Could not delete %s from storage", key, exc_info=True)

    async def presign(self, key: Optional[str]) -> Optional[str]:
        if not key:
            return None
        if key.startswith(("http://", "https://")) or not self.enabled:
            return key
        try:
            return await run_in_threadpool(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=settings.PRESIGNED_URL_TTL,
            )
        except (BotoCoreError, ClientError):
            logger.warning("Presigning %s failed, returning raw key", key, exc_info=True)
            return key


_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage
