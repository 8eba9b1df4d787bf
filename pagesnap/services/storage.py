import asyncio
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from pagesnap.core.exceptions import UploadFailed
from pagesnap.core.metrics import upload_attempts_total

logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPE = "image/jpeg"
OWNER_HASH_LENGTH = 30
UNASSIGNED_ITEM = "unassigned"


def owner_hash(owner_id: str, secret: str) -> str:
    """Keyed hash of the owner id; the same owner always gets the same prefix."""
    digest = hmac.new(secret.encode("utf-8"), owner_id.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()[:OWNER_HASH_LENGTH]


def build_storage_key(owner_id: str, item_id: str | None, timestamp_ms: int, secret: str) -> str:
    return f"{owner_hash(owner_id, secret)}/{item_id or UNASSIGNED_ITEM}/{timestamp_ms}.jpeg"


@dataclass(frozen=True)
class S3Storage:
    """Thin async wrapper over a boto3 S3 client bound to one bucket.

    Built once and passed in; nothing here touches process-wide AWS state.
    boto3 calls are blocking, so they run in the default executor.
    """

    client: Any
    bucket: str
    region: str = "us-east-1"
    endpoint_url: str = ""

    @classmethod
    def from_settings(cls, settings) -> "S3Storage":
        client_kwargs: dict[str, Any] = {
            "region_name": settings.AWS_REGION,
            "config": Config(signature_version="s3v4", retries={"max_attempts": 1}),
        }
        if settings.S3_ENDPOINT_URL:
            client_kwargs["endpoint_url"] = settings.S3_ENDPOINT_URL
        if settings.credentials_configured:
            client_kwargs["aws_access_key_id"] = settings.AWS_ACCESS_KEY_ID
            client_kwargs["aws_secret_access_key"] = settings.AWS_SECRET_ACCESS_KEY
        return cls(
            client=boto3.client("s3", **client_kwargs),
            bucket=settings.S3_BUCKET_NAME,
            region=settings.AWS_REGION,
            endpoint_url=settings.S3_ENDPOINT_URL,
        )

    def location(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def put(self, key: str, body: bytes, content_type: str = IMAGE_CONTENT_TYPE) -> str:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: self.client.put_object(
                Bucket=self.bucket, Key=key, Body=body, ContentType=content_type
            ),
        )
        return self.location(key)

    async def head_exists(self, bucket: str | None = None) -> bool:
        bucket = bucket or self.bucket
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: self.client.head_bucket(Bucket=bucket))
        except (ClientError, BotoCoreError) as e:
            logger.error("Bucket %s is not accessible: %s", bucket, e)
            return False
        logger.info("Bucket %s is accessible", bucket)
        return True


class UploadPipeline:
    """Stores a capture under ``hash(owner)/item/timestamp.jpeg``.

    One put per call. Retrying is the caller's business.
    """

    def __init__(self, storage: S3Storage, key_secret: str, clock: Callable[[], float] = time.time):
        if not key_secret:
            raise ValueError("storage key secret is required")
        self.storage = storage
        self._key_secret = key_secret
        self._clock = clock

    def key_for(self, owner_id: str, item_id: str | None) -> str:
        return build_storage_key(owner_id, item_id, int(self._clock() * 1000), self._key_secret)

    async def upload(self, buffer: bytes, owner_id: str, item_id: str | None) -> str:
        key = self.key_for(owner_id, item_id)
        logger.info("Uploading %d bytes to %s", len(buffer), key)
        try:
            location = await self.storage.put(key, buffer, IMAGE_CONTENT_TYPE)
        except Exception as e:
            upload_attempts_total.labels(outcome="failed").inc()
            raise UploadFailed(key, str(e)) from e
        upload_attempts_total.labels(outcome="succeeded").inc()
        logger.info("Uploaded %s", location)
        return location
