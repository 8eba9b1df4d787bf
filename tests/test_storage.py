"""Unit tests for storage keys, S3Storage and UploadPipeline."""

import hashlib
import hmac
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from pagesnap.core.exceptions import UploadFailed
from pagesnap.services.storage import (
    S3Storage,
    UploadPipeline,
    build_storage_key,
    owner_hash,
)
from tests.fakes import FakeS3Client


class TestStorageKey:
    def test_owner_hash_is_truncated_hmac(self):
        expected = hmac.new(b"secret", b"u1", hashlib.sha256).hexdigest()[:30]
        assert owner_hash("u1", "secret") == expected
        assert len(owner_hash("u1", "secret")) == 30

    def test_deterministic(self):
        assert build_storage_key("u1", "p1", 1700000000000, "s") == build_storage_key(
            "u1", "p1", 1700000000000, "s"
        )

    def test_layout(self):
        key = build_storage_key("u1", "p1", 1700000000000, "s")
        prefix, item, name = key.split("/")
        assert prefix == owner_hash("u1", "s")
        assert item == "p1"
        assert name == "1700000000000.jpeg"

    def test_changes_with_item_or_timestamp(self):
        base = build_storage_key("u1", "p1", 1, "s")
        assert build_storage_key("u1", "p2", 1, "s") != base
        assert build_storage_key("u1", "p1", 2, "s") != base
        assert build_storage_key("u1", "p2", 1, "s").split("/")[0] == base.split("/")[0]

    def test_secret_changes_prefix(self):
        assert owner_hash("u1", "a") != owner_hash("u1", "b")

    def test_missing_item_uses_placeholder(self):
        assert build_storage_key("u1", None, 5, "s").split("/")[1] == "unassigned"


class TestS3Storage:
    def test_location_for_aws(self):
        storage = S3Storage(client=None, bucket="shots", region="sa-east-1")
        assert storage.location("a/b.jpeg") == "https://shots.s3.sa-east-1.amazonaws.com/a/b.jpeg"

    def test_location_for_custom_endpoint(self):
        storage = S3Storage(client=None, bucket="shots", endpoint_url="http://minio:9000/")
        assert storage.location("a/b.jpeg") == "http://minio:9000/shots/a/b.jpeg"

    def test_is_immutable(self):
        storage = S3Storage(client=None, bucket="shots")
        with pytest.raises(Exception):
            storage.bucket = "other"

    @pytest.mark.asyncio
    async def test_put_sends_jpeg(self, storage, s3_client):
        location = await storage.put("k/1.jpeg", b"data")
        assert s3_client.puts == [
            {"Bucket": "test-bucket", "Key": "k/1.jpeg", "Body": b"data", "ContentType": "image/jpeg"}
        ]
        assert location.endswith("/k/1.jpeg")

    @pytest.mark.asyncio
    async def test_head_exists(self, storage, s3_client):
        assert await storage.head_exists() is True
        s3_client.reachable = False
        assert await storage.head_exists("other") is False
        assert s3_client.heads == ["test-bucket", "other"]

    def test_from_settings_builds_client(self):
        settings = SimpleNamespace(
            AWS_REGION="eu-west-1",
            S3_ENDPOINT_URL="",
            S3_BUCKET_NAME="shots",
            AWS_ACCESS_KEY_ID="id",
            AWS_SECRET_ACCESS_KEY="key",
            credentials_configured=True,
        )
        with patch("pagesnap.services.storage.boto3.client") as mock_client:
            storage = S3Storage.from_settings(settings)
        args, kwargs = mock_client.call_args
        assert args == ("s3",)
        assert kwargs["region_name"] == "eu-west-1"
        assert kwargs["aws_access_key_id"] == "id"
        assert "endpoint_url" not in kwargs
        assert storage.bucket == "shots"


class TestUploadPipeline:
    @pytest.mark.asyncio
    async def test_upload_returns_location(self, storage, s3_client):
        uploader = UploadPipeline(storage, "secret", clock=lambda: 1700000000.123)
        location = await uploader.upload(b"jpeg", "u1", "p1")
        key = s3_client.puts[0]["Key"]
        assert key == f"{owner_hash('u1', 'secret')}/p1/1700000000123.jpeg"
        assert location == storage.location(key)

    @pytest.mark.asyncio
    async def test_backend_error_becomes_upload_failed(self):
        storage = S3Storage(client=FakeS3Client(put_errors=[ConnectionError("reset")]), bucket="b")
        uploader = UploadPipeline(storage, "secret")
        with pytest.raises(UploadFailed) as exc_info:
            await uploader.upload(b"jpeg", "u1", "p1")
        assert "reset" in str(exc_info.value)

    def test_requires_secret(self, storage):
        with pytest.raises(ValueError):
            UploadPipeline(storage, "")
