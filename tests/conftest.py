import os

# Settings are read once at import time; pin them before the app loads.
os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("S3_BUCKET_NAME", "test-bucket")
os.environ.setdefault("STORAGE_KEY_SECRET", "test-secret")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test-access-key")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test-secret-key")
os.environ.setdefault("LOG_FORMAT", "text")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from pagesnap.api.deps import get_optional_storage, get_storage
from pagesnap.main import app
from pagesnap.services.storage import S3Storage
from tests.fakes import FakeS3Client


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def storage(s3_client):
    return S3Storage(client=s3_client, bucket="test-bucket", region="us-east-1")


@pytest_asyncio.fixture
async def client(storage):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_optional_storage] = lambda: storage
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"x-api-key": "test-api-key"}
