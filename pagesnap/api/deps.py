import hmac
import logging
from functools import lru_cache

from fastapi import Depends, Header

from pagesnap.config import settings
from pagesnap.core.exceptions import AuthenticationError, StorageNotConfigured
from pagesnap.services.screenshot import ScreenshotService, build_screenshot_service
from pagesnap.services.storage import S3Storage

logger = logging.getLogger(__name__)


async def require_api_key(x_api_key: str | None = Header(None, alias="x-api-key")) -> None:
    if not x_api_key:
        raise AuthenticationError("API key is required (x-api-key header)")
    if not hmac.compare_digest(x_api_key.encode("utf-8"), settings.API_KEY.encode("utf-8")):
        logger.warning("Rejected request with invalid API key")
        raise AuthenticationError("Invalid API key")


@lru_cache(maxsize=1)
def _storage() -> S3Storage:
    return S3Storage.from_settings(settings)


def get_storage() -> S3Storage:
    if not settings.S3_BUCKET_NAME:
        raise StorageNotConfigured("Storage configuration not found")
    return _storage()


def get_screenshot_service(storage: S3Storage = Depends(get_storage)) -> ScreenshotService:
    if not settings.storage_configured:
        raise StorageNotConfigured("Storage configuration not found")
    return build_screenshot_service(settings, storage)


def get_optional_storage() -> S3Storage | None:
    """Storage client for health probes; None when no bucket is configured."""
    if not settings.S3_BUCKET_NAME:
        return None
    return _storage()
