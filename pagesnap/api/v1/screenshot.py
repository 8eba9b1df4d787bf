import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pagesnap.api.deps import get_optional_storage, get_screenshot_service, require_api_key
from pagesnap.config import settings
from pagesnap.core.metrics import capture_requests_total
from pagesnap.schemas.screenshot import ScreenshotMetadata, ScreenshotRequest, ScreenshotResponse
from pagesnap.services.screenshot import ScreenshotService
from pagesnap.services.storage import S3Storage

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=ScreenshotResponse,
    summary="Capture screenshots",
    description="Capture desktop and/or mobile screenshots of a URL and store them. Returns one storage location per device class. Device classes that failed after all retries are listed under `errors`; the response is 502 only when every requested device class failed.",
    dependencies=[Depends(require_api_key)],
)
async def capture_screenshot(
    request: ScreenshotRequest,
    service: ScreenshotService = Depends(get_screenshot_service),
):
    capture_request = request.to_capture_request()
    logger.info(
        "Screenshot request for %s (device=%s)",
        capture_request.url,
        capture_request.device_class.value,
    )

    outcome = await service.capture_request(capture_request)

    if outcome.success:
        status = "success"
    elif outcome.any_succeeded:
        status = "partial"
    else:
        status = "failed"
    capture_requests_total.labels(status=status).inc()

    response = ScreenshotResponse(
        success=outcome.success,
        screenshots={d.value: loc for d, loc in outcome.locations.items()},
        errors={d.value: err for d, err in outcome.errors.items()},
        metadata=ScreenshotMetadata(
            url=capture_request.url,
            itemId=capture_request.item_id,
            deviceClass=capture_request.device_class.value,
            protectionTier=outcome.protection_tier.value,
            capturedAt=outcome.captured_at.isoformat(),
        ),
    )
    return JSONResponse(
        content=response.model_dump(),
        status_code=200 if outcome.any_succeeded else 502,
    )


@router.get(
    "/health",
    summary="Storage health",
    description="Check that storage is configured and the bucket is reachable. Returns HTTP 200 when every check passes, 503 otherwise.",
)
async def storage_health(storage: S3Storage | None = Depends(get_optional_storage)):
    checks = {
        "storage_configured": settings.storage_configured,
        "credentials_configured": settings.credentials_configured,
        "storage_access": False,
    }
    if storage is not None:
        checks["storage_access"] = await storage.head_exists(storage.bucket)

    healthy = all(checks.values())
    return JSONResponse(
        content={
            "success": healthy,
            "status": "healthy" if healthy else "unhealthy",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        status_code=200 if healthy else 503,
    )
