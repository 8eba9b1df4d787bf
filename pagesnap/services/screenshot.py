"""Request-level orchestration: capture and upload once per device class.

Each device class runs the retry-wrapped capture, then the retry-wrapped
upload. A device class that exhausts its retries is reported in ``errors``
and does not stop its sibling.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from pagesnap.core.exceptions import RetriesExhausted
from pagesnap.schemas.screenshot import CaptureRequest
from pagesnap.services.browser import BrowserSessionFactory
from pagesnap.services.capture import CapturePipeline
from pagesnap.services.challenge import ChallengeResolver
from pagesnap.services.devices import DeviceClass
from pagesnap.services.protection import ProtectionClassifier, ProtectionTier
from pagesnap.services.retry import RetryScheduler
from pagesnap.services.storage import S3Storage, UploadPipeline

logger = logging.getLogger(__name__)


@dataclass
class CaptureOutcome:
    request: CaptureRequest
    protection_tier: ProtectionTier
    locations: dict[DeviceClass, str] = field(default_factory=dict)
    errors: dict[DeviceClass, str] = field(default_factory=dict)
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return not self.errors and bool(self.locations)

    @property
    def any_succeeded(self) -> bool:
        return bool(self.locations)


class ScreenshotService:
    def __init__(
        self,
        pipeline: CapturePipeline,
        scheduler: RetryScheduler,
        uploader: UploadPipeline,
        max_attempts: int,
        parallel_devices: bool = False,
    ):
        self.pipeline = pipeline
        self.scheduler = scheduler
        self.uploader = uploader
        self.max_attempts = max_attempts
        self.parallel_devices = parallel_devices

    async def capture(self, url: str, device_class: DeviceClass) -> bytes:
        """Retry-wrapped render step only."""
        enhanced = self.pipeline.classifier.is_enhanced(url)

        async def attempt(strategy: str, timeout_ms: int) -> bytes:
            return await self.pipeline.capture(url, device_class, strategy, timeout_ms)

        return await self.scheduler.run(
            f"Screenshot-{device_class.value}", attempt, self.max_attempts, enhanced
        )

    async def capture_and_upload(self, request: CaptureRequest, device_class: DeviceClass) -> str:
        buffer = await self.capture(request.url, device_class)

        async def attempt(_strategy: str, _timeout_ms: int) -> str:
            return await self.uploader.upload(buffer, request.owner_id, request.item_id)

        # Upload backoff never inherits the page's protection tier.
        return await self.scheduler.run(
            f"Upload-{device_class.value}", attempt, self.max_attempts, enhanced=False
        )

    async def capture_request(self, request: CaptureRequest) -> CaptureOutcome:
        outcome = CaptureOutcome(
            request=request,
            protection_tier=self.pipeline.classifier.classify(request.url),
        )
        devices = request.device_class.expand()
        logger.info(
            "Capturing %s for %s (tier=%s)",
            request.url,
            ", ".join(d.value for d in devices),
            outcome.protection_tier.value,
        )

        if self.parallel_devices:
            results = await asyncio.gather(
                *(self._capture_device(request, d) for d in devices)
            )
        else:
            results = [await self._capture_device(request, d) for d in devices]

        for device_class, location, error in results:
            if location is not None:
                outcome.locations[device_class] = location
            else:
                outcome.errors[device_class] = error
        return outcome

    async def _capture_device(self, request: CaptureRequest, device_class: DeviceClass):
        try:
            location = await self.capture_and_upload(request, device_class)
        except RetriesExhausted as e:
            logger.error("%s capture of %s failed: %s", device_class.value, request.url, e)
            return device_class, None, e.message
        logger.info("%s capture of %s stored at %s", device_class.value, request.url, location)
        return device_class, location, None


def build_pipeline(settings) -> CapturePipeline:
    return CapturePipeline(
        classifier=ProtectionClassifier(settings.PROTECTED_DOMAINS),
        session_factory=BrowserSessionFactory(headless=settings.BROWSER_HEADLESS),
        challenge_resolver=ChallengeResolver(strict=settings.CAPTURE_REQUIRE_CHALLENGE_RESOLUTION),
        screenshot_timeout_ms=settings.CAPTURE_SCREENSHOT_TIMEOUT_MS,
        jpeg_quality=settings.CAPTURE_JPEG_QUALITY,
        prewarm_url=settings.CAPTURE_PREWARM_URL,
    )


def build_scheduler(settings) -> RetryScheduler:
    return RetryScheduler(
        strategies=settings.CAPTURE_LOAD_STRATEGIES,
        timeouts_ms=settings.CAPTURE_TIMEOUTS_MS,
        enhanced_timeouts_ms=settings.CAPTURE_ENHANCED_TIMEOUTS_MS,
        base_delay_ms=settings.CAPTURE_RETRY_DELAY_MS,
    )


def build_screenshot_service(settings, storage: S3Storage | None = None) -> ScreenshotService:
    """Wire settings into the capture core. The only place settings are read."""
    storage = storage or S3Storage.from_settings(settings)
    return ScreenshotService(
        pipeline=build_pipeline(settings),
        scheduler=build_scheduler(settings),
        uploader=UploadPipeline(storage, settings.STORAGE_KEY_SECRET),
        max_attempts=settings.CAPTURE_MAX_RETRIES,
        parallel_devices=settings.CAPTURE_PARALLEL_DEVICES,
    )
