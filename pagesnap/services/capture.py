"""Single capture attempt: one fresh browser, one navigation, one JPEG.

``CapturePipeline.capture`` is the attempt function the retry scheduler calls
with a (strategy, timeout) pair. Everything inside it is bounded by an explicit
timeout, and the browser is released on every exit path by
``BrowserSessionFactory.open``.
"""

import logging
import random
import time

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pagesnap.core.exceptions import CaptureTimeout, NavigationFailed
from pagesnap.core.metrics import capture_attempts_total, capture_duration_seconds
from pagesnap.services.browser import BrowserSessionFactory
from pagesnap.services.challenge import ChallengeResolver, dismiss_cookie_banner
from pagesnap.services.devices import DeviceClass
from pagesnap.services.fingerprint import build_session_profile
from pagesnap.services.outcome import StepOutcome
from pagesnap.services.protection import ProtectionClassifier, ProtectionTier

logger = logging.getLogger(__name__)

PREWARM_TIMEOUT_MS = 30000
PREWARM_DWELL_MS = (1000, 3000)
PREWARM_POINTER_PATH = ((400, 300, 500), (600, 400, 300))

ENHANCED_SETTLE_MS = 3000
ENHANCED_POINTER_PATH = ((200, 200, 500), (400, 300, 300), (600, 400, 200))

# Neutral click that wakes lazy-loaded content
NEUTRAL_CLICK = (100, 100)

# (webp seen, webp not seen)
SETTLE_MS = {
    ProtectionTier.ENHANCED: (3000, 2000),
    ProtectionTier.STANDARD: (1000, 500),
}

EMBEDDED_PLAYER_SELECTOR = 'iframe[src*="youtube.com"], iframe[src*="youtu.be"]'
EMBEDDED_PLAYER_SETTLE_MS = 1000

_JS_NUDGE_VIDEO = """
async (vid) => {
    try {
        vid.muted = true;
        await Promise.race([
            vid.play(),
            new Promise((_, reject) => setTimeout(() => reject('play() timed out'), 5000)),
        ]);
        await new Promise(res => setTimeout(res, 3000));
        vid.pause();
        return true;
    } catch (e) {
        return false;
    }
}
"""


class _CodecWatch:
    """Remembers whether any response so far looked like a webp image."""

    def __init__(self):
        self.webp_seen = False

    def __call__(self, response) -> None:
        if not self.webp_seen and "webp" in response.url:
            self.webp_seen = True


class CapturePipeline:
    def __init__(
        self,
        classifier: ProtectionClassifier,
        session_factory: BrowserSessionFactory,
        challenge_resolver: ChallengeResolver,
        screenshot_timeout_ms: int = 50000,
        jpeg_quality: int = 80,
        prewarm_url: str = "https://www.google.com",
        rng: random.Random | None = None,
    ):
        self.classifier = classifier
        self.session_factory = session_factory
        self.challenge_resolver = challenge_resolver
        self.screenshot_timeout_ms = screenshot_timeout_ms
        self.jpeg_quality = jpeg_quality
        self.prewarm_url = prewarm_url
        self._rng = rng or random.Random()

    async def capture(
        self,
        url: str,
        device_class: DeviceClass | str,
        strategy: str,
        timeout_ms: int,
    ) -> bytes:
        """Run one attempt and return the JPEG bytes of the viewport."""
        device_class = DeviceClass(device_class)
        tier = self.classifier.classify(url)
        profile = build_session_profile(tier, device_class, url, rng=self._rng)

        start = time.monotonic()
        outcome = "failed"
        try:
            async with self.session_factory.open(profile) as session:
                buffer = await self._run(session.page, url, tier, strategy, timeout_ms)
            outcome = "succeeded"
            return buffer
        finally:
            capture_attempts_total.labels(
                tier=tier.value, device_class=device_class.value, outcome=outcome
            ).inc()
            capture_duration_seconds.labels(tier=tier.value).observe(time.monotonic() - start)

    async def _run(self, page, url: str, tier: ProtectionTier, strategy: str, timeout_ms: int) -> bytes:
        enhanced = tier is ProtectionTier.ENHANCED
        if enhanced:
            logger.info("Pre-warm: %s", await self.prewarm(page))

        # Only target responses count, not the pre-warm site's
        codec = _CodecWatch()
        page.on("response", codec)

        logger.info("Navigating to %s (strategy=%s, timeout=%dms)", url, strategy, timeout_ms)
        try:
            await page.goto(url, wait_until=strategy, timeout=timeout_ms)
        except Exception as e:
            raise NavigationFailed(url, strategy, timeout_ms, str(e)) from e

        if enhanced:
            await self.challenge_resolver.resolve(page)
            logger.info("Cookie banner: %s", await dismiss_cookie_banner(page))
            await page.wait_for_timeout(ENHANCED_SETTLE_MS)
            await _move_pointer(page, ENHANCED_POINTER_PATH)

        await page.mouse.click(*NEUTRAL_CLICK)
        with_webp, without_webp = SETTLE_MS[tier]
        await page.wait_for_timeout(with_webp if codec.webp_seen else without_webp)

        logger.info("Media: %s", await self.settle_media(page))

        try:
            buffer = await page.screenshot(
                type="jpeg",
                quality=self.jpeg_quality,
                full_page=False,
                timeout=self.screenshot_timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise CaptureTimeout(url, self.screenshot_timeout_ms) from e

        await page.close()
        logger.info("Captured %s (%d bytes)", url, len(buffer))
        return buffer

    async def prewarm(self, page) -> StepOutcome:
        """Visit a neutral site first so the target sees an established session."""
        try:
            await page.goto(self.prewarm_url, wait_until="domcontentloaded", timeout=PREWARM_TIMEOUT_MS)
            await page.wait_for_timeout(self._rng.uniform(*PREWARM_DWELL_MS))
            await _move_pointer(page, PREWARM_POINTER_PATH)
        except Exception as e:
            return StepOutcome.failed("prewarm", str(e))
        return StepOutcome.succeeded("prewarm", self.prewarm_url)

    async def settle_media(self, page) -> StepOutcome:
        """Briefly play an inline video, or give an embedded player time to paint."""
        try:
            video = await page.query_selector("video")
            if video:
                played = await page.evaluate(_JS_NUDGE_VIDEO, video)
                if played:
                    return StepOutcome.succeeded("media", "video played and paused")
                return StepOutcome.failed("media", "video did not start")

            player = await page.query_selector(EMBEDDED_PLAYER_SELECTOR)
            if player:
                await page.wait_for_timeout(EMBEDDED_PLAYER_SETTLE_MS)
                return StepOutcome.succeeded("media", "embedded player")
        except Exception as e:
            return StepOutcome.failed("media", str(e))
        return StepOutcome.skipped("media", "no video")


async def _move_pointer(page, path) -> None:
    for x, y, pause_ms in path:
        await page.mouse.move(x, y)
        await page.wait_for_timeout(pause_ms)
