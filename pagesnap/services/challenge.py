"""Bot-mitigation challenge detection and best-effort resolution.

Runs on a live page right after navigation, for enhanced-tier captures only.
Detection is a phrase match on the rendered HTML plus the title. Resolution
clicks the first usable human-verification control, then polls for the
challenge to go away. An unresolved challenge is logged and the capture
continues, unless the resolver was built with ``strict=True``.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pagesnap.core.exceptions import ChallengeUnresolved
from pagesnap.core.metrics import challenge_outcomes_total
from pagesnap.services.outcome import StepOutcome

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

CHALLENGE_INDICATORS = (
    "verifying you are human",
    "verify you are human",
    "checking if the site connection is secure",
    "cloudflare",
    "cf-browser-verification",
    "challenge-form",
    "ray-id",
    "needs to review the security of your connection",
    "complete the action below",
    "verify you are human by completing",
)


class ChallengeKind(str, Enum):
    INTERACTIVE_CHECKBOX = "interactive_checkbox"
    AUTOMATIC_PROCESSING = "automatic_processing"
    SECURITY_CHECK = "security_check"
    UNKNOWN = "unknown"


class ChallengeState(str, Enum):
    ABSENT = "absent"
    DETECTED_UNRESOLVED = "detected_unresolved"
    DETECTED_RESOLVED = "detected_resolved"


# First match wins; the more specific phrase is checked first.
_KIND_PHRASES = (
    ("verify you are human by completing", ChallengeKind.INTERACTIVE_CHECKBOX),
    ("verifying you are human", ChallengeKind.AUTOMATIC_PROCESSING),
    ("checking if the site connection is secure", ChallengeKind.SECURITY_CHECK),
)


def matched_indicators(text: str) -> list[str]:
    lowered = text.lower()
    return [phrase for phrase in CHALLENGE_INDICATORS if phrase in lowered]


def classify_challenge(text: str) -> ChallengeKind | None:
    """Kind of challenge shown in ``text``, or None when there is none."""
    lowered = text.lower()
    if not matched_indicators(lowered):
        return None
    for phrase, kind in _KIND_PHRASES:
        if phrase in lowered:
            return kind
    return ChallengeKind.UNKNOWN


# ---------------------------------------------------------------------------
# Remediation candidates
# ---------------------------------------------------------------------------

CHECKBOX_SELECTORS = (
    'input[type="checkbox"]',
    ".cf-turnstile",
    "#cf-challenge",
    '[data-testid="cf-turnstile"]',
    ".challenge-form input",
    ".cb-lb",
    'input[type="checkbox"][name*="cf"]',
    'input[type="checkbox"][id*="challenge"]',
    'label:has-text("Verify you are human") input',
    '.challenge-stage input[type="checkbox"]',
    '[data-ray] input[type="checkbox"]',
)

FALLBACK_CHECKBOX_SELECTOR = 'input[type="checkbox"]'

# Clicked through Playwright actionability waits when no handle was usable
DIRECT_CLICK_SELECTORS = ('input[type="checkbox"]', ".cf-turnstile", "#cf-challenge")
DIRECT_CLICK_TIMEOUT_MS = 3000

COOKIE_BANNER_SELECTORS = (
    'button:has-text("Allow")',
    'button:has-text("Accept")',
    'button:has-text("OK")',
    'button:has-text("Close")',
    '[data-testid="cookie-accept"]',
    ".cookie-accept",
    "#cookie-accept",
    'button[id*="accept"]',
    'button[class*="accept"]',
)

_JS_IS_CONNECTED = "el => el.isConnected"


@dataclass(frozen=True)
class Candidate:
    """A way to locate clickable elements, tried in priority order.

    A candidate with ``click`` set skips handle checks and clicks by selector.
    """

    description: str
    locate: Callable[[Any], Awaitable[list]] | None = None
    click: Callable[[Any], Awaitable[None]] | None = None


def selector_candidate(selector: str) -> Candidate:
    async def locate(page) -> list:
        handle = await page.query_selector(selector)
        return [handle] if handle else []

    return Candidate(selector, locate)


def all_matches_candidate(selector: str) -> Candidate:
    async def locate(page) -> list:
        return list(await page.query_selector_all(selector))

    return Candidate(f"all {selector}", locate)


def direct_click_candidate(selector: str, timeout_ms: int = DIRECT_CLICK_TIMEOUT_MS) -> Candidate:
    async def click(page) -> None:
        await page.click(selector, timeout=timeout_ms)

    return Candidate(f"click {selector}", click=click)


# ---------------------------------------------------------------------------
# Resolution polling
# ---------------------------------------------------------------------------

# Resolved when no challenge phrase remains, or real page content is present.
_JS_CHALLENGE_CLEARED = """
(cfg) => {
    const body = document.body ? document.body.innerText : '';
    const combined = (body + ' ' + document.title).toLowerCase();
    const hasChallenge = cfg.challengePhrases.some(p => combined.includes(p));
    const hasBrand = cfg.brandMarkers.length === 0 || cfg.brandMarkers.some(m => combined.includes(m));
    const hasContent = hasBrand && (
        cfg.contentMarkers.some(m => combined.includes(m)) || combined.length > cfg.minContentLength
    );
    return !hasChallenge || hasContent;
}
"""

RESOLUTION_PHRASES = (
    "verify you are human",
    "verifying you are human",
    "checking if the site connection is secure",
    "complete the action below",
    "challenge",
)


@dataclass
class ChallengeReport:
    state: ChallengeState
    kind: ChallengeKind | None = None
    activation: StepOutcome | None = None
    polls: int = 0

    @property
    def detected(self) -> bool:
        return self.state is not ChallengeState.ABSENT


class ChallengeResolver:
    """Detect a challenge page and try to get past it.

    Args:
        brand_markers: page text that must be present for the content
            heuristic to count (site name). Empty means any page qualifies.
        content_markers: words that signal a real product page.
        strict: raise ``ChallengeUnresolved`` instead of carrying on.
    """

    def __init__(
        self,
        brand_markers: tuple[str, ...] = ("braip",),
        content_markers: tuple[str, ...] = ("produto", "product", "comprar", "buy"),
        min_content_length: int = 1000,
        poll_attempts: int = 3,
        poll_timeout_ms: int = 15000,
        poll_interval_ms: int = 5000,
        activated_wait_ms: int = 8000,
        passive_wait_ms: int = 5000,
        element_settle_ms: int = 2000,
        scroll_settle_ms: int = 500,
        strict: bool = False,
        selectors: tuple[str, ...] = CHECKBOX_SELECTORS,
    ):
        self.brand_markers = brand_markers
        self.content_markers = content_markers
        self.min_content_length = min_content_length
        self.poll_attempts = poll_attempts
        self.poll_timeout_ms = poll_timeout_ms
        self.poll_interval_ms = poll_interval_ms
        self.activated_wait_ms = activated_wait_ms
        self.passive_wait_ms = passive_wait_ms
        self.element_settle_ms = element_settle_ms
        self.scroll_settle_ms = scroll_settle_ms
        self.strict = strict
        self.candidates = [selector_candidate(s) for s in selectors]
        self.fallback_candidates = [all_matches_candidate(FALLBACK_CHECKBOX_SELECTOR)]
        self.direct_candidates = [direct_click_candidate(s) for s in DIRECT_CLICK_SELECTORS]

    async def _page_text(self, page) -> str:
        content = await page.content()
        title = await page.title()
        return f"{content} {title}".lower()

    async def resolve(self, page) -> ChallengeReport:
        try:
            text = await self._page_text(page)
        except Exception as e:
            logger.warning("Could not read page for challenge detection: %s", e)
            return ChallengeReport(ChallengeState.ABSENT)

        kind = classify_challenge(text)
        if kind is None:
            logger.debug("No challenge detected")
            return ChallengeReport(ChallengeState.ABSENT)

        logger.info("Challenge detected (type=%s), attempting to handle", kind.value)
        activation = await self.activate(page)
        logger.info("Challenge activation: %s", activation)

        wait_ms = self.activated_wait_ms if activation.ok else self.passive_wait_ms
        await page.wait_for_timeout(wait_ms)

        resolved, polls = await self._await_resolution(page)
        state = ChallengeState.DETECTED_RESOLVED if resolved else ChallengeState.DETECTED_UNRESOLVED
        challenge_outcomes_total.labels(state=state.value).inc()
        report = ChallengeReport(state, kind=kind, activation=activation, polls=polls)

        if not resolved:
            await self._log_unresolved(page)
            if self.strict:
                raise ChallengeUnresolved(page.url, kind.value)
            logger.warning("Challenge resolution timed out, continuing anyway")
        return report

    async def activate(self, page) -> StepOutcome:
        """Click the first attached and visible verification control."""
        failures = 0
        for group in (self.candidates, self.fallback_candidates, self.direct_candidates):
            for candidate in group:
                if candidate.click is not None:
                    try:
                        await candidate.click(page)
                    except PlaywrightTimeoutError:
                        logger.debug("No actionable %s appeared", candidate.description)
                        continue
                    except Exception as e:
                        logger.debug("Direct click on %s failed: %s", candidate.description, e)
                        failures += 1
                        continue
                    return StepOutcome.succeeded("challenge_click", candidate.description)
                try:
                    handles = await candidate.locate(page)
                except Exception as e:
                    logger.debug("Locating %s failed: %s", candidate.description, e)
                    failures += 1
                    continue
                for handle in handles:
                    try:
                        if await self._try_click(page, handle):
                            return StepOutcome.succeeded("challenge_click", candidate.description)
                    except Exception as e:
                        logger.debug("Candidate %s failed, trying next: %s", candidate.description, e)
                        failures += 1
        if failures:
            return StepOutcome.failed("challenge_click", f"{failures} candidates errored")
        return StepOutcome.skipped("challenge_click", "no visible control")

    async def _try_click(self, page, handle) -> bool:
        if not await handle.evaluate(_JS_IS_CONNECTED) or not await handle.is_visible():
            return False
        await page.wait_for_timeout(self.element_settle_ms)
        if not await handle.evaluate(_JS_IS_CONNECTED):
            return False
        await handle.scroll_into_view_if_needed()
        await page.wait_for_timeout(self.scroll_settle_ms)
        if not await handle.evaluate(_JS_IS_CONNECTED):
            return False
        await handle.click()
        return True

    async def _await_resolution(self, page) -> tuple[bool, int]:
        cfg = {
            "challengePhrases": list(RESOLUTION_PHRASES),
            "brandMarkers": list(self.brand_markers),
            "contentMarkers": list(self.content_markers),
            "minContentLength": self.min_content_length,
        }
        for attempt in range(1, self.poll_attempts + 1):
            logger.info("Waiting for challenge resolution, attempt %d/%d", attempt, self.poll_attempts)
            try:
                await page.wait_for_function(
                    _JS_CHALLENGE_CLEARED, arg=cfg, timeout=self.poll_timeout_ms
                )
                logger.info("Challenge resolved")
                return True, attempt
            except Exception as e:
                logger.info("Challenge resolution attempt %d failed: %s", attempt, e)
                if attempt < self.poll_attempts:
                    await page.wait_for_timeout(self.poll_interval_ms)
        return False, self.poll_attempts

    async def _log_unresolved(self, page) -> None:
        try:
            content = await page.content()
        except Exception as e:
            logger.info("Could not read unresolved challenge page: %s", e)
            return
        preview = re.sub(r"\s+", " ", content[:500])
        checkboxes = len(re.findall(r"input[^>]*type=[\"']checkbox[\"']", content, re.IGNORECASE))
        logger.info(
            "Unresolved challenge: indicators=%s checkboxes=%d preview=%r",
            matched_indicators(content),
            checkboxes,
            preview,
        )


async def dismiss_cookie_banner(
    page, selectors: tuple[str, ...] = COOKIE_BANNER_SELECTORS, settle_ms: int = 1000
) -> StepOutcome:
    """Click the first visible accept/close button. Absence is fine."""
    for selector in selectors:
        try:
            button = await page.query_selector(selector)
            if button and await button.is_visible():
                await button.click()
                await page.wait_for_timeout(settle_ms)
                return StepOutcome.succeeded("cookie_banner", selector)
        except Exception as e:
            logger.debug("Cookie selector %s failed: %s", selector, e)
    return StepOutcome.skipped("cookie_banner", "no banner found")
