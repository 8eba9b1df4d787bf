import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

from playwright.async_api import async_playwright

from pagesnap.core.exceptions import SessionLaunchFailed
from pagesnap.core.metrics import active_browser_sessions
from pagesnap.services.fingerprint import SessionProfile

logger = logging.getLogger(__name__)


@dataclass
class BrowserSession:
    """One live, isolated browser owned by a single capture attempt."""

    profile: SessionProfile
    browser: Any
    context: Any
    page: Any


class BrowserSessionFactory:
    """Launches a fresh Chromium per capture attempt.

    Nothing is pooled: every attempt gets its own process with its own
    identity, and ``open()`` tears the whole thing down on the way out, no
    matter where the attempt failed. Launch errors surface as
    ``SessionLaunchFailed`` and are not retried here.
    """

    def __init__(
        self,
        headless: bool = True,
        playwright_factory: Callable[[], Any] = async_playwright,
    ):
        self._headless = headless
        self._playwright_factory = playwright_factory

    async def _launch(self, profile: SessionProfile):
        playwright = await self._playwright_factory().start()
        try:
            browser = await playwright.chromium.launch(
                headless=self._headless,
                args=list(profile.launch_args),
                slow_mo=profile.slow_mo_ms,
            )
        except BaseException:
            await _quietly("playwright.stop", playwright.stop())
            raise
        return playwright, browser

    @asynccontextmanager
    async def open(self, profile: SessionProfile) -> AsyncIterator[BrowserSession]:
        """Launch a browser configured by ``profile`` and yield its first page."""
        try:
            playwright, browser = await self._launch(profile)
        except Exception as e:
            raise SessionLaunchFailed(f"Chromium launch failed: {e}") from e

        logger.debug(
            "Browser launched (tier=%s, device=%s, args=%d)",
            profile.protection_tier.value,
            profile.device_class.value,
            len(profile.launch_args),
        )
        active_browser_sessions.inc()
        context = None
        try:
            try:
                context = await browser.new_context(**profile.context_options())
                script = profile.init_script()
                if script:
                    # Runs before any page script on every navigation in this context
                    await context.add_init_script(script)
                page = await context.new_page()
            except Exception as e:
                raise SessionLaunchFailed(f"Browser context setup failed: {e}") from e

            yield BrowserSession(profile=profile, browser=browser, context=context, page=page)
        finally:
            # Shield teardown so a cancelled request still releases the process.
            try:
                await asyncio.shield(self._teardown(playwright, browser, context))
            except asyncio.CancelledError:
                logger.warning("Capture cancelled; browser teardown continues in background")
                raise
            finally:
                active_browser_sessions.dec()

    async def _teardown(self, playwright, browser, context) -> None:
        if context is not None:
            await _quietly("context.close", context.close())
        await _quietly("browser.close", browser.close())
        await _quietly("playwright.stop", playwright.stop())
        logger.debug("Browser session closed")


async def _quietly(step: str, awaitable) -> None:
    """Await a teardown step; a failure in one step must not skip the next."""
    try:
        await awaitable
    except Exception as e:
        logger.debug("Teardown step %s failed: %s", step, e)
