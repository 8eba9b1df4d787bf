"""Unit tests for challenge detection, remediation and cookie banners."""

from unittest.mock import AsyncMock

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pagesnap.core.exceptions import ChallengeUnresolved
from pagesnap.services.challenge import (
    ChallengeKind,
    ChallengeResolver,
    ChallengeState,
    classify_challenge,
    dismiss_cookie_banner,
    matched_indicators,
)
from pagesnap.services.outcome import StepStatus
from tests.fakes import FakeElement, FakePage

INTERACTIVE_HTML = "<html><body>Verify you are human by completing the action below.</body></html>"
CHECKBOX = 'input[type="checkbox"]'


def poll_timeout():
    return PlaywrightTimeoutError("Timeout 15000ms exceeded")


class TestClassifyChallenge:
    def test_no_indicator(self):
        assert classify_challenge("<h1>Produto</h1>") is None

    @pytest.mark.parametrize(
        "text,kind",
        [
            ("Verify you are human by completing the action below", ChallengeKind.INTERACTIVE_CHECKBOX),
            ("Verifying you are human. This may take a few seconds.", ChallengeKind.AUTOMATIC_PROCESSING),
            ("Checking if the site connection is secure", ChallengeKind.SECURITY_CHECK),
            ("Performance & security by Cloudflare", ChallengeKind.UNKNOWN),
        ],
    )
    def test_kinds(self, text, kind):
        assert classify_challenge(text) is kind

    def test_case_insensitive(self):
        assert "ray-id" in matched_indicators("RAY-ID: 8a1b2c")


class TestChallengeResolver:
    @pytest.mark.asyncio
    async def test_absent_is_noop(self):
        page = FakePage(html="<html>Welcome</html>")
        report = await ChallengeResolver().resolve(page)
        assert report.state is ChallengeState.ABSENT
        assert not report.detected
        assert page.polls == 0
        assert page.waits == []

    @pytest.mark.asyncio
    async def test_title_counts_for_detection(self):
        page = FakePage(html="<html></html>", title="Just a moment... Cloudflare")
        report = await ChallengeResolver().resolve(page)
        assert report.kind is ChallengeKind.UNKNOWN

    @pytest.mark.asyncio
    async def test_unreadable_page_is_treated_as_absent(self):
        page = AsyncMock()
        page.content.side_effect = RuntimeError("Target closed")
        report = await ChallengeResolver().resolve(page)
        assert report.state is ChallengeState.ABSENT

    @pytest.mark.asyncio
    async def test_click_then_resolved(self):
        checkbox = FakeElement()
        page = FakePage(html=INTERACTIVE_HTML, elements={CHECKBOX: checkbox})

        report = await ChallengeResolver().resolve(page)

        assert checkbox.scrolled and checkbox.clicked
        assert report.kind is ChallengeKind.INTERACTIVE_CHECKBOX
        assert report.activation.ok
        assert report.state is ChallengeState.DETECTED_RESOLVED
        assert report.polls == 1
        # settle, scroll settle, post-activation wait
        assert page.waits == [2000, 500, 8000]

    @pytest.mark.asyncio
    async def test_failing_candidate_does_not_stop_scan(self):
        broken = FakeElement(click_error=RuntimeError("Element is not attached"))
        turnstile = FakeElement()
        page = FakePage(
            html=INTERACTIVE_HTML,
            elements={CHECKBOX: broken, ".cf-turnstile": turnstile},
        )

        report = await ChallengeResolver().resolve(page)

        assert not broken.clicked
        assert turnstile.clicked
        assert report.activation.detail == ".cf-turnstile"

    @pytest.mark.asyncio
    async def test_falls_back_to_all_checkboxes(self):
        hidden = FakeElement(visible=False)
        visible = FakeElement()
        page = FakePage(html=INTERACTIVE_HTML, element_lists={CHECKBOX: [hidden, visible]})

        report = await ChallengeResolver().resolve(page)

        assert not hidden.clicked
        assert visible.clicked
        assert report.activation.detail == f"all {CHECKBOX}"

    @pytest.mark.asyncio
    async def test_detached_after_settle_is_not_clicked(self):
        checkbox = FakeElement(detach_after_settle=True)
        page = FakePage(html=INTERACTIVE_HTML, elements={CHECKBOX: checkbox})

        report = await ChallengeResolver().resolve(page)

        assert not checkbox.clicked
        assert report.activation.status is StepStatus.SKIPPED
        # passive wait when nothing was clicked
        assert 5000 in page.waits and 8000 not in page.waits

    @pytest.mark.asyncio
    async def test_late_widget_is_clicked_by_selector(self):
        widget = FakeElement()
        page = FakePage(html=INTERACTIVE_HTML, click_targets={".cf-turnstile": widget})

        report = await ChallengeResolver().resolve(page)

        assert widget.clicked
        assert report.activation.ok
        assert report.activation.detail == "click .cf-turnstile"
        assert page.selector_clicks == [(CHECKBOX, 3000), (".cf-turnstile", 3000)]
        assert 8000 in page.waits

    @pytest.mark.asyncio
    async def test_direct_click_runs_after_handle_scans(self):
        page = FakePage(html=INTERACTIVE_HTML)

        report = await ChallengeResolver().resolve(page)

        last_query = max(i for i, entry in enumerate(page.log) if entry[0] == "query")
        first_click = page.log.index(("click", CHECKBOX))
        assert last_query < first_click
        assert [s for s, _ in page.selector_clicks] == [CHECKBOX, ".cf-turnstile", "#cf-challenge"]
        assert report.activation.status is StepStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_direct_click_error_does_not_stop_scan(self):
        broken = FakeElement(click_error=RuntimeError("Element is outside of the viewport"))
        challenge = FakeElement()
        page = FakePage(
            html=INTERACTIVE_HTML,
            click_targets={CHECKBOX: broken, "#cf-challenge": challenge},
        )

        report = await ChallengeResolver().resolve(page)

        assert challenge.clicked
        assert report.activation.detail == "click #cf-challenge"

    @pytest.mark.asyncio
    async def test_direct_click_errors_are_reported_as_failed(self):
        page = FakePage(
            html=INTERACTIVE_HTML,
            click_targets={CHECKBOX: FakeElement(click_error=RuntimeError("detached"))},
        )

        report = await ChallengeResolver().resolve(page)

        assert report.activation.status is StepStatus.FAILED
        assert report.activation.detail == "1 candidates errored"

    @pytest.mark.asyncio
    async def test_unresolved_is_not_fatal(self):
        page = FakePage(html=INTERACTIVE_HTML, poll_results=[poll_timeout() for _ in range(3)])

        report = await ChallengeResolver().resolve(page)

        assert report.state is ChallengeState.DETECTED_UNRESOLVED
        assert page.polls == 3
        # passive wait, then an inter-poll delay after the first two timeouts only
        assert page.waits == [5000, 5000, 5000]

    @pytest.mark.asyncio
    async def test_resolves_on_second_poll(self):
        page = FakePage(html=INTERACTIVE_HTML, poll_results=[poll_timeout(), True])
        report = await ChallengeResolver().resolve(page)
        assert report.state is ChallengeState.DETECTED_RESOLVED
        assert report.polls == 2

    @pytest.mark.asyncio
    async def test_strict_mode_raises(self):
        page = FakePage(html=INTERACTIVE_HTML, poll_results=[poll_timeout() for _ in range(3)])
        page.url = "https://ev.braip.com/x"
        with pytest.raises(ChallengeUnresolved) as exc_info:
            await ChallengeResolver(strict=True).resolve(page)
        assert exc_info.value.kind == "interactive_checkbox"

    @pytest.mark.asyncio
    async def test_poll_uses_bounded_timeout(self):
        page = FakePage(html=INTERACTIVE_HTML)
        await ChallengeResolver(poll_timeout_ms=1234).resolve(page)
        assert ("poll", 1234) in page.log


class TestCookieBanner:
    @pytest.mark.asyncio
    async def test_clicks_first_visible_button(self):
        hidden = FakeElement(visible=False)
        accept = FakeElement()
        page = FakePage(
            elements={'button:has-text("Allow")': hidden, 'button:has-text("Accept")': accept}
        )
        outcome = await dismiss_cookie_banner(page)
        assert outcome.ok
        assert accept.clicked and not hidden.clicked
        assert page.waits == [1000]

    @pytest.mark.asyncio
    async def test_no_banner_is_skipped(self):
        outcome = await dismiss_cookie_banner(FakePage())
        assert outcome.status is StepStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_click_error_moves_on(self):
        broken = FakeElement(click_error=RuntimeError("intercepted"))
        close = FakeElement()
        page = FakePage(
            elements={'button:has-text("OK")': broken, 'button:has-text("Close")': close}
        )
        outcome = await dismiss_cookie_banner(page)
        assert outcome.detail == 'button:has-text("Close")'
