"""Unit tests for pagesnap.services.retry."""

import pytest

from pagesnap.core.exceptions import RetriesExhausted
from pagesnap.services.retry import RetryScheduler, RetryStep, backoff_delay_ms, build_retry_plan


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_scheduler(sleep, strategies=("load", "networkidle"), timeouts=(60000, 120000)):
    return RetryScheduler(
        strategies=strategies,
        timeouts_ms=timeouts,
        enhanced_timeouts_ms=(90000, 150000, 180000),
        base_delay_ms=1500,
        sleep=sleep,
    )


class TestRetryPlan:
    def test_cross_product_is_strategy_major(self):
        plan = build_retry_plan(["load", "networkidle"], [60000, 120000], 10)
        assert plan == [
            RetryStep("load", 60000),
            RetryStep("load", 120000),
            RetryStep("networkidle", 60000),
            RetryStep("networkidle", 120000),
        ]

    def test_truncated_to_max_attempts(self):
        plan = build_retry_plan(["load", "networkidle", "domcontentloaded"], [60000, 120000], 4)
        assert len(plan) == 4

    def test_enhanced_uses_longer_timeouts(self):
        scheduler = make_scheduler(RecordingSleep())
        assert [s.timeout_ms for s in scheduler.plan(3, enhanced=True)] == [90000, 150000, 180000]

    def test_requires_strategies(self):
        with pytest.raises(ValueError):
            RetryScheduler([], [1], [1], 1500)


class TestBackoff:
    @pytest.mark.parametrize("index,expected", [(1, 1500), (2, 3000), (3, 6000)])
    def test_standard(self, index, expected):
        assert backoff_delay_ms(1500, index) == expected

    @pytest.mark.parametrize("index,expected", [(1, 2250), (2, 4500), (3, 9000)])
    def test_enhanced(self, index, expected):
        assert backoff_delay_ms(1500, index, enhanced=True) == expected


class TestRetryScheduler:
    @pytest.mark.asyncio
    async def test_all_attempts_fail(self):
        sleep = RecordingSleep()
        scheduler = make_scheduler(sleep)
        calls = []

        async def attempt(strategy, timeout_ms):
            calls.append((strategy, timeout_ms))
            raise RuntimeError(f"boom {len(calls)}")

        with pytest.raises(RetriesExhausted) as exc_info:
            await scheduler.run("Screenshot-desktop", attempt, max_attempts=4)

        assert len(calls) == 4
        assert exc_info.value.label == "Screenshot-desktop"
        assert exc_info.value.attempts == 4
        assert "Screenshot-desktop" in str(exc_info.value)
        assert str(exc_info.value.last_error) == "boom 4"
        # No sleep after the final failure
        assert sleep.calls == [1.5, 3.0, 6.0]

    @pytest.mark.asyncio
    async def test_attempts_bounded_by_plan_size(self):
        scheduler = make_scheduler(RecordingSleep())
        calls = []

        async def attempt(strategy, timeout_ms):
            calls.append(strategy)
            raise RuntimeError("nope")

        with pytest.raises(RetriesExhausted):
            await scheduler.run("x", attempt, max_attempts=10)
        assert len(calls) == 4

    @pytest.mark.asyncio
    async def test_stops_at_first_success(self):
        sleep = RecordingSleep()
        scheduler = make_scheduler(sleep)
        calls = []

        async def attempt(strategy, timeout_ms):
            calls.append((strategy, timeout_ms))
            if len(calls) < 2:
                raise RuntimeError("flaky")
            return b"image"

        assert await scheduler.run("x", attempt, max_attempts=4) == b"image"
        assert calls == [("load", 60000), ("load", 120000)]
        assert sleep.calls == [1.5]

    @pytest.mark.asyncio
    async def test_enhanced_backoff(self):
        sleep = RecordingSleep()
        scheduler = make_scheduler(sleep)

        async def attempt(strategy, timeout_ms):
            raise RuntimeError("blocked")

        with pytest.raises(RetriesExhausted):
            await scheduler.run("x", attempt, max_attempts=4, enhanced=True)
        assert sleep.calls == [2.25, 4.5, 9.0]

    @pytest.mark.asyncio
    async def test_upload_succeeds_on_third_attempt(self):
        sleep = RecordingSleep()
        scheduler = make_scheduler(sleep, strategies=("load", "networkidle", "domcontentloaded"))
        results = [RuntimeError("503"), RuntimeError("timeout"), "https://bucket/key.jpeg"]

        async def attempt(_strategy, _timeout_ms):
            result = results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result

        location = await scheduler.run("Upload-desktop", attempt, max_attempts=4, enhanced=False)
        assert location == "https://bucket/key.jpeg"
        assert sleep.calls == [1.5, 3.0]
