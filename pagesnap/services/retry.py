import asyncio
import logging
from dataclasses import dataclass
from itertools import product
from typing import Awaitable, Callable, Sequence, TypeVar

from pagesnap.core.exceptions import RetriesExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENHANCED_BACKOFF_MULTIPLIER = 1.5


@dataclass(frozen=True)
class RetryStep:
    """One planned attempt: how to decide the page is ready, and how long to wait for it."""

    strategy: str
    timeout_ms: int


def build_retry_plan(
    strategies: Sequence[str], timeouts_ms: Sequence[int], max_attempts: int
) -> list[RetryStep]:
    """Strategy x timeout cross product, strategy-major, cut at ``max_attempts``."""
    combos = [RetryStep(s, t) for s, t in product(strategies, timeouts_ms)]
    return combos[: max(0, max_attempts)]


def backoff_delay_ms(base_delay_ms: int, attempt_index: int, enhanced: bool = False) -> float:
    """Delay before 0-based attempt ``attempt_index`` (>= 1)."""
    delay = base_delay_ms * (2 ** (attempt_index - 1))
    if enhanced:
        delay *= ENHANCED_BACKOFF_MULTIPLIER
    return delay


class RetryScheduler:
    """Runs an attempt function over a bounded (strategy, timeout) plan.

    The same scheduler drives both the render step and the upload step. Any
    exception from the attempt function counts as a failed attempt except
    cancellation, which propagates immediately.
    """

    def __init__(
        self,
        strategies: Sequence[str],
        timeouts_ms: Sequence[int],
        enhanced_timeouts_ms: Sequence[int],
        base_delay_ms: int,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not strategies or not timeouts_ms or not enhanced_timeouts_ms:
            raise ValueError("retry plan needs at least one strategy and one timeout")
        self.strategies = tuple(strategies)
        self.timeouts_ms = tuple(timeouts_ms)
        self.enhanced_timeouts_ms = tuple(enhanced_timeouts_ms)
        self.base_delay_ms = base_delay_ms
        self._sleep = sleep

    def plan(self, max_attempts: int, enhanced: bool = False) -> list[RetryStep]:
        timeouts = self.enhanced_timeouts_ms if enhanced else self.timeouts_ms
        return build_retry_plan(self.strategies, timeouts, max_attempts)

    async def run(
        self,
        label: str,
        attempt_fn: Callable[[str, int], Awaitable[T]],
        max_attempts: int,
        enhanced: bool = False,
    ) -> T:
        steps = self.plan(max_attempts, enhanced)
        last_error: Exception | None = None

        for index, step in enumerate(steps):
            if index > 0:
                delay_ms = backoff_delay_ms(self.base_delay_ms, index, enhanced)
                logger.info("%s: waiting %.0fms before retry", label, delay_ms)
                await self._sleep(delay_ms / 1000)

            logger.info(
                "%s: attempt %d/%d (strategy=%s, timeout=%dms, enhanced=%s)",
                label,
                index + 1,
                len(steps),
                step.strategy,
                step.timeout_ms,
                enhanced,
            )
            try:
                return await attempt_fn(step.strategy, step.timeout_ms)
            except Exception as e:
                last_error = e
                logger.warning("%s: attempt %d failed: %s", label, index + 1, e)

        logger.error("%s: giving up after %d attempts", label, len(steps))
        raise RetriesExhausted(label, len(steps), last_error)
