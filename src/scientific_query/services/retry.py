"""Backoff and jitter policy shared by the LLM client and the batch executor."""

import asyncio
import logging
import random
from typing import Awaitable, Callable

from scientific_query.constants import (
    LLM_BASE_DELAY_MS,
    LLM_MAX_DELAY_MS,
    RETRY_AFTER_PADDING_MS,
)

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """
    Exponential backoff with Retry-After support.

    ``sleep`` and ``rng`` are injectable so tests can drive the policy with a
    recording fake clock and a seeded generator.
    """

    def __init__(
        self,
        base_delay_ms: int = LLM_BASE_DELAY_MS,
        backoff_factor: float = 2.0,
        max_delay_ms: int = LLM_MAX_DELAY_MS,
        max_retries: int = 3,
        retry_after_padding_ms: int = RETRY_AFTER_PADDING_MS,
        sleep: SleepFn | None = None,
        rng: random.Random | None = None,
    ):
        self.base_delay_ms = base_delay_ms
        self.backoff_factor = backoff_factor
        self.max_delay_ms = max_delay_ms
        self.max_retries = max_retries
        self.retry_after_padding_ms = retry_after_padding_ms
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    def delay_ms(self, retry_index: int, retry_after: float | None = None) -> int:
        """Delay before retry number ``retry_index`` (0-based).

        ``retry_after`` is the upstream Retry-After value in seconds; when given
        it replaces the backoff schedule and is padded.
        """
        if retry_after is not None:
            return int(retry_after * 1000) + self.retry_after_padding_ms
        delay = self.base_delay_ms * (self.backoff_factor**retry_index)
        return int(min(delay, self.max_delay_ms))

    def jitter_ms(self, upper: int) -> int:
        """Uniform jitter in ``[0, upper]``."""
        if upper <= 0:
            return 0
        return int(self._rng.uniform(0, upper))

    async def wait(self, ms: float) -> None:
        if ms <= 0:
            return
        logger.debug("Sleeping %.0fms", ms)
        await self._sleep(ms / 1000)


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header; None when absent or not numeric."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(seconds, 0.0)
