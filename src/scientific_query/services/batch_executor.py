"""
Paced, rate-limit-aware batch execution.

Items are dispatched in input order under a concurrency bound, with a
mandatory delay plus jitter between dispatches and a periodic cool-down.
A worker failing with a rate-limit error is retried after an extended
wait; any other failure is captured in that item's result.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from pydantic import BaseModel, Field

from scientific_query.config import Settings
from scientific_query.models.model_pipeline import ProgressEvent
from scientific_query.services.llm import is_rate_limit_error
from scientific_query.services.progress import NullProgressSink, ProgressSink
from scientific_query.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchConfig(BaseModel):
    """Pacing and retry settings for one batch run."""

    concurrency: int = Field(default=1, ge=1)
    inter_item_delay_ms: int = 0
    jitter_ms: int = 0
    max_per_item_retries: int = 1  # rate-limit retries only
    rate_limit_backoff_ms: int = 0
    cooldown_every_n: int = 0  # 0 disables the cool-down
    cooldown_ms: int = 0

    @classmethod
    def for_analysis(cls, settings: Settings) -> "BatchConfig":
        """Sequential pacing used for per-article LLM analyses."""
        return cls(
            concurrency=1,
            inter_item_delay_ms=settings.batch_inter_delay_ms,
            jitter_ms=settings.batch_jitter_ms,
            max_per_item_retries=1,
            rate_limit_backoff_ms=settings.batch_rate_limit_backoff_ms,
            cooldown_every_n=settings.batch_cooldown_every_n,
            cooldown_ms=settings.batch_cooldown_ms,
        )


@dataclass
class BatchItemResult(Generic[R]):
    index: int
    value: R | None = None
    error: Exception | None = None
    retried: bool = False
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.skipped and self.error is None


class BatchExecutor:
    """Runs an async worker over a list of items; results keep input order."""

    def __init__(self, policy: RetryPolicy | None = None):
        self.policy = policy or RetryPolicy()

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T, int], Awaitable[R]],
        config: BatchConfig,
        sink: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[BatchItemResult[R]]:
        """Run ``worker(item, index)`` for every item.

        Args:
            items: Work items, dispatched in order.
            worker: Async unit of work.
            config: Pacing, concurrency, and retry settings.
            sink: Receives a progress event after every item.
            cancel: When set, no further items are dispatched; in-flight items
                finish and the rest are returned with ``skipped=True``.

        Returns:
            One result per item, in input order.
        """
        sink = sink or NullProgressSink()
        total = len(items)
        results: list[BatchItemResult[R] | None] = [None] * total
        semaphore = asyncio.Semaphore(config.concurrency)
        completed = 0

        async def run_item(item: T, index: int) -> None:
            nonlocal completed
            try:
                results[index] = await self._run_with_retry(item, index, worker, config)
            finally:
                semaphore.release()
                completed += 1
                sink.emit(ProgressEvent(processing=True, total=total, current=completed))

        def cancelled(index: int) -> bool:
            if cancel is None or not cancel.is_set():
                return False
            semaphore.release()
            logger.warning("Batch cancelled before item %d of %d", index + 1, total)
            return True

        tasks: list[asyncio.Task] = []
        try:
            for index, item in enumerate(items):
                await semaphore.acquire()
                if cancelled(index):
                    break
                if index > 0:
                    await self._pace(index, config)
                    if cancelled(index):
                        break
                tasks.append(asyncio.create_task(run_item(item, index)))
            if tasks:
                await asyncio.gather(*tasks)
        except Exception:
            logger.exception("Batch loop failed after %d of %d items", completed, total)
            sink.emit(ProgressEvent(processing=False, total=0, current=0))
            raise

        final = [
            result if result is not None else BatchItemResult(index=i, skipped=True)
            for i, result in enumerate(results)
        ]
        done = sum(1 for r in final if not r.skipped)
        sink.emit(ProgressEvent(processing=False, total=total, current=done))
        return final

    async def _pace(self, index: int, config: BatchConfig) -> None:
        delay = config.inter_item_delay_ms + self.policy.jitter_ms(config.jitter_ms)
        if config.cooldown_every_n and index % config.cooldown_every_n == 0:
            logger.info("Rate-limit cool-down of %dms before item %d", config.cooldown_ms, index + 1)
            delay += config.cooldown_ms
        await self.policy.wait(delay)

    async def _run_with_retry(
        self,
        item: Any,
        index: int,
        worker: Callable[[Any, int], Awaitable[R]],
        config: BatchConfig,
    ) -> BatchItemResult[R]:
        retries = 0
        while True:
            try:
                value = await worker(item, index)
                return BatchItemResult(index=index, value=value, retried=retries > 0)
            except Exception as e:
                if is_rate_limit_error(e) and retries < config.max_per_item_retries:
                    retries += 1
                    backoff = config.rate_limit_backoff_ms
                    wait = backoff + self.policy.jitter_ms(backoff)
                    logger.warning(
                        "Item %d hit a rate limit; retry %d in %dms", index + 1, retries, wait
                    )
                    await self.policy.wait(wait)
                    continue
                logger.warning("Item %d failed: %s", index + 1, e)
                return BatchItemResult(index=index, error=e, retried=retries > 0)
