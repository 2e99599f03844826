"""Unit tests for BatchExecutor."""

import asyncio
import random

import pytest

from scientific_query.models.model_pipeline import ProgressEvent
from scientific_query.services.batch_executor import BatchConfig, BatchExecutor
from scientific_query.services.llm import LLMRateLimit
from scientific_query.services.progress import BufferedProgressSink
from scientific_query.services.retry import RetryPolicy


@pytest.fixture
def executor(fake_sleep) -> BatchExecutor:
    return BatchExecutor(RetryPolicy(sleep=fake_sleep, rng=random.Random(7)))


async def test_results_keep_input_order(executor):
    async def worker(item, index):
        await asyncio.sleep(0.01 * (3 - index))
        return item * 10

    results = await executor.run([1, 2, 3], worker, BatchConfig(concurrency=3))

    assert [r.value for r in results] == [10, 20, 30]
    assert [r.index for r in results] == [0, 1, 2]
    assert all(r.ok for r in results)


async def test_concurrency_bound(executor):
    running = 0
    peak = 0

    async def worker(item, index):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return item

    await executor.run(list(range(6)), worker, BatchConfig(concurrency=2))

    assert peak == 2


async def test_pacing_and_cooldown(executor, fake_sleep):
    async def worker(item, index):
        return item

    config = BatchConfig(inter_item_delay_ms=1000, cooldown_every_n=3, cooldown_ms=5000)
    await executor.run(list(range(4)), worker, config)

    # Delay before every item but the first, cool-down before item index 3
    assert fake_sleep.calls == [1.0, 1.0, 6.0]


async def test_jitter_added_to_delay(executor, fake_sleep):
    async def worker(item, index):
        return item

    config = BatchConfig(inter_item_delay_ms=1000, jitter_ms=500)
    await executor.run([1, 2], worker, config)

    assert len(fake_sleep.calls) == 1
    assert 1.0 <= fake_sleep.calls[0] <= 1.5


async def test_rate_limit_retried_once(executor, fake_sleep):
    calls = []

    async def worker(item, index):
        calls.append(index)
        if len(calls) == 1:
            raise LLMRateLimit("LLM rate limit exceeded (429)", 429)
        return "ok"

    config = BatchConfig(rate_limit_backoff_ms=100)
    results = await executor.run(["a"], worker, config)

    assert results[0].value == "ok"
    assert results[0].retried
    assert calls == [0, 0]
    assert 0.1 <= fake_sleep.calls[0] <= 0.2


async def test_persistent_rate_limit_is_captured(executor):
    async def worker(item, index):
        raise LLMRateLimit("LLM rate limit exceeded (429)", 429)

    results = await executor.run(["a"], worker, BatchConfig(max_per_item_retries=1))

    assert isinstance(results[0].error, LLMRateLimit)
    assert results[0].retried
    assert not results[0].ok


async def test_other_errors_not_retried_and_do_not_stop_batch(executor):
    calls = []

    async def worker(item, index):
        calls.append(item)
        if item == "bad":
            raise ValueError("broken")
        return item

    results = await executor.run(["a", "bad", "c"], worker, BatchConfig())

    assert calls == ["a", "bad", "c"]
    assert isinstance(results[1].error, ValueError)
    assert not results[1].retried
    assert results[2].value == "c"


async def test_progress_events(executor):
    sink = BufferedProgressSink()

    async def worker(item, index):
        return item

    await executor.run([1, 2, 3], worker, BatchConfig(), sink=sink)

    assert list(sink.events) == [
        ProgressEvent(processing=True, total=3, current=1),
        ProgressEvent(processing=True, total=3, current=2),
        ProgressEvent(processing=True, total=3, current=3),
        ProgressEvent(processing=False, total=3, current=3),
    ]


async def test_cancel_skips_remaining_items(executor):
    cancel = asyncio.Event()
    sink = BufferedProgressSink()

    async def worker(item, index):
        cancel.set()
        return item

    results = await executor.run([1, 2, 3], worker, BatchConfig(), sink=sink, cancel=cancel)

    assert results[0].ok
    assert [r.skipped for r in results] == [False, True, True]
    assert sink.last == ProgressEvent(processing=False, total=3, current=1)


async def test_cancel_stops_before_pacing_delay(executor, fake_sleep):
    cancel = asyncio.Event()

    async def worker(item, index):
        cancel.set()
        return item

    config = BatchConfig(inter_item_delay_ms=20000, cooldown_every_n=1, cooldown_ms=60000)
    results = await executor.run([1, 2, 3], worker, config, cancel=cancel)

    assert [r.skipped for r in results] == [False, True, True]
    assert fake_sleep.total_ms == 0


async def test_empty_batch(executor):
    sink = BufferedProgressSink()

    async def worker(item, index):
        return item

    assert await executor.run([], worker, BatchConfig(), sink=sink) == []
    assert sink.last == ProgressEvent(processing=False, total=0, current=0)


def test_batch_config_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        BatchConfig(concurrency=0)
