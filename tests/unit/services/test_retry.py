"""Unit tests for RetryPolicy."""

import random

import pytest

from scientific_query.services.retry import RetryPolicy, parse_retry_after


@pytest.fixture
def policy(fake_sleep) -> RetryPolicy:
    return RetryPolicy(sleep=fake_sleep, rng=random.Random(42))


@pytest.mark.parametrize("retry_index, expected", [(0, 2000), (1, 4000), (2, 8000), (10, 120000)])
def test_exponential_delay(policy, retry_index, expected):
    assert policy.delay_ms(retry_index) == expected


def test_retry_after_replaces_schedule(policy):
    assert policy.delay_ms(2, retry_after=3) == 8000  # 3s + 5s padding


def test_jitter_bounds(policy):
    values = [policy.jitter_ms(1000) for _ in range(50)]
    assert all(0 <= v <= 1000 for v in values)
    assert policy.jitter_ms(0) == 0


async def test_wait_uses_injected_sleep(policy, fake_sleep):
    await policy.wait(1500)
    await policy.wait(0)

    assert fake_sleep.calls == [1.5]


@pytest.mark.parametrize(
    "value, expected",
    [("3", 3.0), ("0.5", 0.5), (None, None), ("", None), ("soon", None), ("-1", 0.0)],
)
def test_parse_retry_after(value, expected):
    assert parse_retry_after(value) == expected
