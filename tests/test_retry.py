"""
Pytest tests for the upstream retry policy (backoff, Retry-After, exhaustion).

sleep is an AsyncMock so no test actually waits.
"""

from __future__ import annotations

import random
from unittest.mock import AsyncMock

import pytest

from wallet_whisperer.core.exceptions import RateLimited, UpstreamUnavailable
from wallet_whisperer.ingestion.retry import RetryPolicy


def _policy(**kwargs) -> RetryPolicy:
    kwargs.setdefault("sleep", AsyncMock())
    kwargs.setdefault("jitter", 0.0)
    return RetryPolicy(**kwargs)


def test_delay_doubles_and_is_capped():
    policy = _policy(base_delay=0.5, max_delay=4.0)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4, 5)] == [0.5, 1.0, 2.0, 4.0, 4.0]


def test_retry_after_raises_delay_up_to_max():
    policy = _policy(base_delay=0.5, max_delay=8.0)
    assert policy.delay_for(1, retry_after=3.0) == 3.0
    assert policy.delay_for(1, retry_after=60.0) == 8.0
    assert policy.delay_for(3, retry_after=0.1) == 2.0


def test_jitter_stays_within_bounds():
    policy = RetryPolicy(base_delay=1.0, max_delay=8.0, jitter=0.2, rng=random.Random(1))
    for _ in range(50):
        assert 0.8 <= policy.delay_for(1) <= 1.2


def test_invalid_values_are_clamped():
    policy = RetryPolicy(max_attempts=0, base_delay=-1, jitter=5)
    assert policy.max_attempts == 1
    assert policy.base_delay == 0.0
    assert policy.jitter == 1.0


@pytest.mark.asyncio
async def test_rate_limited_call_is_retried():
    fn = AsyncMock(side_effect=[RateLimited("helius: rate limited", retry_after=2.0), {"ok": True}])
    policy = _policy(max_attempts=3, base_delay=0.5)
    assert await policy.call(fn, "arg", key="value") == {"ok": True}
    assert fn.await_count == 2
    fn.assert_awaited_with("arg", key="value")
    policy.sleep.assert_awaited_once_with(2.0)


@pytest.mark.asyncio
async def test_exhausted_rate_limit_becomes_upstream_unavailable():
    fn = AsyncMock(side_effect=RateLimited("helius: rate limited"))
    policy = _policy(max_attempts=3)
    with pytest.raises(UpstreamUnavailable) as exc_info:
        await policy.call(fn)
    assert not isinstance(exc_info.value, RateLimited)
    assert isinstance(exc_info.value.__cause__, RateLimited)
    assert fn.await_count == 3
    assert policy.sleep.await_count == 2


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_immediately():
    fn = AsyncMock(side_effect=UpstreamUnavailable("helius: HTTP 500", status=500))
    policy = _policy(max_attempts=4)
    with pytest.raises(UpstreamUnavailable):
        await policy.call(fn)
    assert fn.await_count == 1
    policy.sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_transport_failures_retried_when_configured():
    """retry_on can include UpstreamUnavailable; the last error is re-raised unchanged."""
    last = UpstreamUnavailable("helius: timed out")
    fn = AsyncMock(side_effect=[UpstreamUnavailable("helius: timed out"), last])
    policy = _policy(max_attempts=2, retry_on=(UpstreamUnavailable,))
    with pytest.raises(UpstreamUnavailable) as exc_info:
        await policy.call(fn)
    assert exc_info.value is last
