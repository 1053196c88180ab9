"""
Retry policy for upstream calls (Helius, CoinGecko).

Exponential backoff with jitter, bounded attempts. By default only
RateLimited is retried; once attempts are exhausted the caller sees
UpstreamUnavailable. Add UpstreamUnavailable to retry_on to also retry
transport failures.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from wallet_whisperer.core.exceptions import RateLimited, UpstreamUnavailable
from wallet_whisperer.whisperer_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    max_attempts: Total tries including the first one.
    base_delay: Delay before the second attempt (seconds); doubles each attempt.
    max_delay: Upper bound for a single delay.
    jitter: Fraction of the delay added/subtracted at random (0.0 disables).
    retry_on: Exception types that trigger another attempt.
    """

    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.2
    retry_on: tuple[type[BaseException], ...] = (RateLimited,)
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self) -> None:
        self.max_attempts = max(1, int(self.max_attempts))
        self.base_delay = max(0.0, float(self.base_delay))
        self.max_delay = max(self.base_delay, float(self.max_delay))
        self.jitter = min(1.0, max(0.0, float(self.jitter)))

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """Delay after the given failed attempt (1-based). Honors Retry-After when larger."""
        delay = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if self.jitter and delay:
            delay += delay * self.jitter * (2 * self.rng.random() - 1)
        if retry_after is not None:
            delay = max(delay, min(retry_after, self.max_delay))
        return max(0.0, delay)

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run fn with retries. Non-retryable errors propagate on the first failure."""
        last_err: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await fn(*args, **kwargs)
            except self.retry_on as e:
                last_err = e
                if attempt >= self.max_attempts:
                    break
                delay = self.delay_for(attempt, getattr(e, "retry_after", None))
                logger.warning(
                    "upstream_retry",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay_sec=round(delay, 3),
                    error=str(e),
                    error_code=getattr(e, "code", type(e).__name__),
                )
                await self.sleep(delay)
        logger.warning("upstream_retries_exhausted", attempts=self.max_attempts, error=str(last_err))
        if isinstance(last_err, UpstreamUnavailable) and not isinstance(last_err, RateLimited):
            raise last_err
        raise UpstreamUnavailable(
            f"upstream still failing after {self.max_attempts} attempts: {last_err}",
            attempts=self.max_attempts,
        ) from last_err
