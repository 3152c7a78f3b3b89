"""Bounded retry policy for upstream requests.

Exponential backoff with optional jitter, applied to transport failures
that are worth retrying (network errors, 429 and 5xx responses).

Usage:
    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    listing = await policy.run(adapter.fetch_listing, token, "rust", "hot")
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ruddit_core.errors import TransportError

T = TypeVar("T")


DEFAULT_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


@dataclass
class RetryPolicy:
    """Retry configuration for a single upstream call.

    Attributes:
        max_attempts: Total attempts including the first one (1 disables retries).
        base_delay: Delay before the second attempt, in seconds.
        max_delay: Upper bound for any single delay.
        multiplier: Growth factor between attempts.
        jitter: Whether to add +/- 25% random jitter.
        retryable_status: HTTP status codes that trigger a retry.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True
    retryable_status: frozenset[int] = field(default_factory=lambda: DEFAULT_RETRYABLE_STATUS)
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def get_delay(self, attempt: int, retry_after: Optional[int] = None) -> float:
        """Calculate the delay after a failed attempt.

        Args:
            attempt: The attempt that just failed (1-based).
            retry_after: Optional Retry-After value from the server.

        Returns:
            Delay in seconds before the next attempt.
        """
        delay = self.base_delay * (self.multiplier ** (attempt - 1))

        if self.jitter:
            jitter_range = delay * 0.25
            delay = delay + random.uniform(-jitter_range, jitter_range)

        delay = min(delay, self.max_delay)

        if retry_after is not None:
            delay = max(delay, float(retry_after))

        return max(0.1, delay)

    def should_retry(self, error: TransportError, attempt: int) -> bool:
        """Decide whether a failed attempt gets another try."""
        if attempt >= self.max_attempts:
            return False
        return error.status_code == 0 or error.status_code in self.retryable_status

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Call ``func`` until it succeeds or the policy gives up.

        Only TransportError is retried; everything else propagates at once.
        The last TransportError is re-raised when attempts are exhausted.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await func(*args, **kwargs)
            except TransportError as e:
                if not self.should_retry(e, attempt):
                    raise
                await self.sleep(self.get_delay(attempt, e.retry_after))


NO_RETRY = RetryPolicy(max_attempts=1)
