"""
Per-provider token bucket rate limiting.

Tokens refill continuously at ``tokens_per_second`` up to ``max_tokens``.
Refill is computed lazily whenever a bucket is touched, so no background
timer runs. Each provider has its own bucket and lock; providers never
contend with each other.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
SleepFunc = Callable[[float], Awaitable[None]]


class RateLimitTimeoutError(Exception):
    """Raised when tokens could not be acquired within the allowed time."""

    def __init__(self, provider: str, tokens_needed: float, timeout: float):
        super().__init__(
            f"Could not acquire {tokens_needed} rate tokens for {provider} within {timeout:.2f}s"
        )
        self.provider = provider
        self.tokens_needed = tokens_needed
        self.timeout = timeout


@dataclass
class AcquireResult:
    """Outcome of a single non-blocking acquisition attempt."""
    granted: bool
    wait_seconds: float = 0.0


@dataclass
class TokenBucketState:
    """Mutable bucket state for one provider."""
    tokens_per_second: float
    capacity: float
    tokens: float
    last_refill: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def refill(self, now: float) -> None:
        elapsed = max(now - self.last_refill, 0.0)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.tokens_per_second)
        self.last_refill = now


@dataclass
class BucketSettings:
    tokens_per_second: float = 1.0
    max_tokens: float = 10.0


class TokenBucketLimiter:
    """
    Token buckets keyed by provider.

    Buckets are created lazily, full, on first use. ``acquire`` waits by
    polling ``try_acquire``; waiters are not queued, so ordering between
    concurrent callers is not guaranteed and a caller can starve under
    heavy contention.
    """

    def __init__(
        self,
        settings: Optional[Dict[str, BucketSettings]] = None,
        default: Optional[BucketSettings] = None,
        clock: Clock = time.monotonic,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self._settings = dict(settings or {})
        self._default = default or BucketSettings()
        self._clock = clock
        self._sleep = sleep
        self._buckets: Dict[str, TokenBucketState] = {}

    def configure(self, provider: str, tokens_per_second: float, max_tokens: float) -> None:
        """Set the rate for a provider; resets its bucket if one exists."""
        if tokens_per_second <= 0 or max_tokens <= 0:
            raise ValueError("tokens_per_second and max_tokens must be positive")
        self._settings[provider] = BucketSettings(tokens_per_second, max_tokens)
        self._buckets.pop(provider, None)

    def _bucket(self, provider: str) -> TokenBucketState:
        bucket = self._buckets.get(provider)
        if bucket is None:
            settings = self._settings.get(provider, self._default)
            bucket = TokenBucketState(
                tokens_per_second=settings.tokens_per_second,
                capacity=settings.max_tokens,
                tokens=settings.max_tokens,
                last_refill=self._clock(),
            )
            self._buckets[provider] = bucket
        return bucket

    async def try_acquire(self, provider: str, tokens_needed: float = 1.0) -> AcquireResult:
        """
        Take ``tokens_needed`` tokens if available.

        Returns:
            AcquireResult with granted=True, or granted=False and the time
            until enough tokens will have refilled
        """
        if tokens_needed <= 0:
            raise ValueError("tokens_needed must be positive")
        bucket = self._bucket(provider)
        async with bucket.lock:
            bucket.refill(self._clock())
            if bucket.tokens >= tokens_needed:
                bucket.tokens -= tokens_needed
                return AcquireResult(granted=True)
            wait = (tokens_needed - bucket.tokens) / bucket.tokens_per_second
            return AcquireResult(granted=False, wait_seconds=wait)

    async def acquire(
        self,
        provider: str,
        tokens_needed: float = 1.0,
        timeout: Optional[float] = None
    ) -> float:
        """
        Wait until ``tokens_needed`` tokens are taken.

        Args:
            provider: Provider whose bucket to draw from
            tokens_needed: Tokens to take
            timeout: Maximum seconds to wait; None waits indefinitely

        Returns:
            Seconds spent waiting

        Raises:
            ValueError: If tokens_needed exceeds the bucket capacity
            RateLimitTimeoutError: If the wait would exceed ``timeout``
        """
        bucket = self._bucket(provider)
        if tokens_needed > bucket.capacity:
            raise ValueError(
                f"{tokens_needed} tokens requested but {provider} bucket holds at most {bucket.capacity}"
            )

        start = self._clock()
        while True:
            result = await self.try_acquire(provider, tokens_needed)
            now = self._clock()
            if result.granted:
                return now - start

            if timeout is not None and (now - start) + result.wait_seconds > timeout:
                raise RateLimitTimeoutError(provider, tokens_needed, timeout)

            logger.debug(
                f"Rate limited on {provider}, waiting {result.wait_seconds:.3f}s",
                extra={"provider": provider, "wait_seconds": result.wait_seconds}
            )
            await self._sleep(result.wait_seconds)

    def available_tokens(self, provider: str) -> float:
        """Current token count for a provider as of now, without taking any."""
        bucket = self._bucket(provider)
        elapsed = max(self._clock() - bucket.last_refill, 0.0)
        return min(bucket.capacity, bucket.tokens + elapsed * bucket.tokens_per_second)
