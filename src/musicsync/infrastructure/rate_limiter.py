"""
Rate limiter for remote API calls.

Token bucket algorithm:
- Bucket holds max_tokens
- Tokens refill at refill_rate per second
- Every request consumes one token
- Empty bucket: wait until a token is available

On HTTP 429 the caller hands the server's Retry-After value to
handle_rate_limit_response(); without one we wait a fixed fallback.

USAGE:
    limiter = RateLimiter.for_spotify()

    async with limiter:
        response = await client.get(url)

    # On 429:
    await limiter.handle_rate_limit_response(retry_after)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterConfig:
    """Configuration for rate limiter.

    Spotify allows roughly 180 requests / minute; 2 req/sec sustained with a
    burst of 10 keeps us well below that. max_backoff_seconds must be high:
    Spotify sends Retry-After values of several minutes under heavy use, and
    capping below that just earns another 429.
    """

    max_tokens: int = 10
    refill_rate: float = 2.0  # Tokens per second
    max_backoff_seconds: float = 600.0
    fallback_seconds: float = 5.0  # Wait when the server sends no Retry-After


@dataclass
class RateLimiter:
    """Token bucket rate limiter with Retry-After handling."""

    config: RateLimiterConfig = field(default_factory=RateLimiterConfig)

    _tokens: float = field(default=0.0, init=False)
    _last_refill: float = field(default_factory=time.monotonic, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _name: str = field(default="default", init=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.config.max_tokens)

    @classmethod
    def for_spotify(cls, fallback_seconds: float = 5.0) -> "RateLimiter":
        """Create rate limiter tuned for the Spotify Web API."""
        limiter = cls(
            config=RateLimiterConfig(
                max_tokens=10,
                refill_rate=2.0,
                max_backoff_seconds=600.0,
                fallback_seconds=fallback_seconds,
            )
        )
        limiter._name = "spotify"
        return limiter

    def _refill_tokens(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(
            self.config.max_tokens, self._tokens + elapsed * self.config.refill_rate
        )
        self._last_refill = now

    async def acquire(self) -> None:
        """Acquire one token, waiting if necessary."""
        async with self._lock:
            self._refill_tokens()

            while self._tokens < 1.0:
                wait_time = (1.0 - self._tokens) / self.config.refill_rate
                logger.debug(
                    f"RateLimiter[{self._name}]: No tokens available, "
                    f"waiting {wait_time:.2f}s"
                )
                # Release lock while waiting
                self._lock.release()
                try:
                    await asyncio.sleep(wait_time)
                finally:
                    await self._lock.acquire()
                self._refill_tokens()

            self._tokens -= 1.0

    async def handle_rate_limit_response(self, retry_after: float | None = None) -> float:
        """Wait after a 429 response.

        Args:
            retry_after: Retry-After header value in seconds, if the server sent one

        Returns:
            The wait time used
        """
        async with self._lock:
            wait_time = retry_after if retry_after is not None else self.config.fallback_seconds
            wait_time = max(0.0, min(wait_time, self.config.max_backoff_seconds))
            logger.warning(
                f"RateLimiter[{self._name}]: 429 Rate Limited! "
                f"Waiting {wait_time:.1f}s before retry"
            )
            # Force the next request to wait for a fresh token
            self._tokens = 0.0

        await asyncio.sleep(wait_time)
        return wait_time

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        pass

    @property
    def name(self) -> str:
        return self._name


_spotify_limiter: RateLimiter | None = None


# Hey future me – ONE limiter per remote service, shared by every request in the process.
# Creating a limiter per client would let two clients burst past Spotify's limit together.
def get_spotify_limiter(fallback_seconds: float = 5.0) -> RateLimiter:
    """Get singleton Spotify rate limiter."""
    global _spotify_limiter
    if _spotify_limiter is None:
        _spotify_limiter = RateLimiter.for_spotify(fallback_seconds)
    return _spotify_limiter


__all__ = [
    "RateLimiter",
    "RateLimiterConfig",
    "get_spotify_limiter",
]
