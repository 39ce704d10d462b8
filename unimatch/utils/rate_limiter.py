"""Outbound call pacing for search backends and verification rounds."""

import asyncio
from typing import Awaitable, Callable
from urllib.parse import urlparse

from aiolimiter import AsyncLimiter


class DomainRateLimiter:
    """Per-host rate limiting for outbound search requests.

    Uses aiolimiter AsyncLimiter to throttle requests on a per-host basis.
    Each host gets its own limiter so one provider's budget never delays another.
    """

    def __init__(self, default_rate: float = 5.0, time_period: float = 1.0):
        """Initialize the domain rate limiter.

        Args:
            default_rate: Maximum requests per time_period (default: 5 req/sec)
            time_period: Time period in seconds (default: 1 second)
        """
        self.limiters: dict[str, AsyncLimiter] = {}
        self.default_rate = default_rate
        self.time_period = time_period

    async def acquire(self, url: str) -> None:
        """Acquire a rate limit token for the URL's host.

        Args:
            url: Full URL to extract the host from
        """
        domain = urlparse(url).netloc

        if domain not in self.limiters:
            self.limiters[domain] = AsyncLimiter(
                max_rate=self.default_rate, time_period=self.time_period
            )

        await self.limiters[domain].acquire()


class FixedDelayPolicy:
    """Sleep-between-calls policy for sequential rounds.

    ``wait()`` is a no-op before the first round and sleeps ``delay_seconds``
    before every later one. ``sleep`` is injectable so tests can record the
    pauses instead of waiting.
    """

    def __init__(
        self,
        delay_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    async def pause(self) -> None:
        """Sleep for the configured delay unconditionally."""
        if self.delay_seconds > 0:
            await self._sleep(self.delay_seconds)

    def rounds(self) -> "_Rounds":
        """Start a fresh sequence of rounds."""
        return _Rounds(self)


class _Rounds:
    def __init__(self, policy: FixedDelayPolicy):
        self._policy = policy
        self._started = False

    async def wait(self) -> None:
        if self._started:
            await self._policy.pause()
        self._started = True
