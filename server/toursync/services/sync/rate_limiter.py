"""Per-sync throttling of wholesaler API calls."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60
MAX_BACKOFF_SECONDS = 300
MAX_ERROR_BACKOFF_SECONDS = 30


class SyncRateLimiter:
    """
    Fixed-window limiter with backoff.

    At most ``max_calls_per_minute`` calls per 60 second window, at least
    ``min_delay_ms`` between calls, plus a backoff that grows on rate-limit
    hits (doubling, up to 5 minutes) and errors (one second at a time, up
    to 30 seconds) and resets on the next success.
    """

    def __init__(
        self,
        max_calls_per_minute: int = 60,
        min_delay_ms: int = 100,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_calls_per_minute = max_calls_per_minute
        self.min_delay_ms = min_delay_ms
        self._clock = clock
        self._sleep = sleep
        self.call_count = 0
        self.current_backoff = 0
        self.window_start = clock()

    async def throttle(self) -> None:
        """Wait until the next call is allowed, then count it."""
        if self._clock() - self.window_start >= WINDOW_SECONDS:
            self.call_count = 0
            self.window_start = self._clock()
            self.current_backoff = 0

        if self.call_count >= self.max_calls_per_minute:
            wait = WINDOW_SECONDS - (self._clock() - self.window_start)
            if wait > 0:
                logger.info("Rate limit reached, waiting", extra={"wait_seconds": round(wait, 2)})
                await self._sleep(wait)
                self.call_count = 0
                self.window_start = self._clock()

        if self.current_backoff > 0:
            logger.info("Applying backoff", extra={"backoff_seconds": self.current_backoff})
            await self._sleep(self.current_backoff)

        await self._sleep(self.min_delay_ms / 1000)
        self.call_count += 1

    def record_success(self) -> None:
        self.current_backoff = 0

    def record_rate_limit_hit(self) -> None:
        if self.current_backoff == 0:
            self.current_backoff = 1
        else:
            self.current_backoff = min(self.current_backoff * 2, MAX_BACKOFF_SECONDS)
        logger.warning("Rate limit hit, increasing backoff", extra={"backoff_seconds": self.current_backoff})

    def record_error(self) -> None:
        if self.current_backoff == 0:
            self.current_backoff = 1
        else:
            self.current_backoff = min(self.current_backoff + 1, MAX_ERROR_BACKOFF_SECONDS)

    def stats(self) -> dict[str, Any]:
        return {
            "calls_in_window": self.call_count,
            "max_calls_per_minute": self.max_calls_per_minute,
            "current_backoff": self.current_backoff,
            "window_remaining_seconds": max(0, WINDOW_SECONDS - int(self._clock() - self.window_start)),
        }

    def set_rate_limit(self, calls_per_minute: int) -> "SyncRateLimiter":
        self.max_calls_per_minute = calls_per_minute
        return self
