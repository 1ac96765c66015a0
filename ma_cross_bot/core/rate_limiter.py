"""Token bucket limiter bounding outbound calls to one protected resource."""

import asyncio
import time
from collections.abc import Awaitable, Callable

from ma_cross_bot.core.errors import RateLimitExceeded

DEFAULT_RATE_LIMIT_TIMEOUT_S = 2.0


class RateLimiter:
    """Refill ``rate`` tokens per second up to ``burst``; callers wait for ``weight`` tokens.

    Acquires are serialized, so a waiting caller holds its place in line until it is
    served or its timeout can no longer be met.
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst <= 0:
            raise ValueError("burst must be positive")
        self.rate = float(rate)
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self, weight: int = 1, timeout: float = DEFAULT_RATE_LIMIT_TIMEOUT_S) -> None:
        """Wait until ``weight`` tokens are available, failing once ``timeout`` would elapse."""

        if weight <= 0:
            return
        if weight > self.burst:
            raise RateLimitExceeded(f"weight {weight} exceeds burst {self.burst}")

        deadline = self._clock() + timeout
        if self._lock.locked():
            try:
                await asyncio.wait_for(self._lock.acquire(), timeout=max(0.0, timeout))
            except asyncio.TimeoutError as exc:
                raise RateLimitExceeded(f"rate limiter busy for more than {timeout}s") from exc
        else:
            # uncontended: a zero timeout must still succeed
            await self._lock.acquire()

        try:
            self._refill()
            if self._tokens < weight:
                wait_s = (weight - self._tokens) / self.rate
                if self._clock() + wait_s > deadline:
                    raise RateLimitExceeded(
                        f"waiting {wait_s:.3f}s for {weight} tokens exceeds timeout {timeout}s"
                    )
                await self._sleep(wait_s)
                self._refill()
            self._tokens = max(0.0, self._tokens - weight)
        finally:
            self._lock.release()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._updated_at = now
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
