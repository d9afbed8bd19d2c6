"""Token-bucket request pacing for provider API clients."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from time import monotonic


class TokenBucket:
    """Paces requests to one mailbox with a refilling token bucket.

    The bucket holds up to ``burst`` tokens and gains ``rate`` tokens per
    second. A sync's list call and its first message fetches go out back to
    back, then requests settle at ``rate``. Each acquire spends one token;
    when the bucket is empty the caller sleeps off the deficit.

    Gmail's per-user quota and Graph's per-mailbox throttle both sit well
    above the defaults.

    Attributes:
        rate: Tokens added per second.
        burst: Bucket capacity.
    """

    def __init__(
        self,
        rate: float = 10.0,
        burst: int = 5,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        """Initialize a full bucket.

        Args:
            rate: Sustained requests per second.
            burst: Requests allowed back to back from a full bucket.
            clock: Monotonic seconds source.

        Raises:
            ValueError: If rate is not positive or burst is below one.
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = min(float(self.burst), self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    @property
    def available(self) -> float:
        """Tokens that can be spent without waiting (negative while in debt)."""
        self._refill()
        return self._tokens

    async def acquire(self) -> None:
        """Take one token, sleeping until the bucket has refilled enough.

        Example:
            bucket = TokenBucket(rate=10, burst=5)
            await bucket.acquire()
            await make_api_request()
        """
        async with self._lock:
            self._refill()
            self._tokens -= 1
            if self._tokens < 0:
                # Held under the lock so waiters queue in order.
                await asyncio.sleep(-self._tokens / self.rate)
