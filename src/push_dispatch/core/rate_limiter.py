"""Process-wide token bucket gating provider calls."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from push_dispatch.utils.logging import log_with_context

logger = logging.getLogger(__name__)

type Clock = Callable[[], float]
type Sleeper = Callable[[float], Awaitable[None]]


class TokenBucket:
    """Async token bucket shared by every dispatch in the process.

    Tokens refill continuously at ``refill_rate_per_second`` up to
    ``capacity``. ``acquire`` never fails: when the bucket is empty the
    caller sleeps exactly until the next token is due. Acquirers are
    serialized by an ``asyncio.Lock``, which wakes waiters in arrival order,
    so over any window of length ``t`` at most ``capacity + rate * t`` tokens
    are handed out.

    The clock and sleep function are injectable for deterministic tests.

    Example:
        >>> bucket = TokenBucket(capacity=700, refill_rate_per_second=700)
        >>> await bucket.acquire()
    """

    def __init__(
        self,
        capacity: float,
        refill_rate_per_second: float,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize a full bucket.

        Raises:
            ValueError: If capacity or refill rate is not positive
        """
        if capacity <= 0:
            msg = f"capacity must be positive, got {capacity}"
            raise ValueError(msg)
        if refill_rate_per_second <= 0:
            msg = f"refill_rate_per_second must be positive, got {refill_rate_per_second}"
            raise ValueError(msg)

        self._capacity: float = float(capacity)
        self._rate: float = float(refill_rate_per_second)
        self._clock: Clock = clock
        self._sleep: Sleeper = sleep
        self._tokens: float = self._capacity
        self._last_refill: float = clock()
        self._lock: asyncio.Lock = asyncio.Lock()

    @property
    def capacity(self) -> float:
        return self._capacity

    @property
    def refill_rate(self) -> float:
        return self._rate

    @property
    def available_tokens(self) -> float:
        """Tokens available right now (diagnostics only, may change at once)."""
        elapsed = max(0.0, self._clock() - self._last_refill)
        return min(self._capacity, self._tokens + elapsed * self._rate)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_refill = now

    async def acquire(self) -> None:
        """Take one token, waiting for the refill if none is available."""
        async with self._lock:
            self._refill()
            if self._tokens < 1:
                wait_seconds = (1 - self._tokens) / self._rate
                log_with_context(
                    logger,
                    logging.DEBUG,
                    "Rate limit reached, waiting for token",
                    extra={"wait_seconds": round(wait_seconds, 6)},
                )
                await self._sleep(wait_seconds)
                self._refill()
            self._tokens -= 1
