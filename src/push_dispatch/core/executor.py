"""Process-wide cap on concurrent provider work."""

import asyncio
from collections.abc import Awaitable, Callable


class BoundedExecutor:
    """Run coroutines with at most ``max_concurrent`` in flight.

    Slots are handed out by an ``asyncio.Semaphore``, which queues waiters
    in FIFO order. A slot is released on every exit path of the wrapped
    coroutine, including exceptions and cancellation.

    Example:
        >>> executor = BoundedExecutor(max_concurrent=100)
        >>> receipt = await executor.run(provider.send_push, user_id, payload)
    """

    def __init__(self, max_concurrent: int) -> None:
        if max_concurrent < 1:
            msg = f"max_concurrent must be at least 1, got {max_concurrent}"
            raise ValueError(msg)
        self._max_concurrent: int = max_concurrent
        self._semaphore: asyncio.Semaphore = asyncio.Semaphore(max_concurrent)
        self._in_flight: int = 0
        self._waiting: int = 0

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def in_flight(self) -> int:
        """Number of coroutines currently holding a slot."""
        return self._in_flight

    @property
    def waiting(self) -> int:
        """Number of callers queued for a slot."""
        return self._waiting

    async def run[**P, T](
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Await ``func(*args, **kwargs)`` once a slot is free."""
        self._waiting += 1
        admitted = False
        try:
            async with self._semaphore:
                admitted = True
                self._waiting -= 1
                self._in_flight += 1
                try:
                    return await func(*args, **kwargs)
                finally:
                    self._in_flight -= 1
        finally:
            # cancelled while still queued
            if not admitted:
                self._waiting -= 1
