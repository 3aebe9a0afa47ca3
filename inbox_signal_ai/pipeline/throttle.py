"""Global permit pool for concurrent analysis calls."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from ..config import ENRICHMENT_CONCURRENCY
from ..utils.cancellation import race_cancel


class EnrichmentThrottle:
    """
    Counting semaphore bounding in-flight analysis calls, independent of worker count.
    Share one instance between dispatchers to cap calls across concurrent runs
    on the same event loop.
    """

    def __init__(self, capacity: int = ENRICHMENT_CONCURRENCY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._sem = asyncio.Semaphore(capacity)
        self._in_use = 0
        self._peak = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def peak(self) -> int:
        """Highest number of permits held at once since creation."""
        return self._peak

    async def acquire(self, cancel_event: Optional[asyncio.Event] = None) -> Callable[[], None]:
        """
        Wait for a permit and return its release function.
        Raises OperationCancelled, without holding a permit, if cancel_event fires first.
        Calling the release function more than once is a no-op.
        """
        await race_cancel(
            self._sem.acquire(),
            cancel_event,
            "waiting for enrichment permit",
            on_late_result=lambda _: self._sem.release(),
        )
        self._in_use += 1
        self._peak = max(self._peak, self._in_use)

        released = False

        def release() -> None:
            nonlocal released
            if released:
                return
            released = True
            self._in_use -= 1
            self._sem.release()

        return release

    @asynccontextmanager
    async def permit(self, cancel_event: Optional[asyncio.Event] = None) -> AsyncIterator[None]:
        release = await self.acquire(cancel_event)
        try:
            yield
        finally:
            release()
