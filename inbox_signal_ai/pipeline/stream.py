"""Single output channel merging every worker's results."""

import asyncio
from typing import TYPE_CHECKING, AsyncIterator, Generic, Optional, TypeVar

from ..errors import StreamClosedError
from ..utils.cancellation import race_cancel

if TYPE_CHECKING:
    from .dispatcher import RunStats

T = TypeVar("T")


class ResultStream(Generic[T]):
    """
    Many writers, one reader. Iterate with `async for`; iteration ends once the
    stream is closed and drained. Single pass: there is no replay.

    `maxsize` bounds buffered results so send() applies back-pressure
    (0 means unbounded).
    """

    def __init__(self, maxsize: int = 1) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self._closed = False
        self._closed_event = asyncio.Event()
        self._runner: Optional[asyncio.Task] = None
        self.sent = 0
        # set by the dispatcher that feeds this stream
        self.stats: Optional["RunStats"] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, runner: asyncio.Task) -> None:
        """Keep a reference to the task feeding this stream."""
        self._runner = runner

    @property
    def runner(self) -> Optional[asyncio.Task]:
        return self._runner

    async def send(self, item: T, cancel_event: Optional[asyncio.Event] = None) -> None:
        """Block until the item is buffered or cancel_event fires."""
        if self._closed:
            raise StreamClosedError("send on closed result stream")
        await race_cancel(self._queue.put(item), cancel_event, "sending result")
        self.sent += 1

    def close(self) -> None:
        """Mark the stream finished. Idempotent; buffered items remain readable."""
        self._closed = True
        self._closed_event.set()

    async def wait_closed(self) -> None:
        await self._closed_event.wait()

    async def receive(self) -> Optional[T]:
        """Next item, or None once the stream is closed and drained."""
        while True:
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._closed:
                return None

            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed_event.wait())
            try:
                done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                getter.cancel()
                closer.cancel()
                raise
            if getter in done:
                closer.cancel()
                return getter.result()
            getter.cancel()
            await asyncio.wait({getter})
            if not getter.cancelled() and getter.exception() is None:
                return getter.result()

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        item = await self.receive()
        if item is None:
            raise StopAsyncIteration
        return item
