"""Race blocking awaits against a run's cancellation event."""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import OperationCancelled

T = TypeVar("T")


def check_cancelled(cancel_event: Optional[asyncio.Event], where: str = "") -> None:
    """Raise OperationCancelled if the event is already set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled(f"cancelled {where}".strip())


async def race_cancel(
    awaitable: Awaitable[T],
    cancel_event: Optional[asyncio.Event],
    where: str = "",
    on_late_result: Optional[Callable[[Any], None]] = None,
) -> T:
    """
    Await `awaitable` unless `cancel_event` fires first.

    On cancellation the pending awaitable is cancelled and OperationCancelled is raised.
    If the awaitable completed anyway in the same cycle, its result is handed to
    `on_late_result` so resources it acquired can be given back.
    """
    if cancel_event is None:
        return await awaitable
    if cancel_event.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelled(f"cancelled {where}".strip())

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise

    if task in done:
        waiter.cancel()
        return task.result()

    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is None and on_late_result is not None:
        on_late_result(task.result())
    raise OperationCancelled(f"cancelled {where}".strip())


async def sleep_unless_cancelled(delay: float, cancel_event: Optional[asyncio.Event]) -> None:
    """Sleep for `delay` seconds; raise OperationCancelled if the event fires first."""
    if cancel_event is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise OperationCancelled("cancelled during backoff")
