"""Bounded exponential-backoff retry for the analysis call."""

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from ..errors import OperationCancelled
from .cancellation import check_cancelled, sleep_unless_cancelled
from .logger import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


def backoff_delay(attempt: int, initial_delay: float) -> float:
    """Delay after failed attempt `attempt` (1-based): initial, 2x initial, 4x initial, ..."""
    return initial_delay * (2 ** (attempt - 1))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 2.0,
    cancel_event: Optional[asyncio.Event] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    on_retry: Optional[Callable[..., None]] = None,
    label: str = "",
) -> T:
    """
    Call `operation` up to `max_attempts` times.

    Between failures it waits an exponentially growing delay. The wait is cancellable:
    if `cancel_event` fires, OperationCancelled is raised instead of the last error.
    Errors outside `retry_on` propagate immediately. After the final attempt the last
    observed error is raised.

    `on_retry` is called as on_retry(attempt=..., max_attempts=..., error=..., delay=...)
    before each wait.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if initial_delay < 0:
        raise ValueError("initial_delay must be >= 0")

    last_error: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        check_cancelled(cancel_event, "before attempt")
        try:
            return await operation()
        except OperationCancelled:
            raise
        except retry_on as e:
            last_error = e
            if attempt >= max_attempts:
                break
            delay = backoff_delay(attempt, initial_delay)
            logger.warning(
                "Attempt %s/%s failed for %s: %s. Retrying in %.2fs...",
                attempt,
                max_attempts,
                label or "operation",
                e,
                delay,
            )
            if on_retry is not None:
                on_retry(attempt=attempt, max_attempts=max_attempts, error=e, delay=delay)
            await sleep_unless_cancelled(delay, cancel_event)

    assert last_error is not None
    raise last_error
