"""Consumer-side adapters over a ResultStream: collect-all or push-as-ready."""

import asyncio
from typing import AsyncIterator, Iterable, List, Optional, Tuple

from ..config import HEARTBEAT_INTERVAL_SECONDS
from ..schemas.enrichment_result import EnrichmentResult
from ..schemas.stream_event import NO_EMAILS_CODE, StreamEvent
from ..utils.logger import get_logger
from .stream import ResultStream

logger = get_logger(__name__)

NO_EMAILS_MESSAGE = "No emails found matching the query"


async def collect_results(
    stream: ResultStream[EnrichmentResult],
) -> Tuple[List[EnrichmentResult], int]:
    """Batch mode: drain the stream in arrival order and return (results, count)."""
    results: List[EnrichmentResult] = []
    async for result in stream:
        results.append(result)
        logger.info("Processed message company=%s category=%s", result.company, result.category)
    logger.info("Sync completed: processed=%s", len(results))
    return results, len(results)


async def stream_events(
    stream: ResultStream[EnrichmentResult],
    cancel_event: Optional[asyncio.Event] = None,
    heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
    history: Optional[Iterable[EnrichmentResult]] = None,
) -> AsyncIterator[StreamEvent]:
    """
    Incremental mode: yield a data event per result as it arrives.

    Stored history is replayed first. A heartbeat is yielded whenever
    `heartbeat_interval` passes without a result. When the stream closes a
    `no_emails` error is yielded if nothing live arrived, then `complete`.
    If `cancel_event` fires the generator stops without yielding anything else.
    """
    for past in history or []:
        if cancel_event is not None and cancel_event.is_set():
            return
        yield StreamEvent.data(past.to_payload())

    found_any = False
    pending: Optional[asyncio.Future] = None
    try:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Consumer cancelled; stopping event stream")
                return
            if pending is None:
                pending = asyncio.ensure_future(stream.receive())

            waiters = {pending}
            cancel_waiter = None
            if cancel_event is not None:
                cancel_waiter = asyncio.ensure_future(cancel_event.wait())
                waiters.add(cancel_waiter)
            try:
                done, _ = await asyncio.wait(
                    waiters,
                    timeout=heartbeat_interval,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                if cancel_waiter is not None:
                    cancel_waiter.cancel()

            if cancel_waiter is not None and cancel_waiter in done:
                logger.info("Consumer cancelled; stopping event stream")
                return

            if pending not in done:
                yield StreamEvent.heartbeat()
                continue

            result = pending.result()
            pending = None
            if result is None:
                if not found_any:
                    yield StreamEvent.error(NO_EMAILS_CODE, NO_EMAILS_MESSAGE)
                yield StreamEvent.complete()
                return
            found_any = True
            yield StreamEvent.data(result.to_payload())
    finally:
        if pending is not None and not pending.done():
            pending.cancel()
