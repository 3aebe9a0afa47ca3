"""Sync Agent: list matching messages, dispatch analysis, deliver batch or live."""

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional

from ..config import DEFAULT_EMAIL_QUERY, GMAIL_PAGE_SIZE, HEARTBEAT_INTERVAL_SECONDS
from ..errors import ListingError
from ..pipeline.adapter import NO_EMAILS_MESSAGE, collect_results, stream_events
from ..pipeline.dispatcher import JobDispatcher
from ..schemas.enrichment_result import EnrichmentResult
from ..schemas.stream_event import NO_EMAILS_CODE, StreamEvent
from ..services.interfaces import MailLister, ResultStore
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SyncOutcome:
    """Batch-mode answer: results in arrival order plus their count."""

    emails: List[EnrichmentResult] = field(default_factory=list)
    processed: int = 0


async def run_sync_agent(
    lister: MailLister,
    dispatcher: JobDispatcher,
    query: str = "",
    cancel_event: Optional[asyncio.Event] = None,
    max_results: int = GMAIL_PAGE_SIZE,
) -> SyncOutcome:
    """
    Batch mode. ListingError propagates (the run cannot start); an empty listing
    returns an empty outcome. Per-message failures only shrink the result list.
    """
    query = (query or "").strip() or DEFAULT_EMAIL_QUERY
    logger.info("Starting email sync: query=%r", query)
    message_ids = await lister.list_message_ids(query, max_results=max_results)
    if not message_ids:
        logger.warning("No emails found matching query %r", query)
        return SyncOutcome()

    stream = dispatcher.run(message_ids, cancel_event)
    emails, processed = await collect_results(stream)
    return SyncOutcome(emails=emails, processed=processed)


async def stream_sync_agent(
    lister: MailLister,
    dispatcher: JobDispatcher,
    store: Optional[ResultStore] = None,
    user_id: Optional[str] = None,
    query: str = "",
    cancel_event: Optional[asyncio.Event] = None,
    heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
    max_results: int = GMAIL_PAGE_SIZE,
) -> AsyncIterator[StreamEvent]:
    """
    Incremental mode as typed events.

    Stored history for `user_id` is replayed first, then live results as they
    complete. Closing this generator early (consumer disconnect) sets
    `cancel_event` so every worker stops.
    """
    if cancel_event is None:
        cancel_event = asyncio.Event()
    query = (query or "").strip() or DEFAULT_EMAIL_QUERY

    history: List[EnrichmentResult] = []
    if store is not None and user_id is not None:
        try:
            history = await store.history(user_id)
        except Exception as e:
            logger.warning("History replay skipped for user %s: %s", user_id, e)

    try:
        for past in history:
            yield StreamEvent.data(past.to_payload())

        logger.info("Starting live email stream: query=%r user=%s", query, user_id)
        try:
            message_ids = await lister.list_message_ids(query, max_results=max_results)
        except ListingError as e:
            yield StreamEvent.error(e.code, e.message)
            return

        if not message_ids:
            yield StreamEvent.error(NO_EMAILS_CODE, NO_EMAILS_MESSAGE)
            yield StreamEvent.complete()
            return

        stream = dispatcher.run(message_ids, cancel_event)
        async for event in stream_events(
            stream,
            cancel_event=cancel_event,
            heartbeat_interval=heartbeat_interval,
        ):
            yield event
    finally:
        # consumer went away (or the run ended): release any worker still waiting
        cancel_event.set()
