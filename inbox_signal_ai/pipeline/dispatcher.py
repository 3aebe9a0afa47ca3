"""Worker pool turning message ids into a stream of validated analysis results."""

import asyncio
from dataclasses import dataclass
from typing import Iterable, Optional

from ..config import (
    BACKOFF_INITIAL_SECONDS,
    ENRICHMENT_MAX_ATTEMPTS,
    WORKER_COUNT,
)
from ..errors import OperationCancelled
from ..schemas.enrichment_result import EnrichmentResult
from ..schemas.mail_message import MailMessage
from ..services.interfaces import EnrichmentEngine, MessageFetcher, ResultStore
from ..utils.cancellation import check_cancelled, race_cancel
from ..utils.helpers import deduplicate_ids
from ..utils.logger import get_logger
from ..utils.retry import with_retry
from .stream import ResultStream
from .throttle import EnrichmentThrottle

logger = get_logger(__name__)


@dataclass
class RunStats:
    """Per-run counters, filled in by the workers."""

    queued: int = 0
    cached: int = 0
    enriched: int = 0
    fetch_failed: int = 0
    enrich_failed: int = 0
    persist_failed: int = 0
    cancelled: bool = False


class JobDispatcher:
    """
    Fixed pool of workers draining a pre-loaded job queue.

    Per job: store lookup (hit -> emit) -> fetch -> throttled, retried analysis
    -> validation -> persist -> emit. A failing job is logged and dropped; it never
    affects its siblings. The output stream is closed only after every worker returned.
    """

    def __init__(
        self,
        fetcher: MessageFetcher,
        engine: EnrichmentEngine,
        store: ResultStore,
        throttle: Optional[EnrichmentThrottle] = None,
        worker_count: int = WORKER_COUNT,
        max_attempts: int = ENRICHMENT_MAX_ATTEMPTS,
        initial_delay: float = BACKOFF_INITIAL_SECONDS,
        user_id: Optional[str] = None,
        stream_maxsize: int = 1,
    ) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be >= 1")
        self._fetcher = fetcher
        self._engine = engine
        self._store = store
        self._throttle = throttle or EnrichmentThrottle()
        self._worker_count = worker_count
        self._max_attempts = max_attempts
        self._initial_delay = initial_delay
        self._user_id = user_id
        self._stream_maxsize = stream_maxsize

    @property
    def throttle(self) -> EnrichmentThrottle:
        return self._throttle

    def run(
        self,
        message_ids: Iterable[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ResultStream[EnrichmentResult]:
        """
        Start processing in the background and return the output stream.
        Must be called from a running event loop. Await stream.wait_closed() for completion.
        """
        stream: ResultStream[EnrichmentResult] = ResultStream(self._stream_maxsize)
        stream.stats = RunStats()
        jobs: asyncio.Queue = asyncio.Queue()
        for message_id in deduplicate_ids(message_ids):
            jobs.put_nowait(message_id)
        stream.stats.queued = jobs.qsize()
        stream.attach(asyncio.create_task(self._run(jobs, stream, cancel_event)))
        return stream

    async def _run(
        self,
        jobs: asyncio.Queue,
        stream: ResultStream[EnrichmentResult],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        logger.info(
            "Dispatch started: jobs=%s workers=%s user=%s",
            jobs.qsize(),
            self._worker_count,
            self._user_id,
        )
        workers = [
            asyncio.create_task(self._worker(i, jobs, stream, cancel_event))
            for i in range(self._worker_count)
        ]
        try:
            await asyncio.gather(*workers)
        except asyncio.CancelledError:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            stream.stats.cancelled = True
            raise
        finally:
            stream.close()
        logger.info("Dispatch completed: %s", stream.stats)

    async def _worker(
        self,
        index: int,
        jobs: asyncio.Queue,
        stream: ResultStream[EnrichmentResult],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        while True:
            try:
                message_id = jobs.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self._process(message_id, stream, cancel_event)
            except OperationCancelled:
                logger.info("Worker %s stopping: run cancelled while on %s", index, message_id)
                stream.stats.cancelled = True
                return
            except Exception:
                logger.exception("Unexpected error processing message %s; skipping", message_id)

    async def _process(
        self,
        message_id: str,
        stream: ResultStream[EnrichmentResult],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        check_cancelled(cancel_event, "before job")
        logger.info("Processing message %s", message_id)

        cached = await self._lookup(message_id, cancel_event)
        if cached is not None:
            logger.info("Using cached summary for %s", message_id)
            stream.stats.cached += 1
            await stream.send(cached, cancel_event)
            return

        try:
            message = await race_cancel(
                self._fetcher.fetch_message(message_id),
                cancel_event,
                "during fetch",
            )
        except OperationCancelled:
            raise
        except Exception as e:
            logger.warning("Failed to get message %s: %s", message_id, e)
            stream.stats.fetch_failed += 1
            return

        logger.info("Analyzing message %s subject=%r", message_id, message.subject[:80])
        try:
            result = await with_retry(
                lambda: self._analyze(message, cancel_event),
                max_attempts=self._max_attempts,
                initial_delay=self._initial_delay,
                cancel_event=cancel_event,
                label=f"message {message_id}",
            )
        except OperationCancelled:
            raise
        except Exception as e:
            logger.error("Skipping message %s - analysis failed: %s", message_id, e)
            stream.stats.enrich_failed += 1
            return

        result = result.model_copy(update={"message_id": message_id})
        stream.stats.enriched += 1

        check_cancelled(cancel_event, "before persist")
        try:
            await self._store.put(message_id, result, user_id=self._user_id)
            logger.info("Saved summary for %s", message_id)
        except Exception as e:
            logger.error("Error saving summary for %s: %s", message_id, e)
            stream.stats.persist_failed += 1

        await stream.send(result, cancel_event)

    async def _lookup(
        self,
        message_id: str,
        cancel_event: Optional[asyncio.Event],
    ) -> Optional[EnrichmentResult]:
        try:
            return await race_cancel(self._store.get(message_id), cancel_event, "during store lookup")
        except OperationCancelled:
            raise
        except Exception as e:
            logger.warning("Result store lookup failed for %s: %s", message_id, e)
            return None

    async def _analyze(
        self,
        message: MailMessage,
        cancel_event: Optional[asyncio.Event],
    ) -> EnrichmentResult:
        async with self._throttle.permit(cancel_event):
            # a request already sent may still complete upstream; its result is discarded
            result = await race_cancel(
                self._engine.analyze(
                    message.subject,
                    message.snippet,
                    message.body,
                    user_id=self._user_id,
                ),
                cancel_event,
                "during analysis",
            )
        result.validate_result()
        logger.info("Analysis successful for %s category=%s", message.id, result.category)
        return result
