"""
HTTP transport for the sync pipeline.

JSON endpoints for history and batch sync, text/event-stream for live sync.
Collaborators are injected through create_app() and kept on app.state.
"""

import asyncio
import math
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from .agents.sync_agent import run_sync_agent, stream_sync_agent
from .config import (
    ANALYSIS_CACHE_CLEANUP_SECONDS,
    API_HOST,
    API_PORT,
    BACKOFF_INITIAL_SECONDS,
    ENRICHMENT_MAX_ATTEMPTS,
    GMAIL_PAGE_SIZE,
    HEARTBEAT_INTERVAL_SECONDS,
    RATE_LIMIT_CLEANUP_SECONDS,
    WORKER_COUNT,
)
from .errors import ListingError
from .pipeline.dispatcher import JobDispatcher
from .pipeline.throttle import EnrichmentThrottle
from .services.enrichment_engine import OpenAIEnrichmentEngine
from .services.gmail_service import GmailService
from .services.interfaces import EnrichmentEngine, MailLister, MessageFetcher, ResultStore
from .services.rate_limiter import RateLimiter
from .services.result_store import SqlResultStore
from .utils.logger import get_logger
from .utils.ttl_cache import TTLCache

logger = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

RATE_LIMIT_BODY = {
    "error": "rate_limit_exceeded",
    "message": "Too many requests. Please try again later.",
}


class ApiError(Exception):
    """Rendered as the error envelope by the app's exception handler."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


def success_envelope(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


def error_envelope(code: str, message: str) -> Dict[str, Any]:
    return {"success": False, "error": {"code": code, "message": message}}


def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise ApiError(401, "unauthorized", "Missing X-User-Id header")
    return user_id


async def _purge_rate_limits(limiter: RateLimiter, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        limiter.purge_stale()


def create_app(
    lister: Optional[MailLister] = None,
    fetcher: Optional[MessageFetcher] = None,
    engine: Optional[EnrichmentEngine] = None,
    store: Optional[ResultStore] = None,
    throttle: Optional[EnrichmentThrottle] = None,
    rate_limiter: Optional[RateLimiter] = None,
    analysis_cache: Optional[TTLCache] = None,
    worker_count: int = WORKER_COUNT,
    max_attempts: int = ENRICHMENT_MAX_ATTEMPTS,
    initial_delay: float = BACKOFF_INITIAL_SECONDS,
    heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
) -> FastAPI:
    """
    Build the API. Missing collaborators default to the production ones
    (Gmail over httpx, OpenAI, SQLAlchemy store). The default engine uses
    `analysis_cache`, which is purged in the background while the app runs.
    """
    cache = analysis_cache if analysis_cache is not None else TTLCache()
    if lister is None or fetcher is None:
        gmail = GmailService()
        lister = lister or gmail
        fetcher = fetcher or gmail
    if engine is None:
        engine = OpenAIEnrichmentEngine(cache=cache)
    if store is None:
        store = SqlResultStore()
    limiter = rate_limiter or RateLimiter()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        stop_cache_cleanup = asyncio.Event()
        app.state.rate_limit_cleanup = asyncio.create_task(
            _purge_rate_limits(limiter, RATE_LIMIT_CLEANUP_SECONDS)
        )
        app.state.cache_cleanup = asyncio.create_task(
            cache.run_cleanup(ANALYSIS_CACHE_CLEANUP_SECONDS, stop_cache_cleanup)
        )
        logger.info("API started")
        try:
            yield
        finally:
            stop_cache_cleanup.set()
            app.state.rate_limit_cleanup.cancel()
            await asyncio.gather(
                app.state.rate_limit_cleanup,
                app.state.cache_cleanup,
                return_exceptions=True,
            )
            logger.info("API stopped")

    app = FastAPI(
        title="Inbox Signal AI",
        description="Structured analysis of placement emails",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.lister = lister
    app.state.fetcher = fetcher
    app.state.engine = engine
    app.state.store = store
    app.state.throttle = throttle or EnrichmentThrottle()
    app.state.rate_limiter = limiter
    app.state.analysis_cache = cache

    def dispatcher_for(user_id: str) -> JobDispatcher:
        return JobDispatcher(
            fetcher=app.state.fetcher,
            engine=app.state.engine,
            store=app.state.store,
            throttle=app.state.throttle,
            worker_count=worker_count,
            max_attempts=max_attempts,
            initial_delay=initial_delay,
            user_id=user_id,
        )

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=error_envelope(exc.code, exc.message))

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if request.url.path != "/health":
            client_id = request.client.host if request.client else "unknown"
            if not app.state.rate_limiter.allow(client_id):
                logger.warning("Rate limit exceeded for %s", client_id)
                return JSONResponse(
                    status_code=429,
                    content=RATE_LIMIT_BODY,
                    headers={"Retry-After": "60"},
                )
        return await call_next(request)

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/emails")
    async def list_emails(
        q: str = Query(default=""),
        page: int = Query(default=1, ge=1),
        user_id: str = Depends(current_user),
    ) -> Dict[str, Any]:
        """Stored results for the caller, newest first, one page at a time."""
        try:
            history = await app.state.store.history(user_id, q)
        except Exception as e:
            logger.error("History lookup failed for %s: %s", user_id, e)
            raise ApiError(500, "internal_error", "Failed to load stored emails") from e
        total = len(history)
        start = (page - 1) * GMAIL_PAGE_SIZE
        return success_envelope(
            {
                "emails": [r.to_payload() for r in history[start:start + GMAIL_PAGE_SIZE]],
                "total": total,
                "page": page,
                "totalPages": math.ceil(total / GMAIL_PAGE_SIZE),
            }
        )

    @app.post("/emails/sync")
    async def sync_emails(
        query: str = Query(default=""),
        user_id: str = Depends(current_user),
    ) -> Dict[str, Any]:
        try:
            outcome = await run_sync_agent(app.state.lister, dispatcher_for(user_id), query=query)
        except ListingError as e:
            raise ApiError(503, "service_unavailable", e.message) from e
        return success_envelope(
            {
                "processed": outcome.processed,
                "emails": [r.to_payload() for r in outcome.emails],
            }
        )

    @app.get("/emails/stream")
    async def stream_emails(
        query: str = Query(default=""),
        user_id: str = Depends(current_user),
    ) -> StreamingResponse:
        cancel_event = asyncio.Event()

        async def event_source() -> AsyncIterator[str]:
            events = stream_sync_agent(
                app.state.lister,
                dispatcher_for(user_id),
                store=app.state.store,
                user_id=user_id,
                query=query,
                cancel_event=cancel_event,
                heartbeat_interval=heartbeat_interval,
            )
            try:
                async for event in events:
                    yield event.to_sse()
            finally:
                # client disconnect cancels this generator
                cancel_event.set()
                await events.aclose()

        return StreamingResponse(event_source(), media_type="text/event-stream", headers=SSE_HEADERS)

    return app


def main() -> None:
    import uvicorn

    uvicorn.run("inbox_signal_ai.api:create_app", factory=True, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    main()
