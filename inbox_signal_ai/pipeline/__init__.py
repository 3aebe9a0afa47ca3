"""Bounded-concurrency enrichment pipeline."""

from .adapter import collect_results, stream_events
from .dispatcher import JobDispatcher, RunStats
from .stream import ResultStream
from .throttle import EnrichmentThrottle

__all__ = [
    "EnrichmentThrottle",
    "JobDispatcher",
    "ResultStream",
    "RunStats",
    "collect_results",
    "stream_events",
]
