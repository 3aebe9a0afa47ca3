"""Service exports."""

from .enrichment_engine import OpenAIEnrichmentEngine
from .gmail_service import GmailService, parse_gmail_message
from .interfaces import EnrichmentEngine, MailLister, MessageFetcher, ResultStore
from .rate_limiter import RateLimiter
from .result_store import SqlResultStore

__all__ = [
    "EnrichmentEngine",
    "MailLister",
    "MessageFetcher",
    "ResultStore",
    "GmailService",
    "parse_gmail_message",
    "OpenAIEnrichmentEngine",
    "RateLimiter",
    "SqlResultStore",
]
