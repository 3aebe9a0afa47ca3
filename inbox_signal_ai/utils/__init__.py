"""Utility exports."""

from .cancellation import check_cancelled, race_cancel, sleep_unless_cancelled
from .helpers import decode_base64url, deduplicate_ids, extract_body, header_value
from .logger import get_logger
from .retry import backoff_delay, with_retry
from .text_cleaner import html_to_text, truncate_body
from .ttl_cache import TTLCache

__all__ = [
    "get_logger",
    "check_cancelled",
    "race_cancel",
    "sleep_unless_cancelled",
    "backoff_delay",
    "with_retry",
    "decode_base64url",
    "deduplicate_ids",
    "extract_body",
    "header_value",
    "html_to_text",
    "truncate_body",
    "TTLCache",
]
