"""Schema exports."""

from .enrichment_result import EnrichmentResult
from .mail_message import MailMessage
from .stream_event import StreamEvent

__all__ = ["EnrichmentResult", "MailMessage", "StreamEvent"]
