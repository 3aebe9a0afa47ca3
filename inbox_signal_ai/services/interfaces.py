"""Collaborator contracts consumed by the sync pipeline."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..schemas.enrichment_result import EnrichmentResult
from ..schemas.mail_message import MailMessage


class MailLister(ABC):
    """Lists message ids matching a search query."""

    @abstractmethod
    async def list_message_ids(self, query: str, max_results: Optional[int] = None) -> List[str]:
        """Ordered ids; an empty list is a valid answer. Raises ListingError on failure."""
        ...


class MessageFetcher(ABC):
    """Fetches one message's content."""

    @abstractmethod
    async def fetch_message(self, message_id: str) -> MailMessage:
        """Raises FetchError when the message is missing or the provider fails."""
        ...


class EnrichmentEngine(ABC):
    """Black-box analysis: message content -> EnrichmentResult."""

    @abstractmethod
    async def analyze(
        self,
        subject: str,
        snippet: str,
        body: str,
        user_id: Optional[str] = None,
    ) -> EnrichmentResult:
        """Raises EnrichmentError on rate limits or connectivity problems."""
        ...


class ResultStore(ABC):
    """Long-term store of analysis results keyed by message id."""

    @abstractmethod
    async def get(self, message_id: str) -> Optional[EnrichmentResult]:
        ...

    @abstractmethod
    async def put(self, message_id: str, result: EnrichmentResult, user_id: Optional[str] = None) -> None:
        """Raises PersistError on failure."""
        ...

    @abstractmethod
    async def history(self, user_id: str, query: str = "") -> List[EnrichmentResult]:
        """Stored results for a user, newest first."""
        ...
