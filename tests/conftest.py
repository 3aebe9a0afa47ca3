"""
Shared fakes for pipeline tests.

In-memory lister, fetcher, engine and store implementing the service interfaces,
with call counters and scripted failures.
"""

import asyncio
from typing import Callable, Dict, List, Optional

import pytest

from inbox_signal_ai.errors import EnrichmentError, FetchError, ListingError, PersistError
from inbox_signal_ai.schemas.enrichment_result import EnrichmentResult
from inbox_signal_ai.schemas.mail_message import MailMessage
from inbox_signal_ai.services.interfaces import (
    EnrichmentEngine,
    MailLister,
    MessageFetcher,
    ResultStore,
)


def make_result(subject: str = "Acme internship", **overrides) -> EnrichmentResult:
    data = {
        "summary": f"Summary of {subject} with enough detail",
        "category": "internship",
        "company": "Acme",
        "role": "SDE Intern",
        "priority": "medium",
    }
    data.update(overrides)
    return EnrichmentResult.model_validate(data)


class FakeLister(MailLister):
    def __init__(self, ids: Optional[List[str]] = None, error: Optional[ListingError] = None) -> None:
        self.ids = list(ids or [])
        self.error = error
        self.queries: List[str] = []

    async def list_message_ids(self, query: str, max_results: Optional[int] = None) -> List[str]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return list(self.ids)


class FakeFetcher(MessageFetcher):
    def __init__(self, missing: Optional[set] = None, delay: float = 0.0) -> None:
        self.missing = set(missing or ())
        self.delay = delay
        self.calls: List[str] = []

    async def fetch_message(self, message_id: str) -> MailMessage:
        self.calls.append(message_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if message_id in self.missing:
            raise FetchError(f"message {message_id} not found")
        return MailMessage(
            id=message_id,
            subject=f"subject {message_id}",
            sender="placements@example.edu",
            snippet=f"snippet {message_id}",
            body=f"body of {message_id}",
        )


class FakeEngine(EnrichmentEngine):
    """
    `script` maps a subject to a list of outcomes consumed one per call:
    an Exception is raised, an EnrichmentResult is returned. Unscripted subjects
    get a valid result.
    """

    def __init__(
        self,
        script: Optional[Dict[str, list]] = None,
        delay: float = 0.0,
        on_call: Optional[Callable[[], None]] = None,
    ) -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.delay = delay
        self.on_call = on_call
        self.calls: List[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def analyze(self, subject: str, snippet: str, body: str, user_id: Optional[str] = None) -> EnrichmentResult:
        self.calls.append(subject)
        if self.on_call is not None:
            self.on_call()
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            outcomes = self.script.get(subject)
            if outcomes:
                outcome = outcomes.pop(0)
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
            return make_result(subject)
        finally:
            self.in_flight -= 1


class MemoryStore(ResultStore):
    def __init__(self, fail_put: bool = False, fail_get: bool = False) -> None:
        self.items: Dict[str, EnrichmentResult] = {}
        self.owners: Dict[str, Optional[str]] = {}
        self.fail_put = fail_put
        self.fail_get = fail_get
        self.puts: List[str] = []

    async def get(self, message_id: str) -> Optional[EnrichmentResult]:
        if self.fail_get:
            raise RuntimeError("store offline")
        return self.items.get(message_id)

    async def put(self, message_id: str, result: EnrichmentResult, user_id: Optional[str] = None) -> None:
        if self.fail_put:
            raise PersistError(f"failed to save {message_id}")
        self.puts.append(message_id)
        self.items[message_id] = result.model_copy(update={"message_id": message_id})
        self.owners.setdefault(message_id, user_id)

    async def history(self, user_id: str, query: str = "") -> List[EnrichmentResult]:
        owned = [r for mid, r in self.items.items() if self.owners.get(mid) == user_id]
        return list(reversed(owned))


@pytest.fixture
def lister() -> FakeLister:
    return FakeLister([f"m{i}" for i in range(10)])


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def transient_error() -> EnrichmentError:
    return EnrichmentError("rate limited")
