"""Per-client fixed-window request limiter for the HTTP API."""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from ..config import RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class _ClientWindow:
    requests: int
    last_seen: float


class RateLimiter:
    """Allows `max_requests` per `window` seconds per client id (usually the remote IP)."""

    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window = window
        self._clock = clock
        self._lock = threading.Lock()
        self._clients: Dict[str, _ClientWindow] = {}

    @property
    def window(self) -> float:
        return self._window

    def allow(self, client_id: str) -> bool:
        with self._lock:
            now = self._clock()
            c = self._clients.get(client_id)
            if c is None:
                self._clients[client_id] = _ClientWindow(requests=1, last_seen=now)
                return True
            # Reset window if expired
            if now - c.last_seen > self._window:
                c.requests = 1
                c.last_seen = now
                return True
            if c.requests >= self._max_requests:
                return False
            c.requests += 1
            return True

    def purge_stale(self) -> int:
        """Forget clients idle for more than two windows; returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = [k for k, c in self._clients.items() if now - c.last_seen > self._window * 2]
            for k in stale:
                del self._clients[k]
        if stale:
            logger.debug("Purged %s stale rate-limit entries", len(stale))
        return len(stale)

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._clients)
