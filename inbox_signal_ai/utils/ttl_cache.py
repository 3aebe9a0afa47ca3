"""Thread-safe in-memory cache with per-entry expiry."""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from .logger import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass
class _Entry(Generic[T]):
    data: T
    expires_at: float


class TTLCache(Generic[T]):
    """
    Maps keys to values with an absolute expiry instant.
    Reads treat expired entries as absent; purge_expired() only reclaims memory.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._items: Dict[str, _Entry[T]] = {}

    def set(self, key: str, value: T, ttl: float) -> None:
        with self._lock:
            self._items[key] = _Entry(value, self._clock() + ttl)

    def lookup(self, key: str) -> Tuple[Optional[T], bool]:
        """Return (value, found); found is False for missing or expired keys."""
        with self._lock:
            entry = self._items.get(key)
            if entry is None or self._clock() > entry.expires_at:
                return None, False
            return entry.data, True

    def get(self, key: str, default: Optional[T] = None) -> Optional[T]:
        value, found = self.lookup(key)
        return value if found else default

    def get_or_set(self, key: str, ttl: float, fn: Callable[[], T]) -> T:
        """Return the cached value or compute, store and return fn(). Errors from fn are not cached."""
        value, found = self.lookup(key)
        if found:
            return value  # type: ignore[return-value]
        value = fn()
        self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._items = {}

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._items.keys())

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = [k for k, e in self._items.items() if now > e.expires_at]
            for k in stale:
                del self._items[k]
            return len(stale)

    async def run_cleanup(self, interval: float, stop_event: asyncio.Event) -> None:
        """Purge expired entries every `interval` seconds until stop_event is set."""
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                removed = self.purge_expired()
                if removed:
                    logger.debug("Purged %s expired cache entries", removed)
