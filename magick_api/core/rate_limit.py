"""
Fixed-window rate limiting keyed by client address
"""
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, ContextManager, Dict, Optional

from fastapi import Request


@dataclass
class RateLimitEntry:
    count: int
    window_reset_at: float  # epoch seconds


class RateLimitStore(ABC):
    """Storage for rate limit entries; a shared backend can replace the in-memory one"""

    @abstractmethod
    def get(self, key: str) -> Optional[RateLimitEntry]:
        ...

    @abstractmethod
    def set(self, key: str, entry: RateLimitEntry) -> None:
        ...

    @abstractmethod
    def lock(self, key: str) -> ContextManager:
        """Guard the read-modify-write of one key"""

    def prune(self, now: float) -> None:
        """Drop entries whose window has ended; called with the key's lock held"""


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store; restarts reset every limit"""

    def __init__(self, prune_threshold: int = 10_000):
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self.prune_threshold = prune_threshold

    def __len__(self):
        return len(self._entries)

    def get(self, key: str) -> Optional[RateLimitEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = entry

    def lock(self, key: str) -> ContextManager:
        return self._lock

    def prune(self, now: float) -> None:
        # Scan only once the map has grown
        if len(self._entries) < self.prune_threshold:
            return
        expired = [key for key, entry in self._entries.items() if now > entry.window_reset_at]
        for key in expired:
            del self._entries[key]

    def clear(self):
        with self._lock:
            self._entries.clear()


class RateLimiter:
    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.clock = clock

    def allow(self, client_key: str) -> bool:
        """Count one request for client_key; False once the window's budget is spent"""
        with self.store.lock(client_key):
            now = self.clock()
            self.store.prune(now)
            entry = self.store.get(client_key)

            if entry is None or now > entry.window_reset_at:
                self.store.set(client_key, RateLimitEntry(1, now + self.window_seconds))
                return True

            if entry.count >= self.max_requests:
                return False

            entry.count += 1
            self.store.set(client_key, entry)
            return True

    def retry_after(self, client_key: str) -> int:
        """Seconds until client_key's window resets (0 when unknown)"""
        entry = self.store.get(client_key)
        if entry is None:
            return 0
        return max(0, int(entry.window_reset_at - self.clock()))


def client_key(request: Request) -> str:
    """
    First X-Forwarded-For hop, else the peer address.

    The header is client-controlled: it is only trustworthy behind a proxy
    that overwrites it. Exposed directly, a client can rotate it to get a
    fresh budget per request.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
