from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, MutableMapping, Optional, Tuple

from cachetools import LRUCache

""" Resolution cache where each entry has its own expiry instant. """

CacheKey = Tuple[str, int]


def normalize_qname(qname: str) -> str:
    """Lower-case a query name and strip the trailing root dot."""
    return str(qname).rstrip(".").lower()


@dataclass(frozen=True)
class CacheEntry:
    """Cached answer plus its absolute expiry (epoch seconds)."""

    answer: Any
    expires_at: float
    ttl: int

    def remaining(self, now: float) -> int:
        return max(0, int(self.expires_at - now))


class ResolutionCache:
    """
    Thread-safe in-memory cache keyed by (query name, record type).

    Inputs:
        max_entries: Optional size cap. 0 (default) keeps every key; a positive
            value evicts the least recently used key once the cap is reached.
        clock: Callable returning the current epoch time in seconds.
    Outputs:
        ResolutionCache instance

    Notes:
        All dictionary operations are synchronized with an RLock.
        An entry is served only while now < expires_at. There is no
        background sweep; expired entries are dropped when get() finds them
        and otherwise stay until the key is written again.

    Example use:
        >>> cache = ResolutionCache()
        >>> _ = cache.put("example.com", 1, b"dns-response-data", 60)
        >>> cache.get("example.com", 1).answer
        b'dns-response-data'
    """

    def __init__(
        self, max_entries: int = 0, clock: Callable[[], float] = time.time
    ) -> None:
        self._clock = clock
        self._store: MutableMapping[CacheKey, CacheEntry]
        if max_entries and int(max_entries) > 0:
            self._store = LRUCache(maxsize=int(max_entries))
        else:
            self._store = {}
        self._lock = threading.RLock()

    def now(self) -> float:
        return self._clock()

    def get(self, qname: str, qtype: int) -> Optional[CacheEntry]:
        """
        Retrieves an entry from the cache.

        Inputs:
            qname: Query name (case and trailing dot are ignored).
            qtype: Numeric record type.

        Outputs:
            The CacheEntry, or None if the key is not found or has expired.
        """
        key = (normalize_qname(qname), int(qtype))
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if now >= entry.expires_at:
                self._store.pop(key, None)
                return None
            return entry

    def put(self, qname: str, qtype: int, answer: Any, ttl: int) -> CacheEntry:
        """
        Adds an entry with expires_at = now + ttl, replacing any existing one.

        Inputs:
            qname: Query name.
            qtype: Numeric record type.
            answer: Payload to store.
            ttl: Time-To-Live in seconds (negative values are clamped to 0).
        Outputs:
            The stored CacheEntry.
        """
        ttl_int = max(0, int(ttl))
        entry = CacheEntry(answer=answer, expires_at=self._clock() + ttl_int, ttl=ttl_int)
        with self._lock:
            self._store[(normalize_qname(qname), int(qtype))] = entry
        return entry

    def purge_expired(self) -> int:
        """Remove all expired entries and return how many were dropped."""
        now = self._clock()
        removed = 0
        with self._lock:
            # Iterate on a list of items to avoid runtime dict size change issues
            for k, entry in list(self._store.items()):
                if entry.expires_at <= now:
                    del self._store[k]
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
