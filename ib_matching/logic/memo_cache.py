"""
Memo Cache

Bounded LRU cache for repeated sub-computations (subject and OR-group
matches) inside a batch run. Eviction is strict least-recently-used; entries
may optionally expire after a TTL measured on the monotonic clock.

One instance may be shared between threads: every read and write happens
under a single lock. Keys must carry the full student fingerprint so that
results never leak between students.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

from .constants import DEFAULT_MEMO_CACHE_SIZE

logger = logging.getLogger(__name__)

_MISSING = object()


class MemoCache:
    """LRU memoization store with hit/miss/eviction counters."""

    def __init__(
        self,
        max_size: int = DEFAULT_MEMO_CACHE_SIZE,
        ttl_seconds: float = 0,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            max_size: Maximum number of entries before LRU eviction
            ttl_seconds: Entry lifetime, 0 disables expiry
            clock: Monotonic time source (injectable for tests)
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[Any, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return self._lookup(key) is not _MISSING

    def _lookup(self, key: Hashable) -> Any:
        # Caller holds the lock
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        value, stored_at = entry
        if self.ttl_seconds and self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return _MISSING
        return value

    def _store(self, key: Hashable, value: Any) -> None:
        # Caller holds the lock
        self._entries[key] = (value, self._clock())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)
            self.evictions += 1

    def get(self, key: Hashable, default: Optional[Any] = None) -> Any:
        with self._lock:
            value = self._lookup(key)
            if value is _MISSING:
                self.misses += 1
                return default
            self._entries.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._store(key, value)

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """
        Return the cached value for key, computing and storing it on a miss.

        The computation runs outside the lock; two threads missing the same
        key may both compute it, and the later store wins. Both values are
        equal because the computations are pure.
        """
        with self._lock:
            value = self._lookup(key)
            if value is not _MISSING:
                self._entries.move_to_end(key)
                self.hits += 1
                return value
            self.misses += 1

        value = compute()

        with self._lock:
            self._store(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def reset_stats(self) -> None:
        with self._lock:
            self.hits = 0
            self.misses = 0
            self.evictions = 0

    def stats(self) -> Dict[str, Any]:
        """Snapshot of size and counters, with hit rate over all lookups."""
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": self.hits / lookups if lookups else 0.0,
            }
