"""Memoizing cache for derived dashboard state.

Filtered views and aggregates are pure functions of the loaded dataset and
the active filter selection, so they are memoized in a bounded cache keyed on
that input tuple.  Entries optionally expire after a TTL; the dataset
generation is part of every key, so a reload never serves stale results.
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any


class MemoCache:
    """Thread-safe least-recently-used cache with optional expiry.

    A maximum of ``maxsize`` entries are retained; when the cache is full the
    least recently used entry is evicted.  With ``ttl_seconds=None`` entries
    never expire.

    Usage::

        cache = MemoCache(maxsize=64)
        view = cache.get_or_compute(("view", generation, selection),
                                    lambda: build_view(records, selection))
    """

    def __init__(self, maxsize: int = 128, ttl_seconds: float | None = None) -> None:
        self._maxsize = maxsize
        self._ttl = ttl_seconds
        # key -> (value, expires_at or None)
        self._store: OrderedDict[Hashable, tuple[Any, float | None]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _expired(self, expires_at: float | None) -> bool:
        return expires_at is not None and time.monotonic() > expires_at

    def get(self, key: Hashable) -> Any | None:
        """Return cached value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, expires_at = entry
            if self._expired(expires_at):
                del self._store[key]
                self._misses += 1
                return None
            self._store.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        """Store *value* under *key*, evicting the least recently used entry."""
        expires_at = time.monotonic() + self._ttl if self._ttl is not None else None
        with self._lock:
            if key in self._store:
                self._store.move_to_end(key)
            elif len(self._store) >= self._maxsize:
                self._store.popitem(last=False)
            self._store[key] = (value, expires_at)

    def get_or_compute(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        """Return the cached value for *key*, computing and storing it on a miss.

        ``compute`` runs outside the lock; two concurrent misses on the same
        key both compute, and the later result wins.  Results are pure, so
        either is correct.
        """
        value = self.get(key)
        if value is not None:
            return value
        value = compute()
        self.set(key, value)
        return value

    def clear(self) -> None:
        """Remove all entries and reset statistics."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, int]:
        """Return ``hits``, ``misses`` and current ``size``."""
        with self._lock:
            expired = [k for k, (_, exp) in self._store.items() if self._expired(exp)]
            for k in expired:
                del self._store[k]
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._store),
            }
