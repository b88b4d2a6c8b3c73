"""In-memory TTL cache for dashboard and chart responses.

The dashboard endpoints run several aggregate queries per request; their
results only change when the importer runs, so routes keep them in a
``TTLCache`` keyed by the request parameters.
"""

import threading
import time
from typing import Any, Callable, Hashable


def make_key(prefix: str, **params: Any) -> tuple:
    """Build a hashable cache key from a prefix and keyword parameters.

    List values are converted to tuples and ``None`` parameters dropped so
    that ``year=None`` and an omitted ``year`` share an entry.
    """
    parts = []
    for name in sorted(params):
        value = params[name]
        if value is None:
            continue
        if isinstance(value, (list, set)):
            value = tuple(value)
        parts.append((name, value))
    return (prefix, tuple(parts))


class TTLCache:
    """Thread-safe in-memory cache with time-to-live expiry.

    At most ``maxsize`` entries are retained; when full, the entry closest
    to expiry is evicted.

    Usage::

        cache = TTLCache(maxsize=64, ttl_seconds=300)
        cache.set(("summary",), {"total_permits": 1234})
        cache.get(("summary",))  # None once expired
    """

    def __init__(self, maxsize: int = 128, ttl_seconds: float = 300.0) -> None:
        self._maxsize = maxsize
        self._ttl = ttl_seconds
        # key -> (value, expires_at)
        self._store: dict[Hashable, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: Hashable) -> Any | None:
        """Return the cached value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, expires_at = entry
            if time.monotonic() > expires_at:
                del self._store[key]
                self._misses += 1
                return None
            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        """Store *value* under *key* with the configured TTL."""
        expires_at = time.monotonic() + self._ttl
        with self._lock:
            if key not in self._store and len(self._store) >= self._maxsize:
                soonest = min(self._store, key=lambda k: self._store[k][1])
                del self._store[soonest]
            self._store[key] = (value, expires_at)

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        """Return the cached value for *key*, computing it with *factory* on a miss.

        ``None`` results are not cached.
        """
        value = self.get(key)
        if value is None:
            value = factory()
            if value is not None:
                self.set(key, value)
        return value

    def delete(self, key: Hashable) -> None:
        """Remove a single entry (no-op if not present)."""
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        """Remove all entries and reset the hit/miss counters."""
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict[str, int]:
        """Return ``hits``, ``misses`` and ``size`` after purging expired entries."""
        with self._lock:
            now = time.monotonic()
            for k in [k for k, (_, exp) in self._store.items() if now > exp]:
                del self._store[k]
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._store),
            }
