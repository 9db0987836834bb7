"""TTL cache shared by reconciles within one operator process."""

from __future__ import annotations

import os
import threading
import time
from typing import Any, Callable, Optional


class TTLCache:
    """Thread-safe key/value cache with per-entry expiry.

    Entries are a performance optimization only: a miss or an evicted entry
    must never change the outcome of a reconcile.
    """

    def __init__(self, default_ttl: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            default_ttl: TTL in seconds for entries stored without an explicit TTL
            clock: Monotonic time source
        """
        if default_ttl is None:
            default_ttl = float(os.getenv("CACHE_TTL_SECONDS", "30.0"))
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        """Get an entry if it hasn't expired.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store an entry.

        Args:
            key: Cache key
            value: Value to cache
            ttl: TTL in seconds, defaults to the cache's default TTL
        """
        expires_at = self._clock() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (value, expires_at)

    def get_or_set(self, key: str, factory: Callable[[], Any], ttl: float | None = None) -> Any:
        """Return the cached value or compute, store and return it."""
        value = self.get(key)
        if value is None:
            value = factory()
            self.set(key, value, ttl)
        return value

    def invalidate(self, pattern: Optional[str] = None) -> None:
        """Invalidate cache entries.

        Args:
            pattern: Optional substring to match keys (if None, clears all)
        """
        with self._lock:
            if pattern is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if pattern in k]:
                del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def make_cache_key(*parts: str) -> str:
    """Create a cache key from its parts.

    Args:
        *parts: Key components (e.g. "account-id", role ARN)

    Returns:
        Cache key string
    """
    return ":".join(parts)


# Process-wide cache, handed to every ClusterScope by the handlers
default_cache = TTLCache()
