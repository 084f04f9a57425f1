"""Thread-safe in-memory cache with TTL used by the library scanner.

The scanner memoizes artist/album resolution and per-directory cover lookups
here. Entries are an optimization only: every miss falls through to the
producer, so an evicted or stale entry costs a round trip, never correctness.

Typical usage example:
    key = simple_hash(f"artist:{owner.id}_{name}")
    artist = cache.remember(key, 1800, lambda: repository.get_or_create_artist(owner, name))
"""

import hashlib
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple, TypeVar

from loguru import logger

T = TypeVar("T")

_MISSING = object()


def simple_hash(value: str) -> str:
    """Deterministic short key for arbitrary strings (names may be long or non-ASCII)."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


class CacheStrategy(Protocol):
    """What the scanner needs from a cache service."""

    def remember(self, key: str, ttl: Optional[int], producer: Callable[[], T]) -> T:
        ...


class SimpleCache:
    """Thread-safe in-memory cache with TTL support.

    Besides plain set, ``remember`` runs a producer at most once per key
    while the entry is alive, even when several threads ask for the same key
    at the same time. ``None`` results are cached like any other value so a
    negative verdict (e.g. "this directory has no cover") is reused too.

    Attributes:
        _cache: Dictionary storing (value, expiry) tuples.
        _default_ttl: Default time-to-live in seconds for cached entries.
        _key_locks: Per-key locks serializing producers for the same key.
    """

    def __init__(self, default_ttl: int = 300):
        """Initialize cache with default TTL.

        Args:
            default_ttl: Default time-to-live in seconds (default: 300 = 5 minutes).
        """
        self._cache: Dict[str, Tuple[Any, float]] = {}
        self._default_ttl = default_ttl
        self._lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}

    def _lookup(self, key: str) -> Any:
        """Return the live value for key or _MISSING. Caller holds self._lock."""
        entry = self._cache.get(key)
        if entry is None:
            return _MISSING
        value, expiry = entry
        if time.time() < expiry:
            return value
        del self._cache[key]
        logger.debug(f"Cache EXPIRED: {key}")
        return _MISSING

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set value in cache with TTL.

        Args:
            key: Cache key to store.
            value: Value to cache.
            ttl: Time-to-live in seconds (uses default if None).
        """
        ttl = self._default_ttl if ttl is None else ttl
        with self._lock:
            self._cache[key] = (value, time.time() + ttl)
        logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")

    def remember(self, key: str, ttl: Optional[int], producer: Callable[[], T]) -> T:
        """Return the cached value for key, computing and storing it on a miss.

        The producer runs under a lock dedicated to this key: concurrent
        callers for the same key wait for the first one and then read its
        result, callers for other keys are not blocked. If the producer
        raises, nothing is cached and the exception propagates.

        Args:
            key: Cache key.
            ttl: Time-to-live in seconds (uses default if None).
            producer: Zero-argument callable computing the value.

        Returns:
            The cached or freshly produced value.
        """
        with self._lock:
            value = self._lookup(key)
            if value is not _MISSING:
                logger.debug(f"Cache HIT: {key}")
                return value
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            # Another thread may have produced the value while we waited
            with self._lock:
                value = self._lookup(key)
            if value is not _MISSING:
                logger.debug(f"Cache HIT (after wait): {key}")
                return value

            logger.debug(f"Cache MISS: {key}")
            value = producer()
            self.set(key, value, ttl)
            return value

    def clear(self) -> None:
        """Clear all cached values."""
        with self._lock:
            self._cache.clear()
            self._key_locks.clear()
        logger.info("Cache cleared")

    def cleanup_expired(self) -> int:
        """Remove all expired entries from cache.

        Returns:
            Number of expired entries removed.
        """
        with self._lock:
            now = time.time()
            expired_keys = [key for key, (_, expiry) in self._cache.items() if now >= expiry]
            for key in expired_keys:
                del self._cache[key]
                self._key_locks.pop(key, None)
        if expired_keys:
            logger.info(f"Cache cleanup: removed {len(expired_keys)} expired entries")
        return len(expired_keys)


class NullCache:
    """Cache that never stores anything; every remember() runs the producer."""

    def remember(self, key: str, ttl: Optional[int], producer: Callable[[], T]) -> T:
        return producer()

    def clear(self) -> None:
        pass

    def cleanup_expired(self) -> int:
        return 0


# Global cache instance shared by scanner instances unless one is injected
cache = SimpleCache(default_ttl=300)
