"""In-memory LRU cache with per-entry TTL.

The cache is an optimisation, never a correctness dependency: every operation
catches its own failures, logs them with ``exc_info=True`` and reports them
as absence. Callers cannot tell a miss from an internal error, so a broken
cache degrades to "always fetch".

Entries expire lazily. ``get`` and ``has`` drop an expired entry when they
touch it; ``prune`` sweeps every expired entry. When ``set`` finds the cache
full it first drops expired entries and only then evicts live
least-recently-used ones.

All mutations run under a ``threading.Lock``. On the event loop no mutation
awaits, so the lock is uncontended; it keeps the same guarantees when the
cache is shared across threads.
"""

from __future__ import annotations

import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar
from urllib.parse import urlsplit

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 5 * 60.0
DEFAULT_MAX_ENTRIES = 100

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url_key(url: str) -> str:
    """Normalise a URL for use as a cache key.

    Lowercases the host, drops default ports, strips trailing slashes from the
    path and discards the query string and fragment.
    """
    try:
        parsed = urlsplit(url.strip())
        if not parsed.scheme or not parsed.hostname:
            raise ValueError(f"not an absolute URL: {url!r}")
        scheme = parsed.scheme.lower()
        host = parsed.hostname.lower()
        if ":" in host:
            host = f"[{host}]"
        port = parsed.port
        if port is not None and port != _DEFAULT_PORTS.get(scheme):
            host = f"{host}:{port}"
        path = parsed.path.rstrip("/") or "/"
        return f"{scheme}://{host}{path}"
    except ValueError:
        return url.strip().lower().rstrip("/")


@dataclass
class CacheEntry(Generic[T]):
    data: T
    timestamp: float
    ttl: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    size: int = 0
    evictions: int = 0


class LRUCache(Generic[T]):
    """Bounded LRU cache keyed by normalised URL."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._entries: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._default_ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._stats = CacheStats()
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def default_ttl(self) -> float:
        return self._default_ttl

    def _is_expired(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.timestamp > entry.ttl

    def get(self, key: str) -> T | None:
        """Return the cached value, or ``None`` on miss, expiry or error."""
        try:
            normalized = normalize_url_key(key)
            with self._lock:
                entry = self._entries.get(normalized)
                if entry is None:
                    self._stats.misses += 1
                    return None

                if self._is_expired(entry, self._clock()):
                    del self._entries[normalized]
                    self._stats.size = len(self._entries)
                    self._stats.misses += 1
                    return None

                self._entries.move_to_end(normalized)
                self._stats.hits += 1
                return entry.data
        except Exception:
            log.warning("cache_read_error", key=key, exc_info=True)
            return None

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        """Store a value. Non-fatal on failure."""
        try:
            normalized = normalize_url_key(key)
            with self._lock:
                now = self._clock()
                self._entries.pop(normalized, None)

                if len(self._entries) >= self._max_entries:
                    self._drop_expired(now)

                while len(self._entries) >= self._max_entries:
                    evicted_key, _ = self._entries.popitem(last=False)
                    self._stats.evictions += 1
                    log.debug("cache_evicted", key=evicted_key)

                self._entries[normalized] = CacheEntry(
                    data=value,
                    timestamp=now,
                    ttl=self._default_ttl if ttl is None else ttl,
                )
                self._stats.size = len(self._entries)
        except Exception:
            log.warning("cache_write_error", key=key, exc_info=True)

    def has(self, key: str) -> bool:
        """Return True when a live entry exists. Does not touch LRU order or stats."""
        try:
            normalized = normalize_url_key(key)
            with self._lock:
                entry = self._entries.get(normalized)
                if entry is None:
                    return False
                if self._is_expired(entry, self._clock()):
                    del self._entries[normalized]
                    self._stats.size = len(self._entries)
                    return False
                return True
        except Exception:
            log.warning("cache_read_error", key=key, exc_info=True)
            return False

    def delete(self, key: str) -> bool:
        try:
            normalized = normalize_url_key(key)
            with self._lock:
                deleted = self._entries.pop(normalized, None) is not None
                self._stats.size = len(self._entries)
                return deleted
        except Exception:
            log.warning("cache_write_error", key=key, exc_info=True)
            return False

    def clear(self) -> None:
        try:
            with self._lock:
                self._entries.clear()
                self._stats.size = 0
        except Exception:
            log.warning("cache_write_error", operation="clear", exc_info=True)

    def get_stats(self) -> CacheStats:
        """Return a snapshot copy of the counters."""
        try:
            with self._lock:
                return CacheStats(
                    hits=self._stats.hits,
                    misses=self._stats.misses,
                    size=len(self._entries),
                    evictions=self._stats.evictions,
                )
        except Exception:
            log.warning("cache_read_error", operation="get_stats", exc_info=True)
            return CacheStats()

    def get_ttl_remaining(self, key: str) -> int:
        """Remaining lifetime in whole seconds (rounded up), or -1 if absent/expired."""
        try:
            normalized = normalize_url_key(key)
            with self._lock:
                entry = self._entries.get(normalized)
                if entry is None:
                    return -1
                remaining = entry.ttl - (self._clock() - entry.timestamp)
                if remaining <= 0:
                    return -1
                return math.ceil(remaining)
        except Exception:
            log.warning("cache_read_error", key=key, exc_info=True)
            return -1

    def prune(self) -> int:
        """Remove every expired entry. Returns the number removed, 0 on error."""
        try:
            with self._lock:
                pruned = self._drop_expired(self._clock())
        except Exception:
            log.warning("cache_write_error", operation="prune", exc_info=True)
            return 0
        if pruned:
            log.info("cache_pruned", pruned=pruned)
        return pruned

    def keys(self) -> list[str]:
        try:
            with self._lock:
                return list(self._entries)
        except Exception:
            log.warning("cache_read_error", operation="keys", exc_info=True)
            return []

    def _drop_expired(self, now: float) -> int:
        # Caller holds the lock.
        expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
        for key in expired:
            del self._entries[key]
        self._stats.size = len(self._entries)
        return len(expired)
