"""Fixed-window rate limiting keyed by client identity.

A window opens at the first request from an identity and stays fixed for
``window_seconds``; once it has fully elapsed the next request opens a fresh
window with a count of 1. State is in memory only and is lost on restart.
"""

from __future__ import annotations

import asyncio
import math
import threading
import time
from contextlib import suppress
from typing import TYPE_CHECKING

import structlog

from llmsforge.models.rate_limit import RateLimitResult, WindowEntry

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

log = structlog.get_logger()

DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_MAX_REQUESTS = 30
DEFAULT_CLEANUP_INTERVAL_SECONDS = 5 * 60.0

LOOPBACK_IP = "127.0.0.1"


class RateLimiter:
    """Per-identity request counter with fixed windows."""

    def __init__(
        self,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._windows: dict[str, WindowEntry] = {}
        self._window_seconds = window_seconds
        self._max_requests = max_requests
        self._clock = clock
        self._lock = threading.Lock()
        self._cleanup_task: asyncio.Task[None] | None = None

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _reset_at(self, window_start: float) -> int:
        return math.ceil(window_start + self._window_seconds)

    def _window_elapsed(self, entry: WindowEntry | None, now: float) -> bool:
        return entry is None or now - entry.window_start >= self._window_seconds

    def check(self, identity: str) -> RateLimitResult:
        """Report whether a request would be admitted, without recording it."""
        with self._lock:
            return self._check_locked(identity, self._clock())

    def record(self, identity: str) -> RateLimitResult:
        """Count a request against the identity's current window."""
        with self._lock:
            return self._record_locked(identity, self._clock())

    def check_and_record(self, identity: str) -> RateLimitResult:
        """Record the request only if it is admitted.

        Denied requests are not counted, so a client hammering past the limit
        does not extend its own lockout.
        """
        with self._lock:
            now = self._clock()
            result = self._check_locked(identity, now)
            if not result.allowed:
                return result
            return self._record_locked(identity, now)

    def _check_locked(self, identity: str, now: float) -> RateLimitResult:
        entry = self._windows.get(identity)

        if entry is None or self._window_elapsed(entry, now):
            return RateLimitResult(
                allowed=True,
                remaining=self._max_requests - 1,
                reset_at=self._reset_at(now),
                limit=self._max_requests,
            )

        allowed = entry.count < self._max_requests
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, self._max_requests - entry.count - 1) if allowed else 0,
            reset_at=self._reset_at(entry.window_start),
            limit=self._max_requests,
        )

    def _record_locked(self, identity: str, now: float) -> RateLimitResult:
        entry = self._windows.get(identity)

        if entry is None or self._window_elapsed(entry, now):
            self._windows[identity] = WindowEntry(count=1, window_start=now)
            return RateLimitResult(
                allowed=True,
                remaining=self._max_requests - 1,
                reset_at=self._reset_at(now),
                limit=self._max_requests,
            )

        entry.count += 1
        return RateLimitResult(
            allowed=entry.count <= self._max_requests,
            remaining=max(0, self._max_requests - entry.count),
            reset_at=self._reset_at(entry.window_start),
            limit=self._max_requests,
        )

    def reset(self, identity: str) -> None:
        with self._lock:
            self._windows.pop(identity, None)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()

    def cleanup(self) -> int:
        """Evict identities whose window has fully elapsed. Returns the count."""
        with self._lock:
            now = self._clock()
            elapsed = [
                identity
                for identity, entry in self._windows.items()
                if self._window_elapsed(entry, now)
            ]
            for identity in elapsed:
                del self._windows[identity]
        if elapsed:
            log.debug("rate_limit_cleanup", evicted=len(elapsed))
        return len(elapsed)

    def get_stats(self) -> dict[str, float | int]:
        with self._lock:
            return {
                "tracked_ips": len(self._windows),
                "window_seconds": self._window_seconds,
                "max_requests": self._max_requests,
            }

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start(self, interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS) -> None:
        """Start the periodic sweep on the running event loop. Idempotent."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._run_cleanup(interval_seconds))

    async def _run_cleanup(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.cleanup()

    async def destroy(self) -> None:
        """Cancel the background sweep and drop all state."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self.clear()


def get_client_ip(headers: Mapping[str, str]) -> str:
    """Derive the client identity from proxy headers.

    Order: ``x-forwarded-for`` (first hop), ``x-vercel-forwarded-for``,
    ``cf-connecting-ip``, ``x-real-ip``, then the loopback address.
    ``headers`` should be case-insensitive (starlette ``Headers``) or use
    lowercase keys.
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    vercel_forwarded_for = headers.get("x-vercel-forwarded-for")
    if vercel_forwarded_for:
        first = vercel_forwarded_for.split(",")[0].strip()
        if first:
            return first

    cf_connecting_ip = headers.get("cf-connecting-ip")
    if cf_connecting_ip:
        return cf_connecting_ip.strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return LOOPBACK_IP


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }


def retry_after(result: RateLimitResult, now: float | None = None) -> int:
    """Seconds a denied client should wait, never less than 1."""
    current = time.time() if now is None else now
    return max(1, result.reset_at - math.floor(current))
