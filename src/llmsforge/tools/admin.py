"""Handlers for cache statistics and maintenance.

``stats`` is public; ``clear`` and ``prune`` require the admin key, which the
server checks before calling them.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import asdict
from typing import TYPE_CHECKING

import structlog

from llmsforge.errors import ErrorCode, LlmsForgeError

if TYPE_CHECKING:
    from llmsforge.state import AppState

log = structlog.get_logger()


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _cache_stats(state: AppState) -> dict:
    return {
        "extraction": asdict(state.extraction_cache.get_stats()),
        "validation": asdict(state.validation_cache.get_stats()),
    }


def require_admin(provided_key: str | None, state: AppState) -> None:
    """Raise UNAUTHORIZED unless ``provided_key`` matches the configured admin key."""
    expected = state.admin_key
    if not expected or not provided_key or not secrets.compare_digest(provided_key, expected):
        log.warning("admin_auth_failed")
        raise LlmsForgeError(
            code=ErrorCode.UNAUTHORIZED,
            message="Unauthorized",
            suggestion="Send the admin key in the x-admin-key header.",
            recoverable=False,
        )


def stats(state: AppState) -> dict:
    return {
        "cache": _cache_stats(state),
        "rateLimiter": state.rate_limiter.get_stats(),
        "timestamp": _timestamp_ms(),
    }


def clear(state: AppState, *, clear_rate_limiter: bool = False) -> dict:
    """Drop every cache entry, and optionally all rate-limit windows."""
    before = _cache_stats(state)
    state.extraction_cache.clear()
    state.validation_cache.clear()
    if clear_rate_limiter:
        state.rate_limiter.clear()

    log.info(
        "caches_cleared",
        extraction=before["extraction"]["size"],
        validation=before["validation"]["size"],
        rate_limiter=clear_rate_limiter,
    )
    return {
        "success": True,
        "cleared": {
            "extraction": before["extraction"]["size"],
            "validation": before["validation"]["size"],
            "rateLimiter": clear_rate_limiter,
        },
        "timestamp": _timestamp_ms(),
    }


def prune(state: AppState) -> dict:
    """Remove expired cache entries and elapsed rate-limit windows."""
    pruned = {
        "extraction": state.extraction_cache.prune(),
        "validation": state.validation_cache.prune(),
        "rateLimiter": state.rate_limiter.cleanup(),
    }
    return {
        "success": True,
        "pruned": pruned,
        "currentStats": _cache_stats(state),
        "timestamp": _timestamp_ms(),
    }
