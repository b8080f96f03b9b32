"""Background scheduler coroutines for cache maintenance."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from llmsforge.state import AppState

log = structlog.get_logger()


def prune_caches(state: AppState) -> int:
    """Prune expired entries from both caches. Returns the total removed."""
    removed = state.extraction_cache.prune() + state.validation_cache.prune()
    if removed:
        log.info("cache_prune_complete", removed=removed)
    return removed


async def run_cache_prune_scheduler(state: AppState) -> None:
    """Prune both caches on the configured interval until cancelled.

    Expired entries are also dropped lazily on read; this bounds memory held
    by entries that are never read again.
    """
    interval_seconds = state.settings.cache.prune_interval_seconds

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            prune_caches(state)
        except Exception:
            log.warning("cache_prune_scheduler_error", exc_info=True)
