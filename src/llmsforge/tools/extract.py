"""Handler for single-URL extraction.

Receives AppState, serves from the extraction cache when possible, otherwise
runs the orchestrator and caches successful results. Returns the camelCase
wire dict. No starlette imports; server.py handles the HTTP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from llmsforge.analyzer import normalize_input_url
from llmsforge.errors import ErrorCode, LlmsForgeError
from llmsforge.extractor import extract
from llmsforge.models.tools import ExtractInput

if TYPE_CHECKING:
    from collections.abc import Callable

    from llmsforge.models.extraction import ExtractionProgress, ExtractionResult
    from llmsforge.state import AppState


async def extract_cached(
    url: str,
    state: AppState,
    on_progress: Callable[[ExtractionProgress], None] | None = None,
) -> ExtractionResult:
    """Return the cached extraction for ``url`` or run a fresh one.

    ``url`` must already be normalized. Failed extractions are not cached.
    """
    log = structlog.get_logger().bind(tool="extract", url=url)

    if state.fetcher is None:
        raise RuntimeError("Fetcher not initialized; is the application lifespan running?")

    cached = state.extraction_cache.get(url)
    if cached is not None:
        log.info("cache_hit")
        return cached

    log.info("cache_miss_extracting")
    extraction = state.settings.extraction
    result = await extract(
        url,
        state.fetcher,
        on_progress=on_progress,
        max_pages=extraction.max_pages,
        page_delay=extraction.page_delay_seconds,
    )

    if result.success:
        state.extraction_cache.set(url, result)
    return result


async def handle(url: str, state: AppState) -> dict:
    """Handle an extract request."""
    log = structlog.get_logger().bind(tool="extract", url=url)
    log.info("handler_called")

    try:
        validated = ExtractInput(url=url)
    except ValueError as exc:
        raise LlmsForgeError(
            code=ErrorCode.INVALID_INPUT,
            message="URL is required",
            suggestion="Provide a website URL (max 2048 chars), e.g. 'docs.example.com'.",
            recoverable=False,
        ) from exc

    normalized = normalize_input_url(validated.url)
    result = await extract_cached(normalized, state)
    return result.model_dump(mode="json", by_alias=True)
