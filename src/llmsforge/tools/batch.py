"""Handler for batch extraction.

Validates the submitted list, runs the valid URLs through the cached
single-extraction path with bounded concurrency, and appends the entries that
failed validation. No starlette imports; server.py handles the HTTP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from llmsforge.batch import partition_urls, run_batch, summarize
from llmsforge.errors import ErrorCode, LlmsForgeError
from llmsforge.models.extraction import BatchResponse
from llmsforge.models.tools import BatchInput
from llmsforge.tools.extract import extract_cached

if TYPE_CHECKING:
    from llmsforge.models.extraction import ExtractionResult
    from llmsforge.state import AppState


async def handle(urls: Any, state: AppState) -> dict:
    """Handle a batch request."""
    log = structlog.get_logger().bind(tool="batch")
    max_urls = state.settings.extraction.max_batch_urls

    try:
        validated = BatchInput(urls=urls)
    except ValueError as exc:
        raise LlmsForgeError(
            code=ErrorCode.INVALID_INPUT,
            message="URLs array is required",
            suggestion="Send a JSON body like {\"urls\": [\"docs.example.com\"]}.",
            recoverable=False,
        ) from exc

    if not validated.urls:
        raise LlmsForgeError(
            code=ErrorCode.INVALID_INPUT,
            message="URLs array is required",
            suggestion=f"Provide between 1 and {max_urls} URLs.",
            recoverable=False,
        )
    if len(validated.urls) > max_urls:
        raise LlmsForgeError(
            code=ErrorCode.INVALID_INPUT,
            message=f"Maximum {max_urls} URLs per batch",
            suggestion="Split the list into several smaller batches.",
            recoverable=False,
        )

    log.info("handler_called", url_count=len(validated.urls))

    valid, invalid = partition_urls(validated.urls)

    async def extract_one(url: str) -> ExtractionResult:
        return await extract_cached(url, state)

    results = await run_batch(
        valid,
        extract_one,
        max_concurrent=state.settings.extraction.max_concurrent,
    )
    results.extend(invalid)

    stats = summarize(results, total=len(validated.urls))
    log.info(
        "batch_complete",
        total=stats.total,
        successful=stats.successful,
        failed=stats.failed,
        total_tokens=stats.total_tokens,
    )

    return BatchResponse(results=results, stats=stats).model_dump(mode="json", by_alias=True)
