"""Bounded-concurrency batch extraction.

``run_batch`` admits at most ``max_concurrent`` extractions at a time and
waits for at least one to finish before admitting more. Each task appends its
own result when it completes, so results arrive in completion order; the
``index`` field carries the submitted position.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from llmsforge.analyzer import normalize_input_url
from llmsforge.errors import LlmsForgeError
from llmsforge.models.extraction import BatchResult, BatchStats

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from llmsforge.models.extraction import ExtractionResult

log = structlog.get_logger()

INVALID_URL_MESSAGE = "Invalid URL format"


def _normalized_or_none(entry: Any) -> str | None:
    if not isinstance(entry, str) or not entry.strip():
        return None
    try:
        return normalize_input_url(entry)
    except LlmsForgeError:
        return None


def partition_urls(urls: list[Any]) -> tuple[list[tuple[int, str]], list[BatchResult]]:
    """Split submitted entries into ``(index, normalized_url)`` pairs and immediate failures.

    Non-strings, blank strings and malformed URLs fail with "Invalid URL format".
    """
    valid: list[tuple[int, str]] = []
    invalid: list[BatchResult] = []

    for index, entry in enumerate(urls):
        normalized = _normalized_or_none(entry)
        if normalized is not None:
            valid.append((index, normalized))
            continue
        invalid.append(
            BatchResult(
                url=entry if isinstance(entry, str) else str(entry),
                index=index,
                success=False,
                error=INVALID_URL_MESSAGE,
            )
        )

    return valid, invalid


async def _run_one(
    index: int,
    url: str,
    extract_one: Callable[[str], Awaitable[ExtractionResult]],
    results: list[BatchResult],
) -> None:
    try:
        data = await extract_one(url)
    except Exception as exc:
        log.warning("batch_item_failed", url=url, index=index, exc_info=True)
        message = exc.message if isinstance(exc, LlmsForgeError) else str(exc) or "Extraction failed"
        results.append(BatchResult(url=url, index=index, success=False, error=message))
        return

    results.append(
        BatchResult(
            url=url,
            index=index,
            success=data.success,
            error=data.error,
            data=data,
        )
    )


async def run_batch(
    items: list[tuple[int, str]],
    extract_one: Callable[[str], Awaitable[ExtractionResult]],
    *,
    max_concurrent: int = 5,
) -> list[BatchResult]:
    """Run every ``(index, url)`` pair through ``extract_one``.

    A failure in one URL only ever produces that URL's failed result.
    """
    results: list[BatchResult] = []
    in_flight: set[asyncio.Task[None]] = set()
    limit = max(1, max_concurrent)

    for index, url in items:
        if len(in_flight) >= limit:
            _, in_flight = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
        in_flight.add(asyncio.create_task(_run_one(index, url, extract_one, results)))

    if in_flight:
        await asyncio.wait(in_flight)

    return results


def summarize(results: list[BatchResult], total: int) -> BatchStats:
    successful = sum(1 for result in results if result.success)
    total_tokens = sum(result.data.stats.total_tokens for result in results if result.success and result.data)
    return BatchStats(
        total=total,
        successful=successful,
        failed=total - successful,
        total_tokens=total_tokens,
    )
