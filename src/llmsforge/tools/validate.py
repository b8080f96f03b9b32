"""Handler for the llms.txt existence check.

Checks ``llms-full.txt`` then ``llms.txt`` at the site origin and caches the
answer per origin in the validation cache.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, NamedTuple

import structlog

from llmsforge.analyzer import normalize_input_url, origin_of
from llmsforge.errors import ErrorCode, LlmsForgeError
from llmsforge.models.extraction import ValidationResult
from llmsforge.models.tools import ValidateInput

if TYPE_CHECKING:
    from llmsforge.state import AppState

CANDIDATES: tuple[tuple[str, Literal["full", "standard"]], ...] = (
    ("/llms-full.txt", "full"),
    ("/llms.txt", "standard"),
)


class ValidateOutcome(NamedTuple):
    result: dict
    cache_hit: bool
    ttl_remaining: int  # -1 on a miss


def _content_length(value: str | None) -> int | None:
    if value is None or not value.strip().isdigit():
        return None
    return int(value)


async def handle(url: str, state: AppState) -> ValidateOutcome:
    """Handle a validate request."""
    log = structlog.get_logger().bind(tool="validate", url=url)
    log.info("handler_called")

    try:
        validated = ValidateInput(url=url)
    except ValueError as exc:
        raise LlmsForgeError(
            code=ErrorCode.INVALID_INPUT,
            message="URL is required as query parameter",
            suggestion="Call /api/validate?url=docs.example.com",
            recoverable=False,
        ) from exc

    if state.fetcher is None:
        raise RuntimeError("Fetcher not initialized; is the application lifespan running?")

    base_url = origin_of(normalize_input_url(validated.url))

    cached = state.validation_cache.get(base_url)
    if cached is not None:
        log.info("cache_hit")
        return ValidateOutcome(
            result=cached.model_dump(mode="json", by_alias=True),
            cache_hit=True,
            ttl_remaining=state.validation_cache.get_ttl_remaining(base_url),
        )

    result = ValidationResult(exists=False)
    for path, kind in CANDIDATES:
        candidate = f"{base_url}{path}"
        response = await state.fetcher.probe(candidate)
        if response is not None:
            result = ValidationResult(
                exists=True,
                type=kind,
                size=_content_length(response.headers.get("content-length")),
                url=candidate,
            )
            break

    log.info("validate_complete", exists=result.exists, type=result.type)
    state.validation_cache.set(base_url, result)
    return ValidateOutcome(
        result=result.model_dump(mode="json", by_alias=True),
        cache_hit=False,
        ttl_remaining=-1,
    )
