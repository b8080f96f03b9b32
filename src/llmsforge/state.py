"""Application state container.

AppState is created once by ``server.create_app`` and injected into every
request handler. The caches and the rate limiter exist from construction;
the HTTP client and fetcher are attached by the application lifespan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from llmsforge.cache import LRUCache
    from llmsforge.config import Settings
    from llmsforge.models.extraction import ExtractionResult, ValidationResult
    from llmsforge.protocols import FetcherProtocol
    from llmsforge.rate_limiter import RateLimiter


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every handler."""

    settings: Settings
    extraction_cache: LRUCache[ExtractionResult]
    validation_cache: LRUCache[ValidationResult]
    rate_limiter: RateLimiter
    admin_key: str | None = None

    # Attached by the lifespan
    http_client: httpx.AsyncClient | None = None
    fetcher: FetcherProtocol | None = None
