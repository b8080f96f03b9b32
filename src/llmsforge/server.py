"""HTTP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState and tie the HTTP client and background tasks to the
  application lifespan
- Register routes and the rate-limit middleware
- Start uvicorn
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import sys
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING, Any

import structlog
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.responses import JSONResponse
from starlette.routing import Route

import llmsforge.tools.admin as t_admin
import llmsforge.tools.batch as t_batch
import llmsforge.tools.extract as t_extract
import llmsforge.tools.validate as t_validate
from llmsforge import __version__
from llmsforge.cache import LRUCache
from llmsforge.config import Settings
from llmsforge.errors import ErrorCode, LlmsForgeError
from llmsforge.fetcher import Fetcher, build_http_client
from llmsforge.rate_limiter import RateLimiter
from llmsforge.schedulers import run_cache_prune_scheduler
from llmsforge.state import AppState
from llmsforge.transport import RateLimitMiddleware, run_http_server

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx
    from starlette.requests import Request

log = structlog.get_logger()

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.INVALID_URL: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.RATE_LIMITED: 429,
}


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _state(request: Request) -> AppState:
    return request.app.state.llmsforge


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise LlmsForgeError(
            code=ErrorCode.INVALID_INPUT,
            message="Request body must be valid JSON",
            suggestion="Send a JSON object with Content-Type: application/json.",
            recoverable=False,
        ) from exc
    if not isinstance(body, dict):
        raise LlmsForgeError(
            code=ErrorCode.INVALID_INPUT,
            message="Request body must be a JSON object",
            suggestion="Send a JSON object with Content-Type: application/json.",
            recoverable=False,
        )
    return body


async def extract_endpoint(request: Request) -> JSONResponse:
    body = await _json_body(request)
    return JSONResponse(await t_extract.handle(body.get("url"), _state(request)))


async def batch_endpoint(request: Request) -> JSONResponse:
    body = await _json_body(request)
    return JSONResponse(await t_batch.handle(body.get("urls"), _state(request)))


async def validate_endpoint(request: Request) -> JSONResponse:
    state = _state(request)
    outcome = await t_validate.handle(request.query_params.get("url", ""), state)

    max_age = int(state.settings.cache.validation_ttl_seconds)
    headers = {
        "X-Cache": "HIT" if outcome.cache_hit else "MISS",
        "Cache-Control": f"public, max-age={max_age}",
    }
    if outcome.cache_hit:
        headers["X-Cache-TTL"] = str(outcome.ttl_remaining)
    return JSONResponse(outcome.result, headers=headers)


async def cache_endpoint(request: Request) -> JSONResponse:
    state = _state(request)

    if request.method == "GET":
        return JSONResponse(t_admin.stats(state))

    t_admin.require_admin(request.headers.get("x-admin-key"), state)

    if request.method == "DELETE":
        clear_rate_limiter = request.query_params.get("clearRateLimiter") == "true"
        return JSONResponse(t_admin.clear(state, clear_rate_limiter=clear_rate_limiter))

    return JSONResponse(t_admin.prune(state))


async def _handle_llmsforge_error(request: Request, exc: LlmsForgeError) -> JSONResponse:
    log.warning(
        "request_error",
        path=request.url.path,
        code=exc.code,
        message=exc.message,
        recoverable=exc.recoverable,
    )
    return JSONResponse(exc.to_dict(), status_code=_STATUS_BY_CODE.get(exc.code, 400))


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    log.error("request_unexpected_error", path=request.url.path, exc_info=exc)
    return JSONResponse({"error": {"message": "Internal server error"}}, status_code=500)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def _resolve_admin_key(settings: Settings) -> str:
    if settings.server.admin_key:
        return settings.server.admin_key
    admin_key = secrets.token_urlsafe(32)
    log.warning("admin_key_auto_generated", admin_key=admin_key)
    return admin_key


def build_state(settings: Settings) -> AppState:
    """Create AppState with its caches and rate limiter. No I/O."""
    return AppState(
        settings=settings,
        extraction_cache=LRUCache(
            ttl=settings.cache.extraction_ttl_seconds,
            max_entries=settings.cache.extraction_max_entries,
        ),
        validation_cache=LRUCache(
            ttl=settings.cache.validation_ttl_seconds,
            max_entries=settings.cache.validation_max_entries,
        ),
        rate_limiter=RateLimiter(
            window_seconds=settings.rate_limit.window_seconds,
            max_requests=settings.rate_limit.max_requests,
        ),
        admin_key=_resolve_admin_key(settings),
    )


def create_app(
    settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> Starlette:
    """Build the ASGI application.

    A caller-supplied ``http_client`` is used as is and left open on
    shutdown; otherwise the lifespan builds and closes its own.
    """
    settings = settings or Settings()
    state = build_state(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
        client = http_client or build_http_client(settings.fetcher)
        state.http_client = client
        state.fetcher = Fetcher(client, settings.fetcher)

        state.rate_limiter.start(settings.rate_limit.cleanup_interval_seconds)
        prune_task = asyncio.create_task(run_cache_prune_scheduler(state))

        log.info("server_started", version=__version__)
        try:
            yield
        finally:
            prune_task.cancel()
            with suppress(asyncio.CancelledError):
                await prune_task
            await state.rate_limiter.destroy()
            if http_client is None:
                await client.aclose()
            state.fetcher = None
            state.http_client = None
            log.info("server_stopping")

    app = Starlette(
        routes=[
            Route("/api/extract", extract_endpoint, methods=["POST"]),
            Route("/api/batch", batch_endpoint, methods=["POST"]),
            Route("/api/validate", validate_endpoint, methods=["GET"]),
            Route("/api/cache", cache_endpoint, methods=["GET", "DELETE", "POST"]),
        ],
        middleware=[Middleware(RateLimitMiddleware, limiter=state.rate_limiter)],
        exception_handlers={
            LlmsForgeError: _handle_llmsforge_error,
            Exception: _handle_unexpected_error,
        },
        lifespan=lifespan,
    )
    app.state.llmsforge = state
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    _setup_logging(settings)
    run_http_server(create_app(settings), settings)


if __name__ == "__main__":
    main()
