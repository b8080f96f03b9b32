"""Rate-limiting middleware and the uvicorn runner."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse

from llmsforge.errors import ErrorCode, LlmsForgeError
from llmsforge.rate_limiter import get_client_ip, rate_limit_headers, retry_after

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from llmsforge.config import Settings
    from llmsforge.rate_limiter import RateLimiter

log = structlog.get_logger()

RATE_LIMITED_PATHS: frozenset[str] = frozenset({"/api/extract", "/api/batch", "/api/validate"})


class RateLimitMiddleware:
    """Pure ASGI middleware applying the per-client fixed-window limit.

    Limited routes get ``X-RateLimit-*`` headers on every response; a denied
    request is answered with 429 and ``Retry-After`` without reaching the app.
    Implemented as pure ASGI (not BaseHTTPMiddleware) so that responses are
    never buffered by the middleware layer.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        limiter: RateLimiter,
        paths: frozenset[str] = RATE_LIMITED_PATHS,
    ) -> None:
        self.app = app
        self.limiter = limiter
        self.paths = paths

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] not in self.paths:
            await self.app(scope, receive, send)
            return

        client_ip = get_client_ip(Headers(scope=scope))
        result = self.limiter.check_and_record(client_ip)
        headers = rate_limit_headers(result)

        if not result.allowed:
            log.warning("rate_limited", client_ip=client_ip, path=scope["path"], reset_at=result.reset_at)
            error = LlmsForgeError(
                code=ErrorCode.RATE_LIMITED,
                message="Too many requests",
                suggestion="Wait for the rate-limit window to reset before retrying.",
                recoverable=True,
            )
            response = JSONResponse(
                error.to_dict(),
                status_code=429,
                headers={**headers, "Retry-After": str(retry_after(result))},
            )
            await response(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in headers.items():
                    response_headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_headers)


def run_http_server(app: ASGIApp, settings: Settings) -> None:
    """Serve the application with uvicorn."""
    log.info(
        "http_server_starting",
        host=settings.server.host,
        port=settings.server.port,
        rate_limit_window_seconds=settings.rate_limit.window_seconds,
        rate_limit_max_requests=settings.rate_limit.max_requests,
    )
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )
