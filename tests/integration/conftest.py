"""Integration test fixtures.

Provides a fully wired AppState (real caches, rate limiter and Fetcher over a
respx-intercepted client) and the ASGI application driven through its
lifespan.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from llmsforge.config import Settings
from llmsforge.fetcher import Fetcher
from llmsforge.server import build_state, create_app

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.applications import Starlette

    from llmsforge.state import AppState

ADMIN_KEY = "test-admin-key"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        server={"admin_key": ADMIN_KEY},
        extraction={"page_delay_seconds": 0},
    )


@pytest.fixture()
def app_state(settings: Settings, http_client: httpx.AsyncClient) -> AppState:
    """AppState as the lifespan would leave it, without starting background tasks."""
    state = build_state(settings)
    state.http_client = http_client
    state.fetcher = Fetcher(http_client, settings.fetcher)
    return state


@pytest.fixture()
def app(settings: Settings, http_client: httpx.AsyncClient) -> Starlette:
    return create_app(settings, http_client=http_client)


@pytest.fixture()
async def api(app: Starlette) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Client for the application with its lifespan running."""
    async with app.router.lifespan_context(app):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            yield client
