"""Shared test fixtures for the llmsforge test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from llmsforge.fetcher import Fetcher

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


class FakeClock:
    """Manually advanced clock for TTL and rate-limit window tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Plain client; tests intercept its requests with respx."""
    async with httpx.AsyncClient(follow_redirects=False) as client:
        yield client


@pytest.fixture()
def fetcher(http_client: httpx.AsyncClient) -> Fetcher:
    return Fetcher(http_client)
