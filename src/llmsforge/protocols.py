"""Protocol interfaces for swappable components.

The analyzer, sitemap parser, converter and orchestrator reference these
protocols, not the concrete implementations. This allows:
- Tests to drive the pipeline with lightweight fakes
- A real HTML parser to replace the pattern-based converter without
  touching callers
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import httpx

    from llmsforge.models.documents import MarkdownDocument


class FetcherProtocol(Protocol):
    """Interface for the HTTP fetcher."""

    async def fetch(self, url: str, *, accept: str = ...) -> str: ...

    async def probe(self, url: str) -> httpx.Response | None: ...

    async def exists(self, url: str) -> bool: ...


class ConverterProtocol(Protocol):
    """Interface for turning one fetched HTML page into a MarkdownDocument."""

    def __call__(self, html: str, url: str) -> MarkdownDocument: ...
