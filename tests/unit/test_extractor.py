"""Unit tests for llmsforge.extractor."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import respx

from llmsforge.extractor import NO_CONTENT_MESSAGE, extract
from llmsforge.fetcher import Fetcher
from llmsforge.models.analysis import ExtractionStrategy
from llmsforge.models.extraction import ExtractionProgress
from llmsforge.parser import estimate_tokens

if TYPE_CHECKING:
    from collections.abc import Callable

_BASE = "https://example.com"
_LONG = "This paragraph is comfortably longer than fifty characters of text."
_LLMS_TXT = f"# Example\n\n## Setup\n\n{_LONG}\n\n## Usage\n\n{_LONG}\n"
_PAGE = (
    "<html><head><title>Getting Started - Example</title></head>"
    f"<body><article><h1>Getting Started</h1><p>{_LONG} {_LONG}</p></article></body></html>"
)


def _not_found_elsewhere() -> None:
    respx.route().mock(return_value=httpx.Response(404))


def _collector() -> tuple[list[ExtractionProgress], Callable[[ExtractionProgress], None]]:
    events: list[ExtractionProgress] = []
    return events, events.append


class TestStrategies:
    @respx.mock
    async def test_llms_txt(self, fetcher: Fetcher) -> None:
        respx.head(f"{_BASE}/llms-full.txt").mock(return_value=httpx.Response(200))
        respx.get(f"{_BASE}/llms-full.txt").mock(return_value=httpx.Response(200, text=_LLMS_TXT))
        _not_found_elsewhere()
        events, on_progress = _collector()

        result = await extract(_BASE, fetcher, on_progress=on_progress)

        assert result.success is True
        assert result.strategy == ExtractionStrategy.LLMS_TXT
        assert result.source.source_url == f"{_BASE}/llms-full.txt"
        assert result.source.site_name == "example"
        assert result.source.title == "Setup"
        assert [doc.title for doc in result.documents] == ["Setup", "Usage"]
        assert "1. [Setup](#setup)\n2. [Usage](#usage)" in result.full_document
        assert result.agent_prompt.startswith("# Example Documentation Context")
        assert result.mcp_config["name"] == "example-docs"
        assert result.stats.total_documents == 2
        assert result.stats.total_characters == len(result.full_document)
        assert result.stats.total_tokens == estimate_tokens(result.full_document)
        assert result.error is None

        percents = [event.progress for event in events]
        assert percents == sorted(percents)
        assert events[0].status == "analyzing"
        assert (events[-1].status, events[-1].progress) == ("complete", 100)

    @respx.mock
    async def test_sitemap_sorted_and_capped(self, fetcher: Fetcher) -> None:
        sitemap = (
            f"<urlset><url><loc>{_BASE}/reference/cli</loc></url>"
            f"<url><loc>{_BASE}/getting-started</loc></url></urlset>"
        )
        respx.head(f"{_BASE}/sitemap.xml").mock(return_value=httpx.Response(200))
        respx.get(f"{_BASE}/sitemap.xml").mock(return_value=httpx.Response(200, text=sitemap))
        first = respx.get(f"{_BASE}/getting-started").mock(return_value=httpx.Response(200, text=_PAGE))
        second = respx.get(f"{_BASE}/reference/cli").mock(return_value=httpx.Response(200, text=_PAGE))
        _not_found_elsewhere()
        events, on_progress = _collector()

        result = await extract(_BASE, fetcher, on_progress=on_progress, max_pages=1, page_delay=0)

        assert result.success is True
        assert result.strategy == ExtractionStrategy.SITEMAP
        assert result.source.source_url == f"{_BASE}/sitemap.xml"
        assert [doc.title for doc in result.documents] == ["Getting Started"]
        assert first.called is True
        assert second.called is False

        messages = [event.message for event in events]
        assert "Processing page 1 of 1" in messages
        assert "Processed 1 pages" in messages
        percents = [event.progress for event in events]
        assert percents == sorted(percents)

    @respx.mock
    async def test_docs_discovery_follows_subdomain_llms_txt(self, fetcher: Fetcher) -> None:
        respx.head("https://docs.example.com").mock(return_value=httpx.Response(200))
        respx.head("https://docs.example.com/llms.txt").mock(return_value=httpx.Response(200))
        respx.get("https://docs.example.com/llms.txt").mock(return_value=httpx.Response(200, text=_LLMS_TXT))
        _not_found_elsewhere()

        result = await extract(_BASE, fetcher)

        assert result.success is True
        assert result.strategy == ExtractionStrategy.DOCS_DISCOVERY
        assert result.source.source_url == "https://docs.example.com/llms.txt"
        assert len(result.documents) == 2

    @respx.mock
    async def test_html_scrape_of_input_page(self, fetcher: Fetcher) -> None:
        respx.get(f"{_BASE}/getting-started").mock(return_value=httpx.Response(200, text=_PAGE))
        _not_found_elsewhere()

        result = await extract(f"{_BASE}/getting-started", fetcher)

        assert result.success is True
        assert result.strategy == ExtractionStrategy.HTML_SCRAPE
        assert result.source.url == f"{_BASE}/getting-started"
        assert result.documents[0].title == "Getting Started"

    @respx.mock
    async def test_malformed_page_loc_skips_only_that_page(self, fetcher: Fetcher) -> None:
        sitemap = (
            f"<urlset><url><loc>{_BASE}/docs/one</loc></url>"
            "<url><loc>https://example.com:abc/docs/two</loc></url></urlset>"
        )
        respx.head(f"{_BASE}/sitemap.xml").mock(return_value=httpx.Response(200))
        respx.get(f"{_BASE}/sitemap.xml").mock(return_value=httpx.Response(200, text=sitemap))
        respx.get(f"{_BASE}/docs/one").mock(return_value=httpx.Response(200, text=_PAGE))
        _not_found_elsewhere()

        result = await extract(_BASE, fetcher, page_delay=0)

        assert result.success is True
        assert result.strategy == ExtractionStrategy.SITEMAP
        assert [doc.url for doc in result.documents] == [f"{_BASE}/docs/one"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_invalid_url(self, fetcher: Fetcher) -> None:
        events, on_progress = _collector()

        result = await extract("not a url", fetcher, on_progress=on_progress)

        assert result.success is False
        assert result.error == "Invalid URL format"
        assert result.strategy == ExtractionStrategy.UNKNOWN
        assert result.source.title == "Extraction Failed"
        assert result.source.site_name == "unknown"
        assert result.documents == []
        assert (events[-1].status, events[-1].progress, events[-1].error) == ("error", 5, "Invalid URL format")

    @respx.mock
    async def test_no_content(self, fetcher: Fetcher) -> None:
        sitemap = f"<urlset><url><loc>{_BASE}/docs/gone</loc></url></urlset>"
        respx.head(f"{_BASE}/sitemap.xml").mock(return_value=httpx.Response(200))
        respx.get(f"{_BASE}/sitemap.xml").mock(return_value=httpx.Response(200, text=sitemap))
        _not_found_elsewhere()
        events, on_progress = _collector()

        result = await extract(_BASE, fetcher, on_progress=on_progress, page_delay=0)

        assert result.success is False
        assert result.error == NO_CONTENT_MESSAGE
        assert events[-1].status == "error"
        assert events[-1].progress == 80

    @respx.mock
    async def test_page_fetch_failure_names_status(self, fetcher: Fetcher) -> None:
        _not_found_elsewhere()

        result = await extract(f"{_BASE}/guide", fetcher)

        assert result.success is False
        assert result.error == f"HTTP 404 fetching {_BASE}/guide"

    @respx.mock
    async def test_broken_progress_callback_does_not_escape(self, fetcher: Fetcher) -> None:
        def on_progress(event: ExtractionProgress) -> None:
            raise RuntimeError("listener gone")

        result = await extract(_BASE, fetcher, on_progress=on_progress)

        assert result.success is False
        assert result.error == "listener gone"
