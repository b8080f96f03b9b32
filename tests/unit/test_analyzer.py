"""Unit tests for llmsforge.analyzer."""

from __future__ import annotations

import httpx
import pytest
import respx

from llmsforge.analyzer import analyze_url, normalize_input_url, origin_of
from llmsforge.errors import ErrorCode, LlmsForgeError
from llmsforge.fetcher import Fetcher
from llmsforge.models.analysis import ExtractionStrategy

_BASE = "https://example.com"


def _not_found_elsewhere() -> None:
    """Register the catch-all last so every unmatched probe sees a 404."""
    respx.route().mock(return_value=httpx.Response(404))


def _urlset(*urls: str) -> str:
    body = "".join(f"<url><loc>{url}</loc></url>" for url in urls)
    return f"<urlset>{body}</urlset>"


# ---------------------------------------------------------------------------
# URL normalisation
# ---------------------------------------------------------------------------


class TestNormalizeInputUrl:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("docs.example.com", "https://docs.example.com"),
            ("  https://example.com/guide  ", "https://example.com/guide"),
            ("http://example.com", "http://example.com"),
            ("HTTPS://Example.com/Docs", "HTTPS://Example.com/Docs"),
            ("example.com:8080/docs", "https://example.com:8080/docs"),
        ],
    )
    def test_normalized(self, raw: str, expected: str) -> None:
        assert normalize_input_url(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "   ",
            "not a url",
            "https://exa mple.com",
            "https://example.com:port",
            "https://",
            "https://exa$mple.com",
            "ftp://example.com",
            "file:///etc/passwd",
        ],
    )
    def test_rejected(self, raw: str) -> None:
        with pytest.raises(LlmsForgeError) as exc_info:
            normalize_input_url(raw)
        assert exc_info.value.code == ErrorCode.INVALID_URL
        assert exc_info.value.message == "Invalid URL format"


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://Example.com:443/a?b=1", "https://example.com"),
        ("http://example.com:80/", "http://example.com"),
        ("http://example.com:8080/x", "http://example.com:8080"),
        ("http://[::1]:9000/", "http://[::1]:9000"),
    ],
)
def test_origin_of(url: str, expected: str) -> None:
    assert origin_of(url) == expected


# ---------------------------------------------------------------------------
# analyze_url
# ---------------------------------------------------------------------------


class TestAnalyzeUrl:
    @respx.mock
    async def test_llms_full_txt_wins(self, fetcher: Fetcher) -> None:
        respx.head(f"{_BASE}/llms-full.txt").mock(return_value=httpx.Response(200))
        standard = respx.head(f"{_BASE}/llms.txt").mock(return_value=httpx.Response(200))
        _not_found_elsewhere()

        analysis = await analyze_url(fetcher, "example.com")

        assert analysis.strategy == ExtractionStrategy.LLMS_TXT
        assert analysis.llms_txt_url == f"{_BASE}/llms-full.txt"
        assert analysis.original_url == "example.com"
        assert analysis.base_url == _BASE
        assert standard.called is False

    @respx.mock
    async def test_well_known_llms_txt(self, fetcher: Fetcher) -> None:
        respx.head(f"{_BASE}/.well-known/llms.txt").mock(return_value=httpx.Response(200))
        _not_found_elsewhere()

        analysis = await analyze_url(fetcher, f"{_BASE}/docs/intro")

        assert analysis.strategy == ExtractionStrategy.LLMS_TXT
        assert analysis.llms_txt_url == f"{_BASE}/.well-known/llms.txt"

    @respx.mock
    async def test_sitemap_with_docs(self, fetcher: Fetcher) -> None:
        respx.head(f"{_BASE}/sitemap.xml").mock(return_value=httpx.Response(200))
        respx.get(f"{_BASE}/sitemap.xml").mock(
            return_value=httpx.Response(200, text=_urlset(f"{_BASE}/docs/a", f"{_BASE}/blog/b"))
        )
        _not_found_elsewhere()

        analysis = await analyze_url(fetcher, _BASE)

        assert analysis.strategy == ExtractionStrategy.SITEMAP
        assert analysis.sitemap_url == f"{_BASE}/sitemap.xml"
        assert analysis.pages == [f"{_BASE}/docs/a"]

    @respx.mock
    async def test_sitemap_without_docs_falls_through(self, fetcher: Fetcher) -> None:
        respx.head(f"{_BASE}/sitemap.xml").mock(return_value=httpx.Response(200))
        respx.get(f"{_BASE}/sitemap.xml").mock(
            return_value=httpx.Response(200, text=_urlset(f"{_BASE}/blog/a", f"{_BASE}/pricing"))
        )
        respx.head(f"{_BASE}/docs").mock(return_value=httpx.Response(200))
        _not_found_elsewhere()

        analysis = await analyze_url(fetcher, _BASE)

        assert analysis.strategy == ExtractionStrategy.DOCS_DISCOVERY
        assert analysis.docs_url == f"{_BASE}/docs"
        assert analysis.sitemap_url is None
        assert analysis.pages == []

    @respx.mock
    async def test_docs_subdomain_probed_first(self, fetcher: Fetcher) -> None:
        subdomain = respx.head("https://docs.example.com").mock(return_value=httpx.Response(200))
        docs_path = respx.head(f"{_BASE}/docs").mock(return_value=httpx.Response(200))
        _not_found_elsewhere()

        analysis = await analyze_url(fetcher, "https://www.example.com")

        assert analysis.strategy == ExtractionStrategy.DOCS_DISCOVERY
        assert analysis.docs_url == "https://docs.example.com"
        assert subdomain.called is True
        assert docs_path.called is False

    @respx.mock
    async def test_docs_host_does_not_probe_nested_subdomain(self, fetcher: Fetcher) -> None:
        nested = respx.head("https://docs.docs.example.com").mock(return_value=httpx.Response(200))
        _not_found_elsewhere()

        analysis = await analyze_url(fetcher, "https://docs.example.com")

        assert analysis.strategy == ExtractionStrategy.HTML_SCRAPE
        assert nested.called is False

    @respx.mock
    async def test_input_url_itself_not_a_docs_candidate(self, fetcher: Fetcher) -> None:
        own = respx.head(f"{_BASE}/docs").mock(return_value=httpx.Response(200))
        _not_found_elsewhere()

        analysis = await analyze_url(fetcher, f"{_BASE}/docs")

        assert analysis.strategy == ExtractionStrategy.HTML_SCRAPE
        assert analysis.pages == [f"{_BASE}/docs"]
        assert own.called is False

    @respx.mock
    async def test_fallback_scrapes_input_page(self, fetcher: Fetcher) -> None:
        _not_found_elsewhere()

        analysis = await analyze_url(fetcher, "  example.com/getting-started ")

        assert analysis.strategy == ExtractionStrategy.HTML_SCRAPE
        assert analysis.pages == [f"{_BASE}/getting-started"]
        assert analysis.llms_txt_url is None
        assert analysis.docs_url is None

    @respx.mock
    async def test_unreachable_site_still_yields_strategy(self, fetcher: Fetcher) -> None:
        respx.route().mock(side_effect=httpx.ConnectError("down"))

        analysis = await analyze_url(fetcher, _BASE)

        assert analysis.strategy == ExtractionStrategy.HTML_SCRAPE
        assert analysis.pages == [_BASE]

    async def test_invalid_url_raises_before_any_request(self, fetcher: Fetcher) -> None:
        with respx.mock:
            with pytest.raises(LlmsForgeError) as exc_info:
                await analyze_url(fetcher, "https://bad host")
            assert respx.calls.call_count == 0
        assert exc_info.value.code == ErrorCode.INVALID_URL
