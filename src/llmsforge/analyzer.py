"""Strategy selection: decide how a site's documentation is best obtained.

Probes run strictly in order and the first success wins:
  1. llms.txt at the well-known locations
  2. a sitemap that yields at least one documentation URL
  3. a docs subdomain or docs path
  4. scraping the input page itself (always succeeds)

Probe failures of any kind count as "not found"; ``analyze_url`` only raises
for malformed input, before any I/O.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog

from llmsforge.errors import ErrorCode, LlmsForgeError
from llmsforge.models.analysis import ExtractionStrategy, UrlAnalysis
from llmsforge.sitemap import parse_sitemap

if TYPE_CHECKING:
    from llmsforge.protocols import FetcherProtocol

log = structlog.get_logger()

LLMS_TXT_PATHS = ("/llms-full.txt", "/llms.txt", "/.well-known/llms.txt")
SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml", "/sitemap-index.xml", "/docs/sitemap.xml")
DOCS_PATHS = ("/docs", "/documentation", "/doc", "/guide", "/api")

_HOSTNAME_RE = re.compile(r"^[\w.:-]+$")
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.I)
_DEFAULT_PORTS = {"http": 80, "https": 443}


def _invalid_url(url: str) -> LlmsForgeError:
    return LlmsForgeError(
        code=ErrorCode.INVALID_URL,
        message="Invalid URL format",
        suggestion=f"Could not parse {url!r} as a website URL, e.g. 'https://docs.example.com'.",
        recoverable=False,
    )


def normalize_input_url(input_url: str) -> str:
    """Strip the input and default the scheme to https.

    Inputs that name any other scheme, such as ``ftp://``, are rejected.

    Raises LlmsForgeError(INVALID_URL) when the result is not a usable URL.
    """
    url = input_url.strip()
    if not url.lower().startswith(("http://", "https://")):
        if _SCHEME_RE.match(url):
            raise _invalid_url(input_url)
        url = f"https://{url}"

    if any(char.isspace() for char in url):
        raise _invalid_url(input_url)

    try:
        parsed = urlparse(url)
        parsed.port  # noqa: B018 - raises ValueError for a malformed port
    except ValueError as exc:
        raise _invalid_url(input_url) from exc

    if not parsed.hostname or not _HOSTNAME_RE.match(parsed.hostname):
        raise _invalid_url(input_url)
    return url


def origin_of(url: str) -> str:
    """``https://Example.com:443/a?b`` → ``https://example.com``."""
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"


def _selected(analysis: UrlAnalysis) -> UrlAnalysis:
    log.info(
        "strategy_selected",
        url=analysis.original_url,
        strategy=analysis.strategy,
        pages=len(analysis.pages),
    )
    return analysis


async def analyze_url(fetcher: FetcherProtocol, input_url: str) -> UrlAnalysis:
    """Probe a site and return the best extraction strategy for it."""
    normalized = normalize_input_url(input_url)
    base_url = origin_of(normalized)

    for path in LLMS_TXT_PATHS:
        candidate = f"{base_url}{path}"
        if await fetcher.exists(candidate):
            return _selected(
                UrlAnalysis(
                    original_url=input_url,
                    base_url=base_url,
                    strategy=ExtractionStrategy.LLMS_TXT,
                    llms_txt_url=candidate,
                )
            )

    for path in SITEMAP_PATHS:
        candidate = f"{base_url}{path}"
        if not await fetcher.exists(candidate):
            continue
        pages = await parse_sitemap(fetcher, candidate)
        if pages:
            return _selected(
                UrlAnalysis(
                    original_url=input_url,
                    base_url=base_url,
                    strategy=ExtractionStrategy.SITEMAP,
                    sitemap_url=candidate,
                    pages=pages,
                )
            )
        log.debug("sitemap_without_docs", url=candidate)

    host = urlparse(normalized).hostname or ""
    host = host.removeprefix("www.")
    docs_candidates = [] if host.startswith("docs.") else [f"https://docs.{host}"]
    docs_candidates.extend(f"{base_url}{path}" for path in DOCS_PATHS)

    for candidate in docs_candidates:
        if candidate in (normalized, base_url):
            continue
        if await fetcher.exists(candidate):
            return _selected(
                UrlAnalysis(
                    original_url=input_url,
                    base_url=base_url,
                    strategy=ExtractionStrategy.DOCS_DISCOVERY,
                    docs_url=candidate,
                )
            )

    return _selected(
        UrlAnalysis(
            original_url=input_url,
            base_url=base_url,
            strategy=ExtractionStrategy.HTML_SCRAPE,
            pages=[normalized],
        )
    )
