"""Sitemap parsing and documentation-URL filtering.

``parse_sitemap_xml`` is a pure pattern-based parser. ``parse_sitemap``
resolves sitemap indexes with an explicit worklist so that termination is
bounded by three independent limits: recursion depth, nested sitemaps
expanded per index, and total URLs collected.
"""

from __future__ import annotations

import html
import re
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog

from llmsforge.errors import LlmsForgeError
from llmsforge.fetcher import XML_ACCEPT
from llmsforge.models.documents import SitemapEntry, SitemapParseResult

if TYPE_CHECKING:
    from llmsforge.protocols import FetcherProtocol

log = structlog.get_logger()

MAX_DEPTH = 3
MAX_NESTED_PER_INDEX = 5
DEFAULT_MAX_URLS = 100

DOC_PATTERNS = (
    "/docs",
    "/doc/",
    "/guide",
    "/api",
    "/reference",
    "/tutorial",
    "/learn",
    "/manual",
    "/handbook",
    "/getting-started",
    "/quickstart",
    "/introduction",
    "/concepts",
    "/examples",
    "/sdk",
    "/help",
)

EXCLUDE_PATTERNS = (
    "/blog",
    "/changelog",
    "/news",
    "/pricing",
    "/careers",
    "/about",
    "/contact",
    "/privacy",
    "/terms",
    "/legal",
    "/login",
    "/signup",
    "/register",
    "/dashboard",
    "/account",
    "/search",
    "/404",
    "/500",
    "/feed",
    "/rss",
    "/sitemap",
    "/tag/",
    "/category/",
    "/author/",
    ".pdf",
    ".zip",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
)

# Earlier entries sort first; unmatched URLs sort last.
PRIORITY_PATTERNS = (
    "/getting-started",
    "/quickstart",
    "/introduction",
    "/installation",
    "/overview",
    "/guide",
    "/tutorial",
    "/api",
    "/reference",
)

_SITEMAP_BLOCK_RE = re.compile(r"<sitemap>.*?<loc>([^<]+)</loc>.*?</sitemap>", re.I | re.S)
_URL_BLOCK_RE = re.compile(r"<url>.*?<loc>([^<]+)</loc>(.*?)</url>", re.I | re.S)
_LASTMOD_RE = re.compile(r"<lastmod>([^<]+)</lastmod>", re.I)
_PRIORITY_RE = re.compile(r"<priority>([^<]+)</priority>", re.I)
_CHANGEFREQ_RE = re.compile(r"<changefreq>([^<]+)</changefreq>", re.I)


def is_documentation_url(url: str) -> bool:
    """Heuristically decide whether a URL points at documentation.

    Exclusions win over inclusions. A URL matching neither list is kept only
    when its path is a single non-root segment, e.g. ``/quick-tour``.
    """
    lower = url.lower()

    if any(pattern in lower for pattern in EXCLUDE_PATTERNS):
        return False

    if any(pattern in lower for pattern in DOC_PATTERNS):
        return True

    path = urlparse(url).path
    if len(path) <= 1 or path.endswith("/"):
        return False
    return "/" not in path.strip("/")


def parse_sitemap_xml(xml: str) -> SitemapParseResult:
    """Parse one sitemap document.

    Index documents (``<sitemapindex>`` or ``<sitemap>`` present) yield only
    nested sitemap URLs; leaf documents yield entries in document order.
    """
    if "<sitemapindex" in xml or "<sitemap>" in xml:
        nested = [html.unescape(m.group(1).strip()) for m in _SITEMAP_BLOCK_RE.finditer(xml)]
        return SitemapParseResult(is_sitemap_index=True, nested_sitemaps=nested)

    entries: list[SitemapEntry] = []
    for match in _URL_BLOCK_RE.finditer(xml):
        extra = match.group(2) or ""

        lastmod = _LASTMOD_RE.search(extra)
        changefreq = _CHANGEFREQ_RE.search(extra)
        priority_match = _PRIORITY_RE.search(extra)
        priority: float | None = None
        if priority_match:
            try:
                priority = float(priority_match.group(1).strip())
            except ValueError:
                priority = None

        entries.append(
            SitemapEntry(
                url=html.unescape(match.group(1).strip()),
                lastmod=lastmod.group(1).strip() if lastmod else None,
                priority=priority,
                changefreq=changefreq.group(1).strip() if changefreq else None,
            )
        )

    return SitemapParseResult(entries=entries)


async def parse_sitemap(
    fetcher: FetcherProtocol,
    sitemap_url: str,
    *,
    max_urls: int = DEFAULT_MAX_URLS,
    filter_docs: bool = True,
) -> list[str]:
    """Fetch a sitemap and collect page URLs, resolving indexes.

    Traversal is depth-first in document order. Any fetch failure makes that
    one sitemap contribute nothing. Never raises.
    """
    collected: list[str] = []
    visited: set[str] = set()
    # Stack of (url, depth); children are pushed in reverse to keep document order.
    worklist: list[tuple[str, int]] = [(sitemap_url, 0)]

    while worklist and len(collected) < max_urls:
        url, depth = worklist.pop()
        if url in visited or depth > MAX_DEPTH:
            continue
        visited.add(url)

        try:
            xml = await fetcher.fetch(url, accept=XML_ACCEPT)
        except LlmsForgeError as exc:
            log.warning("sitemap_fetch_failed", url=url, error=exc.message)
            continue

        parsed = parse_sitemap_xml(xml)

        if parsed.is_sitemap_index:
            children = parsed.nested_sitemaps[:MAX_NESTED_PER_INDEX]
            log.debug("sitemap_index", url=url, depth=depth, nested=len(children))
            for child in reversed(children):
                worklist.append((child, depth + 1))
            continue

        for page_url in parsed.urls:
            if len(collected) >= max_urls:
                break
            if not filter_docs or is_documentation_url(page_url):
                collected.append(page_url)

    log.info("sitemap_parsed", url=sitemap_url, urls=len(collected), sitemaps=len(visited))
    return collected


def _priority_index(url: str) -> int:
    lower = url.lower()
    for index, pattern in enumerate(PRIORITY_PATTERNS):
        if pattern in lower:
            return index
    return len(PRIORITY_PATTERNS)


def sort_documentation_urls(urls: list[str]) -> list[str]:
    """Order URLs so introductory pages come first; ties sort alphabetically."""
    return sorted(urls, key=lambda url: (_priority_index(url), url))
