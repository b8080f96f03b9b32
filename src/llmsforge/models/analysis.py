from __future__ import annotations

from enum import StrEnum

from llmsforge.models.base import FrozenWireModel


class ExtractionStrategy(StrEnum):
    LLMS_TXT = "llms-txt"
    SITEMAP = "sitemap"
    DOCS_DISCOVERY = "docs-discovery"
    HTML_SCRAPE = "html-scrape"
    UNKNOWN = "unknown"


class UrlAnalysis(FrozenWireModel):
    """Outcome of probing a site for the best extraction strategy."""

    original_url: str
    base_url: str
    strategy: ExtractionStrategy
    llms_txt_url: str | None = None
    sitemap_url: str | None = None
    docs_url: str | None = None
    pages: list[str] = []
