from __future__ import annotations

from pydantic import computed_field

from llmsforge.models.base import FrozenWireModel, WireModel


class MarkdownDocument(FrozenWireModel):
    """One fetched page or one llms.txt section, as Markdown."""

    title: str
    url: str
    content: str
    word_count: int
    description: str | None = None


class SitemapEntry(FrozenWireModel):
    url: str
    lastmod: str | None = None
    priority: float | None = None
    changefreq: str | None = None


class SitemapParseResult(WireModel):
    """Parsed form of a single sitemap document.

    An index document only ever populates ``nested_sitemaps``; a leaf
    document only ever populates ``entries``.
    """

    entries: list[SitemapEntry] = []
    is_sitemap_index: bool = False
    nested_sitemaps: list[str] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def urls(self) -> list[str]:
        return [entry.url for entry in self.entries]
