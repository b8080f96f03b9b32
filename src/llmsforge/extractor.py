"""Extraction orchestrator: analyze → fetch → synthesize.

``extract`` never raises. Every failure, including malformed input and an
empty result, comes back as an ``ExtractionResult`` with ``success=False``
and a human-readable ``error``.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from llmsforge.analyzer import analyze_url
from llmsforge.converter import convert_html, scrape_page_to_markdown, scrape_pages
from llmsforge.errors import ErrorCode, LlmsForgeError
from llmsforge.models.analysis import ExtractionStrategy, UrlAnalysis
from llmsforge.models.extraction import (
    ExtractionProgress,
    ExtractionResult,
    ExtractionSource,
    ExtractionStats,
    ExtractionStatus,
)
from llmsforge.output import generate_agent_prompt, generate_full_document, generate_mcp_config
from llmsforge.parser import estimate_tokens, extract_site_name, parse_llms_txt
from llmsforge.sitemap import sort_documentation_urls

if TYPE_CHECKING:
    from collections.abc import Callable

    from llmsforge.models.documents import MarkdownDocument
    from llmsforge.protocols import ConverterProtocol, FetcherProtocol

log = structlog.get_logger()

NO_CONTENT_MESSAGE = "No content could be extracted from the URL"


class _ProgressReporter:
    """Forwards progress events, clamping the percentage so it never decreases."""

    def __init__(self, callback: Callable[[ExtractionProgress], None] | None) -> None:
        self._callback = callback
        self.last = 0

    def emit(self, status: ExtractionStatus, message: str, progress: int, **fields: object) -> None:
        self.last = max(progress, self.last)
        if self._callback is not None:
            self._callback(ExtractionProgress(status=status, message=message, progress=self.last, **fields))

    def on_page(self, completed: int, total: int, url: str) -> None:
        """Map page progress onto the 20–80 band."""
        percent = 20 + (completed * 60) // total if total else 80
        message = f"Processing page {completed + 1} of {total}" if completed < total else f"Processed {total} pages"
        self.emit(
            "fetching",
            message,
            percent,
            current_step=url or None,
            total_steps=total,
            completed_steps=completed,
        )


async def _extract_from_llms_txt(fetcher: FetcherProtocol, url: str) -> list[MarkdownDocument]:
    content = await fetcher.fetch(url, accept="text/plain, text/markdown, */*")
    return parse_llms_txt(content, url)


async def _extract_from_pages(
    fetcher: FetcherProtocol,
    pages: list[str],
    progress: _ProgressReporter,
    *,
    max_pages: int,
    page_delay: float,
    converter: ConverterProtocol,
) -> list[MarkdownDocument]:
    selected = sort_documentation_urls(pages)[:max_pages]
    return await scrape_pages(
        fetcher,
        selected,
        on_progress=progress.on_page,
        delay=page_delay,
        converter=converter,
    )


async def _extract_documents(
    fetcher: FetcherProtocol,
    analysis: UrlAnalysis,
    progress: _ProgressReporter,
    *,
    max_pages: int,
    page_delay: float,
    converter: ConverterProtocol,
) -> tuple[list[MarkdownDocument], str]:
    """Run the selected strategy. Returns the documents and the URL they came from."""
    if analysis.strategy == ExtractionStrategy.LLMS_TXT and analysis.llms_txt_url:
        progress.emit("fetching", "Found llms.txt! Fetching content...", 20)
        return await _extract_from_llms_txt(fetcher, analysis.llms_txt_url), analysis.llms_txt_url

    if analysis.strategy == ExtractionStrategy.SITEMAP and analysis.sitemap_url:
        progress.emit("fetching", f"Found sitemap with {len(analysis.pages)} pages", 20)
        documents = await _extract_from_pages(
            fetcher,
            analysis.pages,
            progress,
            max_pages=max_pages,
            page_delay=page_delay,
            converter=converter,
        )
        return documents, analysis.sitemap_url

    if analysis.strategy == ExtractionStrategy.DOCS_DISCOVERY and analysis.docs_url:
        docs_url = analysis.docs_url
        progress.emit("fetching", f"Discovered docs at {docs_url}", 20)
        docs_analysis = await analyze_url(fetcher, docs_url)

        if docs_analysis.strategy == ExtractionStrategy.LLMS_TXT and docs_analysis.llms_txt_url:
            documents = await _extract_from_llms_txt(fetcher, docs_analysis.llms_txt_url)
            return documents, docs_analysis.llms_txt_url
        if docs_analysis.strategy == ExtractionStrategy.SITEMAP and docs_analysis.pages:
            documents = await _extract_from_pages(
                fetcher,
                docs_analysis.pages,
                progress,
                max_pages=max_pages,
                page_delay=page_delay,
                converter=converter,
            )
            return documents, docs_url
        return [await scrape_page_to_markdown(fetcher, docs_url, converter=converter)], docs_url

    progress.emit("fetching", "Scraping page content...", 20)
    page_url = analysis.pages[0]
    return [await scrape_page_to_markdown(fetcher, page_url, converter=converter)], page_url


def _failure(url: str, message: str, elapsed_ms: int) -> ExtractionResult:
    return ExtractionResult(
        success=False,
        strategy=ExtractionStrategy.UNKNOWN,
        source=ExtractionSource(
            url=url,
            source_url=url,
            title="Extraction Failed",
            site_name="unknown",
        ),
        stats=ExtractionStats(extraction_time=elapsed_ms),
        error=message,
    )


async def extract(
    url: str,
    fetcher: FetcherProtocol,
    *,
    on_progress: Callable[[ExtractionProgress], None] | None = None,
    max_pages: int = 50,
    page_delay: float = 0.1,
    converter: ConverterProtocol = convert_html,
) -> ExtractionResult:
    """Extract a site's documentation as Markdown plus derived artifacts."""
    started = time.perf_counter()
    progress = _ProgressReporter(on_progress)

    def elapsed_ms() -> int:
        return int((time.perf_counter() - started) * 1000)

    try:
        progress.emit("analyzing", "Analyzing URL...", 5)
        analysis = await analyze_url(fetcher, url)
        progress.emit("analyzing", f"Strategy: {analysis.strategy}", 10)

        documents, source_url = await _extract_documents(
            fetcher,
            analysis,
            progress,
            max_pages=max_pages,
            page_delay=page_delay,
            converter=converter,
        )

        if not documents:
            raise LlmsForgeError(
                code=ErrorCode.NO_CONTENT,
                message=NO_CONTENT_MESSAGE,
                suggestion="The site returned no pages with readable content.",
                recoverable=False,
            )

        progress.emit("processing", "Generating outputs...", 85)

        site_name = extract_site_name(source_url)
        full_document = generate_full_document(documents, source_url, site_name)
        agent_prompt = generate_agent_prompt(documents, source_url, site_name)
        mcp_config = generate_mcp_config(source_url, site_name)

        stats = ExtractionStats(
            total_documents=len(documents),
            total_words=sum(doc.word_count for doc in documents),
            total_characters=len(full_document),
            total_tokens=estimate_tokens(full_document),
            extraction_time=elapsed_ms(),
        )

        progress.emit("complete", "Extraction complete!", 100)
        log.info(
            "extraction_complete",
            url=url,
            strategy=analysis.strategy,
            documents=stats.total_documents,
            tokens=stats.total_tokens,
            elapsed_ms=stats.extraction_time,
        )

        return ExtractionResult(
            success=True,
            strategy=analysis.strategy,
            source=ExtractionSource(
                url=url,
                source_url=source_url,
                title=documents[0].title or site_name,
                site_name=site_name,
            ),
            documents=documents,
            full_document=full_document,
            agent_prompt=agent_prompt,
            mcp_config=mcp_config,
            stats=stats,
        )

    except LlmsForgeError as exc:
        log.warning("extraction_failed", url=url, code=exc.code, error=exc.message)
        message = exc.message
    except Exception as exc:
        log.error("extraction_failed", url=url, exc_info=True)
        message = str(exc) or "Extraction failed"

    try:
        progress.emit("error", message, progress.last, error=message)
    except Exception:
        log.error("progress_callback_failed", url=url, exc_info=True)
    return _failure(url, message, elapsed_ms())
