from __future__ import annotations

from llmsforge.models.analysis import ExtractionStrategy, UrlAnalysis
from llmsforge.models.documents import MarkdownDocument, SitemapEntry, SitemapParseResult
from llmsforge.models.extraction import (
    BatchResponse,
    BatchResult,
    BatchStats,
    ExtractionProgress,
    ExtractionResult,
    ExtractionSource,
    ExtractionStats,
    ValidationResult,
)
from llmsforge.models.rate_limit import RateLimitResult, WindowEntry

__all__ = [
    # analysis
    "ExtractionStrategy",
    "UrlAnalysis",
    # documents
    "MarkdownDocument",
    "SitemapEntry",
    "SitemapParseResult",
    # extraction
    "ExtractionProgress",
    "ExtractionResult",
    "ExtractionSource",
    "ExtractionStats",
    "BatchResult",
    "BatchStats",
    "BatchResponse",
    "ValidationResult",
    # rate limiting
    "RateLimitResult",
    "WindowEntry",
]
