from __future__ import annotations

from typing import Any, Literal

from llmsforge.models.analysis import ExtractionStrategy
from llmsforge.models.base import WireModel
from llmsforge.models.documents import MarkdownDocument

ExtractionStatus = Literal["analyzing", "fetching", "processing", "complete", "error"]


class ExtractionProgress(WireModel):
    status: ExtractionStatus
    message: str
    progress: int  # 0–100
    current_step: str | None = None
    total_steps: int | None = None
    completed_steps: int | None = None
    error: str | None = None


class ExtractionSource(WireModel):
    url: str
    source_url: str
    title: str
    site_name: str


class ExtractionStats(WireModel):
    total_documents: int = 0
    total_words: int = 0
    total_characters: int = 0
    total_tokens: int = 0
    extraction_time: int = 0  # Milliseconds


class ExtractionResult(WireModel):
    """Result of one extraction. Always well formed, even on failure."""

    success: bool
    strategy: ExtractionStrategy
    source: ExtractionSource
    documents: list[MarkdownDocument] = []
    full_document: str = ""
    agent_prompt: str = ""
    mcp_config: dict[str, Any] = {}
    stats: ExtractionStats = ExtractionStats()
    error: str | None = None


class BatchResult(WireModel):
    url: str
    index: int  # Position in the submitted list; results arrive in completion order
    success: bool
    error: str | None = None
    data: ExtractionResult | None = None


class BatchStats(WireModel):
    total: int
    successful: int
    failed: int
    total_tokens: int


class BatchResponse(WireModel):
    results: list[BatchResult]
    stats: BatchStats


class ValidationResult(WireModel):
    """Whether a site publishes llms.txt, as reported by the validate route."""

    exists: bool
    type: Literal["full", "standard"] | None = None
    size: int | None = None
    url: str | None = None
