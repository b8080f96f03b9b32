"""Text helpers and the llms.txt section parser.

``split_sections`` is a single-pass scan that splits Markdown on level-2
headings, suppressing headings inside fenced code blocks.
"""

from __future__ import annotations

import math
import re
from urllib.parse import urlparse

from llmsforge.models.documents import MarkdownDocument

_SECTION_HEADING_RE = re.compile(r"^## (.*)")
_NON_WORD_RE = re.compile(r"[^\w\s]")

# Sections at or below this many characters are treated as noise.
MIN_SECTION_CHARS = 50


def slugify(text: str) -> str:
    """Build a Markdown anchor: ``"Getting Started!"`` → ``"getting-started"``."""
    slug = text.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / 4)


def count_words(text: str) -> int:
    return len(_NON_WORD_RE.sub(" ", text).split())


def extract_site_name(url: str) -> str:
    """Return the registrable name of a host: ``docs.anthropic.com`` → ``anthropic``."""
    hostname = urlparse(url).hostname
    if not hostname:
        return "documentation"
    hostname = re.sub(r"^www\.", "", hostname)
    parts = hostname.split(".")
    if len(parts) >= 2:
        return parts[-2]
    return hostname


def split_sections(content: str) -> tuple[str, list[tuple[str, str]]]:
    """Split Markdown into a preamble and ``(title, body)`` pairs on ``## `` headings.

    Headings inside ``` or ~~~ fences do not start a section.
    """
    preamble: list[str] = []
    sections: list[tuple[str, list[str]]] = []

    in_code_block = False
    fence: str | None = None

    for line in content.splitlines():
        stripped = line.strip()
        target = sections[-1][1] if sections else preamble

        if stripped.startswith("```") or stripped.startswith("~~~"):
            current_fence = stripped[:3]
            if not in_code_block:
                in_code_block = True
                fence = current_fence
            elif current_fence == fence:
                in_code_block = False
                fence = None
            target.append(line)
            continue

        match = None if in_code_block else _SECTION_HEADING_RE.match(line)
        if match:
            sections.append((match.group(1).strip(), []))
            continue

        target.append(line)

    return (
        "\n".join(preamble).strip(),
        [(title, "\n".join(body).strip()) for title, body in sections],
    )


def parse_llms_txt(content: str, url: str) -> list[MarkdownDocument]:
    """Turn an llms.txt / llms-full.txt file into one document per section.

    The preamble becomes "Introduction" and each ``## `` section keeps its
    heading. Short fragments are dropped; if nothing survives, the whole file
    becomes a single "Documentation" document.
    """
    preamble, sections = split_sections(content)
    documents: list[MarkdownDocument] = []

    if len(preamble) > MIN_SECTION_CHARS:
        documents.append(
            MarkdownDocument(
                title="Introduction",
                url=url,
                content=preamble,
                word_count=count_words(preamble),
            )
        )

    for index, (title, body) in enumerate(sections, start=1):
        if len(body) <= MIN_SECTION_CHARS:
            continue
        title = title or f"Section {index}"
        full_content = f"## {title}\n\n{body}"
        documents.append(
            MarkdownDocument(
                title=title,
                url=url,
                content=full_content,
                word_count=count_words(full_content),
            )
        )

    if not documents and len(content) > MIN_SECTION_CHARS:
        documents.append(
            MarkdownDocument(
                title="Documentation",
                url=url,
                content=content,
                word_count=count_words(content),
            )
        )

    return documents
