"""Derived artifacts built from extracted documents.

Every generator accepts the date/time it should stamp so output is
reproducible in tests; callers normally leave it unset.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any

from llmsforge.models.documents import MarkdownDocument
from llmsforge.parser import slugify

# Topics listed by name in the agent prompt before "and more...".
PROMPT_TOPIC_LIMIT = 8


def format_site_name(site_name: str) -> str:
    return site_name[:1].upper() + site_name[1:]


def table_of_contents(documents: list[MarkdownDocument]) -> str:
    """Numbered list of ``[Title](#slug)`` links, one per document."""
    return "\n".join(
        f"{index}. [{doc.title}](#{slugify(doc.title)})" for index, doc in enumerate(documents, start=1)
    )


def generate_full_document(
    documents: list[MarkdownDocument],
    source_url: str,
    site_name: str,
    *,
    generated_on: date | None = None,
) -> str:
    """Concatenate all documents under a header and table of contents."""
    generated_on = generated_on or datetime.now(UTC).date()
    header = (
        f"# {format_site_name(site_name)} Documentation\n"
        "\n"
        f"> Source: {source_url}\n"
        f"> Generated: {generated_on.isoformat()}\n"
        f"> Total sections: {len(documents)}\n"
        "\n"
        "---\n"
        "\n"
        "## Table of Contents\n"
        "\n"
        f"{table_of_contents(documents)}\n"
        "\n"
        "---\n"
        "\n"
    )
    body = "\n".join(f"\n## {doc.title}\n\n{doc.content}\n\n---\n" for doc in documents)
    return header + body


def generate_agent_prompt(
    documents: list[MarkdownDocument],
    source_url: str,
    site_name: str,
    *,
    generated_on: date | None = None,
) -> str:
    """Build the system-prompt style preamble handed to an AI assistant."""
    generated_on = generated_on or datetime.now(UTC).date()
    name = format_site_name(site_name)
    topics = ", ".join(doc.title for doc in documents[:PROMPT_TOPIC_LIMIT])
    if len(documents) > PROMPT_TOPIC_LIMIT:
        topics += ", and more..."
    total_words = sum(doc.word_count for doc in documents)

    return f"""# {name} Documentation Context

You have access to the official {name} documentation.

## Source Information
- **URL**: {source_url}
- **Sections**: {len(documents)}
- **Approximate words**: {total_words:,}

## Available Topics
{topics}

## How to Use This Context

1. **Answer questions** about {name} features, APIs, and usage
2. **Provide code examples** based on the official documentation
3. **Explain concepts** as documented by {name}
4. **Guide users** through setup, configuration, and best practices

## Important Notes

- This documentation was extracted on {generated_on.isoformat()}
- Always cite specific sections when providing information
- If information might be outdated, recommend checking the official docs
- Be helpful and accurate based on the provided context

---

The full documentation follows below:
"""


def generate_mcp_config(
    source_url: str,
    site_name: str,
    *,
    extracted_at: datetime | None = None,
) -> dict[str, Any]:
    """Resource descriptor pointing an MCP client at the generated documents."""
    extracted_at = extracted_at or datetime.now(UTC)
    return {
        "name": f"{site_name}-docs",
        "version": "1.0.0",
        "description": f"Documentation context for {site_name}",
        "source": {
            "url": source_url,
            "extracted": extracted_at.isoformat(),
        },
        "capabilities": {
            "resources": True,
            "tools": False,
            "prompts": False,
        },
        "resources": [
            {
                "name": "full-documentation",
                "description": "Complete documentation in a single file",
                "uri": f"docs://{site_name}/full",
                "mimeType": "text/markdown",
            },
            {
                "name": "agent-prompt",
                "description": "Optimized prompt for AI assistants",
                "uri": f"docs://{site_name}/prompt",
                "mimeType": "text/markdown",
            },
        ],
    }
