"""HTML → Markdown conversion for documentation pages.

Conversion is pattern based, not a DOM parse: good enough for the
server-rendered pages documentation generators emit. ``convert_html`` is the
only entry point callers depend on (see ``ConverterProtocol``), so a real
parser can replace it without touching the orchestrator.

Pipeline:
  1. Drop scripts, styles, comments, noscript and page chrome
     (nav/header/footer/aside).
  2. Select the main content container.
  3. Apply element rules in a fixed order, strip leftover tags, decode
     entities and normalise whitespace.

Fenced code blocks are swapped for placeholders as soon as they are converted
so the later rules (tag stripping, entity decoding, whitespace collapsing)
never touch code.
"""

from __future__ import annotations

import asyncio
import html as html_lib
import re
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlparse

import structlog

from llmsforge.errors import LlmsForgeError
from llmsforge.models.documents import MarkdownDocument
from llmsforge.parser import count_words

if TYPE_CHECKING:
    from collections.abc import Callable

    from llmsforge.protocols import ConverterProtocol, FetcherProtocol

log = structlog.get_logger()

# (kind, value) in priority order; the first container over the threshold wins.
CONTENT_SELECTORS: tuple[tuple[str, str], ...] = (
    ("tag", "article"),
    ("tag", "main"),
    ("attr", 'role="main"'),
    ("class", "docs-content"),
    ("class", "documentation"),
    ("class", "content"),
    ("class", "markdown-body"),
    ("class", "prose"),
    ("id", "content"),
    ("id", "main-content"),
    ("class", "post-content"),
    ("class", "article-content"),
)

CHROME_TAGS = ("nav", "footer", "header", "aside")
MIN_MAIN_CONTENT_CHARS = 100
MIN_PAGE_CONTENT_CHARS = 50

_SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.I | re.S)
_STYLE_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", re.I | re.S)
_NOSCRIPT_RE = re.compile(r"<noscript\b[^>]*>.*?</noscript\s*>", re.I | re.S)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.S)
_BODY_RE = re.compile(r"<body\b[^>]*>(.*)</body>", re.I | re.S)
_TAG_RE = re.compile(r"<[^>]+>")

_HEADING_RE = re.compile(r"<h([1-6])\b[^>]*>(.*?)</h\1\s*>", re.I | re.S)
_PRE_RE = re.compile(r"<pre\b([^>]*)>(.*?)</pre\s*>", re.I | re.S)
_CODE_OPEN_RE = re.compile(r"^\s*<code\b([^>]*)>", re.I)
_LANGUAGE_RE = re.compile(r"""class\s*=\s*["'][^"']*?\blanguage-([\w+#.-]+)""", re.I)
_INLINE_CODE_RE = re.compile(r"<code\b[^>]*>(.*?)</code\s*>", re.I | re.S)
_LINK_RE = re.compile(r"""<a\b[^>]*?\bhref\s*=\s*["']([^"']*)["'][^>]*>(.*?)</a\s*>""", re.I | re.S)
_IMG_RE = re.compile(r"<img\b[^>]*>", re.I)
_STRONG_RE = re.compile(r"<(strong|b)\b[^>]*>(.*?)</\1\s*>", re.I | re.S)
_EM_RE = re.compile(r"<(em|i)\b[^>]*>(.*?)</\1\s*>", re.I | re.S)
# Innermost lists first: the body may not contain another opening list tag.
_UL_RE = re.compile(r"<ul\b[^>]*>((?:(?!<[uo]l\b).)*?)</ul\s*>", re.I | re.S)
_OL_RE = re.compile(r"<ol\b[^>]*>((?:(?!<[uo]l\b).)*?)</ol\s*>", re.I | re.S)
_LI_RE = re.compile(r"<li\b[^>]*>(.*?)</li\s*>", re.I | re.S)
_BLOCKQUOTE_RE = re.compile(r"<blockquote\b[^>]*>(.*?)</blockquote\s*>", re.I | re.S)
_PARAGRAPH_RE = re.compile(r"<p\b[^>]*>(.*?)</p\s*>", re.I | re.S)
_PARAGRAPH_TAG_RE = re.compile(r"</?p\b[^>]*>", re.I)
_BR_RE = re.compile(r"<br\s*/?>", re.I)
_HR_RE = re.compile(r"<hr\b[^>]*>", re.I)
_TABLE_RE = re.compile(r"<table\b[^>]*>(.*?)</table\s*>", re.I | re.S)
_ROW_RE = re.compile(r"<tr\b[^>]*>(.*?)</tr\s*>", re.I | re.S)
_CELL_RE = re.compile(r"<t[hd]\b[^>]*>(.*?)</t[hd]\s*>", re.I | re.S)
_PLACEHOLDER_RE = re.compile(r"\x00(\d+)\x00")

_OG_TITLE_RES = (
    re.compile(r"""<meta[^>]+property=["']og:title["'][^>]+content=["']([^"']+)["']""", re.I),
    re.compile(r"""<meta[^>]+content=["']([^"']+)["'][^>]+property=["']og:title["']""", re.I),
)
_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.I)
_TITLE_SUFFIX_RE = re.compile(r"\s+[-|–—]\s+[^-|–—]+$")
_H1_RE = re.compile(r"<h1[^>]*>([^<]+)</h1>", re.I)
_DESCRIPTION_RES = (
    re.compile(r"""<meta[^>]+property=["']og:description["'][^>]+content=["']([^"']+)["']""", re.I),
    re.compile(r"""<meta[^>]+content=["']([^"']+)["'][^>]+property=["']og:description["']""", re.I),
    re.compile(r"""<meta[^>]+name=["']description["'][^>]+content=["']([^"']+)["']""", re.I),
    re.compile(r"""<meta[^>]+content=["']([^"']+)["'][^>]+name=["']description["']""", re.I),
)


# ---------------------------------------------------------------------------
# Element scanning
# ---------------------------------------------------------------------------


def _find_closing_tag(html: str, tag: str, content_start: int) -> tuple[int, int] | None:
    """Locate the closing tag matching an element whose opening tag ends at ``content_start``.

    Counts nested same-name tags. Returns ``(inner_end, outer_end)`` or None
    when the element is never closed.
    """
    tag_re = re.compile(rf"<(/?){re.escape(tag)}\b[^>]*>", re.I)
    depth = 1
    for match in tag_re.finditer(html, content_start):
        if match.group(0).endswith("/>"):
            continue
        depth += -1 if match.group(1) else 1
        if depth == 0:
            return match.start(), match.end()
    return None


def _remove_elements(html: str, tag: str) -> str:
    open_re = re.compile(rf"<{re.escape(tag)}\b[^>]*>", re.I)
    parts: list[str] = []
    pos = 0
    while True:
        match = open_re.search(html, pos)
        if match is None:
            break
        parts.append(html[pos : match.start()])
        closing = _find_closing_tag(html, tag, match.end())
        pos = closing[1] if closing else match.end()
    parts.append(html[pos:])
    return "".join(parts)


def remove_unwanted_elements(html: str) -> str:
    """Strip scripts, styles, comments, noscript and page chrome."""
    cleaned = _SCRIPT_RE.sub("", html)
    cleaned = _STYLE_RE.sub("", cleaned)
    cleaned = _COMMENT_RE.sub("", cleaned)
    cleaned = _NOSCRIPT_RE.sub("", cleaned)
    for tag in CHROME_TAGS:
        cleaned = _remove_elements(cleaned, tag)
    return cleaned


def _selector_pattern(kind: str, value: str) -> re.Pattern[str]:
    if kind == "tag":
        return re.compile(rf"<({re.escape(value)})\b[^>]*>", re.I)
    if kind == "class":
        token = rf"(?<![\w-]){re.escape(value)}(?![\w-])"
        return re.compile(
            rf"""<([a-z][a-z0-9-]*)\b[^>]*\bclass\s*=\s*["'][^"']*{token}[^"']*["'][^>]*>""",
            re.I,
        )
    if kind == "id":
        return re.compile(
            rf"""<([a-z][a-z0-9-]*)\b[^>]*\bid\s*=\s*["']{re.escape(value)}["'][^>]*>""",
            re.I,
        )
    name, _, attr_value = value.partition("=")
    attr_value = attr_value.strip("\"'")
    return re.compile(
        rf"""<([a-z][a-z0-9-]*)\b[^>]*\b{re.escape(name)}\s*=\s*["']{re.escape(attr_value)}["'][^>]*>""",
        re.I,
    )


_SELECTOR_PATTERNS = tuple(_selector_pattern(kind, value) for kind, value in CONTENT_SELECTORS)


def extract_main_content(html: str) -> str:
    """Return the inner HTML of the most likely main-content container.

    Falls back to ``<body>``, then to the whole document.
    """
    for pattern in _SELECTOR_PATTERNS:
        for match in pattern.finditer(html):
            closing = _find_closing_tag(html, match.group(1), match.end())
            inner = html[match.end() : closing[0] if closing else len(html)]
            if len(inner.strip()) > MIN_MAIN_CONTENT_CHARS:
                return inner

    body = _BODY_RE.search(html)
    if body:
        return body.group(1)
    return html


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


def decode_html_entities(text: str) -> str:
    return html_lib.unescape(text).replace("\xa0", " ")


def _title_from_url(url: str) -> str:
    parsed = urlparse(url)
    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        return parsed.hostname or "Documentation"
    name = re.sub(r"[-_]", " ", segments[-1])
    name = re.sub(r"\.(html?|md|mdx)$", "", name, flags=re.I)
    return " ".join(word[:1].upper() + word[1:] for word in name.split(" "))


def extract_title(html: str, url: str) -> str:
    """og:title → <title> (site suffix trimmed) → first <h1> → URL path."""
    for pattern in _OG_TITLE_RES:
        match = pattern.search(html)
        if match:
            return decode_html_entities(match.group(1).strip())

    match = _TITLE_RE.search(html)
    if match:
        title = decode_html_entities(match.group(1).strip())
        title = _TITLE_SUFFIX_RE.sub("", title).strip()
        if title:
            return title

    match = _H1_RE.search(html)
    if match:
        return decode_html_entities(match.group(1).strip())

    return _title_from_url(url)


def extract_description(html: str) -> str | None:
    """og:description → <meta name="description">."""
    for pattern in _DESCRIPTION_RES:
        match = pattern.search(html)
        if match:
            return decode_html_entities(match.group(1).strip())
    return None


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def _strip_tags(text: str) -> str:
    return _TAG_RE.sub("", text)


def _inline_text(text: str) -> str:
    return " ".join(_strip_tags(text).split())


def _attribute(tag: str, name: str) -> str | None:
    match = re.search(rf"""\b{name}\s*=\s*["']([^"']*)["']""", tag, re.I)
    return match.group(1) if match else None


def resolve_href(href: str, origin: str) -> str:
    """Make a link absolute against the page origin.

    Fragments, ``mailto:`` and anything already carrying a scheme are kept.
    """
    href = decode_html_entities(href.strip())
    if not href or href.startswith("#") or re.match(r"^[a-z][a-z0-9+.-]*:", href, re.I):
        return href
    return urljoin(origin + "/", href)


def _render_list(body: str, ordered: bool) -> str:
    items = []
    for number, match in enumerate(_LI_RE.finditer(body), start=1):
        text = _PARAGRAPH_TAG_RE.sub("", match.group(1)).strip()
        marker = f"{number}." if ordered else "-"
        # Continuation lines (nested lists) are indented under the marker.
        text = text.replace("\n", "\n  ")
        items.append(f"{marker} {text}")
    return "\n" + "\n".join(items) + "\n\n"


def _render_blockquote(match: re.Match[str]) -> str:
    inner = _BR_RE.sub("\n", match.group(1))
    inner = _PARAGRAPH_TAG_RE.sub("\n", inner)
    lines = [line.strip() for line in inner.strip().splitlines() if line.strip()]
    return "\n" + "\n".join(f"> {line}" for line in lines) + "\n\n"


def _render_table(match: re.Match[str]) -> str:
    rows: list[str] = []
    for row in _ROW_RE.finditer(match.group(1)):
        cells = [_inline_text(cell.group(1)).replace("|", "\\|") for cell in _CELL_RE.finditer(row.group(1))]
        if not cells:
            continue
        rows.append("| " + " | ".join(cells) + " |")
        if len(rows) == 1:
            rows.append("| " + " | ".join("---" for _ in cells) + " |")
    if not rows:
        return ""
    return "\n" + "\n".join(rows) + "\n\n"


def html_to_markdown(html: str, origin: str) -> str:
    """Convert an HTML fragment to Markdown. Links resolve against ``origin``."""
    code_blocks: list[str] = []

    def stash_code(match: re.Match[str]) -> str:
        attrs, inner = match.group(1), match.group(2)
        language = _LANGUAGE_RE.search(attrs)
        code_open = _CODE_OPEN_RE.match(inner)
        if language is None and code_open is not None:
            language = _LANGUAGE_RE.search(code_open.group(1))
        code = decode_html_entities(_strip_tags(_BR_RE.sub("\n", inner))).strip("\r\n")
        fence_lang = language.group(1) if language else ""
        code_blocks.append(f"```{fence_lang}\n{code}\n```")
        return f"\n\x00{len(code_blocks) - 1}\x00\n\n"

    # NUL delimits code placeholders and never belongs in page text.
    md = remove_unwanted_elements(html.replace("\x00", ""))

    md = _HEADING_RE.sub(
        lambda m: f"\n{'#' * int(m.group(1))} {_inline_text(m.group(2))}\n\n",
        md,
    )
    md = _PRE_RE.sub(stash_code, md)
    md = _INLINE_CODE_RE.sub(lambda m: f"`{_strip_tags(m.group(1))}`", md)

    def render_link(match: re.Match[str]) -> str:
        text = _inline_text(match.group(2))
        if not text:
            return ""
        return f"[{text}]({resolve_href(match.group(1), origin)})"

    md = _LINK_RE.sub(render_link, md)

    def render_image(match: re.Match[str]) -> str:
        tag = match.group(0)
        src = _attribute(tag, "src")
        if not src:
            return ""
        return f"![{_attribute(tag, 'alt') or ''}]({src})"

    md = _IMG_RE.sub(render_image, md)
    md = _STRONG_RE.sub(r"**\2**", md)
    md = _EM_RE.sub(r"*\2*", md)

    # Resolve nested lists from the inside out.
    while True:
        converted = _UL_RE.sub(lambda m: _render_list(m.group(1), ordered=False), md)
        converted = _OL_RE.sub(lambda m: _render_list(m.group(1), ordered=True), converted)
        if converted == md:
            break
        md = converted

    md = _BLOCKQUOTE_RE.sub(_render_blockquote, md)
    md = _PARAGRAPH_RE.sub(r"\n\1\n\n", md)
    md = _BR_RE.sub("\n", md)
    md = _HR_RE.sub("\n---\n\n", md)
    md = _TABLE_RE.sub(_render_table, md)

    md = _strip_tags(md)
    md = decode_html_entities(md)

    md = re.sub(r"[ \t]+$", "", md, flags=re.M)
    md = re.sub(r"\n{3,}", "\n\n", md)
    md = md.strip()

    def restore_code(match: re.Match[str]) -> str:
        index = int(match.group(1))
        return code_blocks[index] if index < len(code_blocks) else ""

    return _PLACEHOLDER_RE.sub(restore_code, md)


def convert_html(html: str, url: str) -> MarkdownDocument:
    """Convert one fetched page into a MarkdownDocument."""
    parsed = urlparse(url)
    origin = f"{parsed.scheme}://{parsed.netloc}"

    main_content = extract_main_content(remove_unwanted_elements(html))
    content = html_to_markdown(main_content, origin)

    return MarkdownDocument(
        title=extract_title(html, url),
        url=url,
        content=content,
        word_count=count_words(content),
        description=extract_description(html),
    )


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


async def scrape_page_to_markdown(
    fetcher: FetcherProtocol,
    url: str,
    *,
    converter: ConverterProtocol = convert_html,
) -> MarkdownDocument:
    """Fetch a page and convert it.

    Raises LlmsForgeError (naming the URL and status) when the fetch fails;
    callers decide whether that skips one page or fails the extraction.
    """
    html = await fetcher.fetch(url)
    document = converter(html, url)
    log.debug("page_converted", url=url, words=document.word_count)
    return document


async def scrape_pages(
    fetcher: FetcherProtocol,
    urls: list[str],
    *,
    on_progress: Callable[[int, int, str], None] | None = None,
    delay: float = 0.1,
    converter: ConverterProtocol = convert_html,
) -> list[MarkdownDocument]:
    """Scrape pages one at a time, skipping failures and near-empty pages."""
    documents: list[MarkdownDocument] = []
    total = len(urls)

    for index, url in enumerate(urls):
        if on_progress is not None:
            on_progress(index, total, url)

        try:
            document = await scrape_page_to_markdown(fetcher, url, converter=converter)
        except LlmsForgeError as exc:
            log.warning("page_skipped", url=url, reason="fetch_failed", error=exc.message)
        else:
            if len(document.content) > MIN_PAGE_CONTENT_CHARS:
                documents.append(document)
            else:
                log.info("page_skipped", url=url, reason="too_short")

        # Politeness delay between requests to the same site.
        if delay > 0 and index < total - 1:
            await asyncio.sleep(delay)

    if on_progress is not None:
        on_progress(total, total, "")
    return documents
