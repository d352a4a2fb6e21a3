"""Content normalization for everything the agent writes into a document.

Documents are stored as HTML.  The model is free to send either markup or
markdown; this module turns both into the canonical markup form:

- blank input            → ``""`` (callers treat this as a validation failure)
- input with a tag       → kept verbatim
- markdown block syntax  → rendered to HTML
- inline emphasis, code  → inline-rendered (no ``<p>`` wrapper)
  spans or links
- any other plain text   → kept verbatim, so a short insertion keeps its
                           exact length and removed text can be put back

A top-level heading directly followed by a divider collapses into just the
heading; models like to emit ``# Title`` + ``---`` and editors render that as
a stray rule.
"""

from __future__ import annotations

import re

from markdown_it import MarkdownIt

_TAG_PROBE = re.compile(r"</?[a-zA-Z][a-zA-Z0-9-]*(\s[^<>]*)?/?>")

_BLOCK_SYNTAX = re.compile(
    r"^\s{0,3}(?:#{1,6}\s|[-*+]\s|\d{1,9}[.)]\s|>|```|~~~|(?:-{3,}|\*{3,}|_{3,})\s*$)",
    re.MULTILINE,
)
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")

# Inline constructs worth rendering: code spans, links and images, and
# emphasis delimiters that are not inside a word (``2*3*4`` stays literal)
_INLINE_CONSTRUCT = re.compile(
    r"`[^`\n]+`"
    r"|!?\[[^\]\n]+\]\([^)\s]+\)"
    r"|(?<![\w*_~])(\*\*|__|\*|_|~~)(?=\S)[^\n]*?(?<=\S)\1(?![\w*_~])"
)

_HEADING_DIVIDER = re.compile(
    r"(<h1\b[^>]*>.*?</h1>)\s*<hr\s*/?>\s*(?:<br\s*/?>)?",
    re.IGNORECASE | re.DOTALL,
)

_renderer: MarkdownIt | None = None


def _build_renderer() -> MarkdownIt:
    global _renderer
    if _renderer is None:
        renderer = MarkdownIt("commonmark", {"html": False})
        renderer.enable("table")
        renderer.enable("strikethrough")
        _renderer = renderer
    return _renderer


def looks_like_markup(text: str) -> bool:
    return _TAG_PROBE.search(text) is not None


def looks_like_markdown_blocks(text: str) -> bool:
    return bool(_BLOCK_SYNTAX.search(text) or _PARAGRAPH_BREAK.search(text.strip()))


def collapse_heading_dividers(markup: str) -> str:
    return _HEADING_DIVIDER.sub(r"\1", markup)


def normalize_content(text: str | None) -> str:
    """Return the canonical markup for *text*, or ``""`` when there is nothing to write."""
    if text is None or not text.strip():
        return ""

    if looks_like_markup(text):
        return collapse_heading_dividers(text)

    if looks_like_markdown_blocks(text):
        rendered = _build_renderer().render(text).rstrip("\n")
        return collapse_heading_dividers(rendered)

    if not _INLINE_CONSTRUCT.search(text):
        return text
    rendered = _build_renderer().renderInline(text)
    if not looks_like_markup(rendered):
        return text
    return rendered
