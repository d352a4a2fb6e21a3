"""Document mutation engine — offset-addressed edits of the active document.

Every operation follows the same pipeline:

    refresh → validate → normalize → splice → persist

``refresh`` re-reads the store so offsets are always computed against the
latest persisted content.  Validation failures raise
:class:`~app.core.errors.ToolValidationError` before anything is mutated;
the registry turns them into structured failures.  Results carry the
``before`` range (what was replaced) and the ``after`` range (where the new
text now lives) so a client can patch its local copy without re-fetching.
"""

from __future__ import annotations

import re
from typing import Any

from app.core.config import get_settings
from app.core.errors import DestructiveEditError, ToolValidationError
from app.core.logging import get_logger
from app.core.session import DocumentSession
from app.core.state import ContentRange, ToolResult
from app.tools.normalizer import normalize_content
from app.tools.positions import clamp_range, splice

logger = get_logger("tools.document")

_MD_HEADING = re.compile(r"^(#{1,6})[ \t]+(\S.*)$", re.MULTILINE)
_HTML_HEADING = re.compile(r"<h([1-6])\b[^>]*>(.*?)</h\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_TARGET_HEADING = re.compile(r"^\s*<h([1-6])\b", re.IGNORECASE)
_ANY_HEADING_OPEN = re.compile(r"<h([1-6])\b[^>]*>", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Shared helpers (also used by the summary tools)
# ---------------------------------------------------------------------------


def require_content(content: Any, field: str = "content") -> str:
    """Normalize *content*; empty or non-string input is a validation failure."""
    if not isinstance(content, str):
        raise ToolValidationError(f"{field} must be a string", fields=[field])
    normalized = normalize_content(content)
    if not normalized:
        raise ToolValidationError(f"{field} must not be empty", fields=[field])
    return normalized


def require_position(position: Any, length: int) -> int:
    """Insertion positions are rejected, never clamped."""
    if isinstance(position, bool) or not isinstance(position, int):
        raise ToolValidationError("position must be an integer", fields=["position"])
    if position < 0 or position > length:
        raise ToolValidationError(
            f"position {position} is out of range (valid: 0..{length})", fields=["position"]
        )
    return position


def require_range(start: Any, end: Any, length: int) -> ContentRange:
    for name, value in (("from", start), ("to", end)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ToolValidationError(f"{name} must be an integer", fields=[name])
    return clamp_range(start, end, length)


def find_matches(text: str, query: Any, max_matches: int, context_chars: int) -> dict[str, Any]:
    """Case-insensitive substring search reporting overlapping matches.

    The cursor advances one character past each match start, so ``"aa"`` in
    ``"aaa"`` is found at 0 and 1.
    """
    if not isinstance(query, str) or not query:
        raise ToolValidationError("query must be a non-empty string", fields=["query"])

    pattern = re.compile(f"(?={re.escape(query)})", re.IGNORECASE)
    matches: list[dict[str, Any]] = []
    total = 0
    for m in pattern.finditer(text):
        position = m.start()
        total += 1
        if len(matches) >= max_matches:
            continue
        context_start = max(0, position - context_chars)
        context_end = min(len(text), position + len(query) + context_chars)
        matches.append({
            "index": len(matches),
            "position": position,
            "length": len(query),
            "text": text[position:position + len(query)],
            "context": text[context_start:context_end],
            "context_start": context_start,
            "context_end": context_end,
        })
    return {"query": query, "total_matches": total, "matches": matches}


def check_destructive(removed: int, total: int, replacement: int | None = None) -> None:
    """Refuse edits that wipe most of the document (when the guard is enabled)."""
    limit = get_settings().max_destructive_fraction
    if limit <= 0 or total == 0:
        return
    fraction = removed / total
    if fraction <= limit:
        return
    if replacement is None:
        raise DestructiveEditError(
            f"Refusing to remove {fraction:.0%} of the document in one call; "
            "remove smaller ranges or replace the content instead"
        )
    if replacement < removed * 0.1:
        raise DestructiveEditError(
            f"Refusing to replace {fraction:.0%} of the document with {replacement} characters; "
            "use smaller targeted replacements"
        )


def _strip_tags(text: str) -> str:
    return _TAG.sub("", text).strip()


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class DocumentEditor:
    """Content-field operations against a session's active document."""

    def __init__(self, session: DocumentSession) -> None:
        self.session = session

    def _write(self, operation: str, new_content: str) -> None:
        handle = self.session.persist("content", new_content)
        logger.info("%s | %s | length now %d", operation, handle.id, len(new_content))

    # ── Read-only ────────────────────────────────────────────────────────

    def get_content(self, document_id: str | None = None) -> ToolResult:
        if document_id and document_id != self.session.document_id:
            self.session.bind(document_id)
        handle = self.session.refresh()
        return ToolResult.ok(
            "get_document_content",
            f"Read {len(handle.content)} characters",
            document_id=handle.id,
            document_name=handle.name,
            content=handle.content,
            length=len(handle.content),
        )

    def scan(self) -> ToolResult:
        handle = self.session.refresh()
        content = handle.content
        settings = get_settings()

        headings: list[dict[str, Any]] = [
            {"level": len(m.group(1)), "text": m.group(2).strip(), "position": m.start()}
            for m in _MD_HEADING.finditer(content)
        ]
        headings.extend(
            {"level": int(m.group(1)), "text": _strip_tags(m.group(2)), "position": m.start()}
            for m in _HTML_HEADING.finditer(content)
        )
        headings.sort(key=lambda h: h["position"])

        preview_chars = settings.scan_preview_chars
        preview = content[:preview_chars] + ("..." if len(content) > preview_chars else "")
        lines = len(content.split("\n")) if content else 0
        words = len(content.split())

        return ToolResult.ok(
            "scan_document_content",
            f"Scanned document: {lines} lines, {words} words, {len(headings)} headings",
            document_id=handle.id,
            lines=lines,
            words=words,
            characters=len(content),
            headings=headings,
            has_content=bool(content.strip()),
            preview=preview,
        )

    def search(self, query: Any) -> ToolResult:
        handle = self.session.refresh()
        settings = get_settings()
        found = find_matches(handle.content, query, settings.search_max_matches, settings.search_context_chars)
        return ToolResult.ok(
            "search_document_content",
            f"Found {found['total_matches']} matches for {query!r}",
            document_id=handle.id,
            **found,
        )

    # ── Mutations ────────────────────────────────────────────────────────

    def append(self, content: Any) -> ToolResult:
        handle = self.session.refresh()
        text = require_content(content)
        start = len(handle.content)
        self._write("append", handle.content + text)
        return ToolResult.ok(
            "append_document_content",
            f"Appended {len(text)} characters",
            before=ContentRange(start=start, end=start).to_dict(),
            after=ContentRange(start=start, end=start + len(text)).to_dict(),
            inserted_content=text,
            document_length=start + len(text),
        )

    def insert(self, position: Any, content: Any) -> ToolResult:
        handle = self.session.refresh()
        at = require_position(position, len(handle.content))
        text = require_content(content)
        new_content = splice(handle.content, at, at, text)
        self._write("insert", new_content)
        return ToolResult.ok(
            "insert_document_content",
            f"Inserted {len(text)} characters at position {at}",
            before=ContentRange(start=at, end=at).to_dict(),
            after=ContentRange(start=at, end=at + len(text)).to_dict(),
            inserted_content=text,
            document_length=len(new_content),
        )

    def insert_at_location(self, target: Any, position: Any, content: Any) -> ToolResult:
        handle = self.session.refresh()
        if not isinstance(target, str) or not target:
            raise ToolValidationError("target must be a non-empty string", fields=["target"])
        if position not in ("before", "after"):
            raise ToolValidationError("position must be 'before' or 'after'", fields=["position"])
        text = require_content(content)

        current = handle.content
        index = current.find(target)
        if index == -1:
            raise ToolValidationError(f"Target text not found in document: {target[:80]!r}", fields=["target"])

        at = index if position == "before" else self._section_end(current, target, index)
        new_content = splice(current, at, at, text)
        self._write("insert_at_location", new_content)
        return ToolResult.ok(
            "insert_document_content_at_location",
            f"Inserted {len(text)} characters {position} target at position {at}",
            before=ContentRange(start=at, end=at).to_dict(),
            after=ContentRange(start=at, end=at + len(text)).to_dict(),
            inserted_content=text,
            document_length=len(new_content),
        )

    @staticmethod
    def _section_end(content: str, target: str, index: int) -> int:
        """Insertion point for ``after``.

        A heading target moves the point past its whole section: to the next
        heading of the same or higher rank, or to the end of the document.
        """
        end = index + len(target)
        heading = _TARGET_HEADING.match(target)
        if heading is None:
            return end
        level = int(heading.group(1))
        for m in _ANY_HEADING_OPEN.finditer(content, end):
            if int(m.group(1)) <= level:
                return m.start()
        return len(content)

    def replace(self, start: Any, end: Any, content: Any) -> ToolResult:
        handle = self.session.refresh()
        current = handle.content
        rng = require_range(start, end, len(current))
        text = require_content(content)
        check_destructive(rng.length, len(current), replacement=len(text))

        removed = current[rng.start:rng.end]
        new_content = splice(current, rng.start, rng.end, text)
        self._write("replace", new_content)
        return ToolResult.ok(
            "replace_document_content",
            f"Replaced range [{rng.start}, {rng.end}] with {len(text)} characters",
            before=rng.to_dict(),
            after=ContentRange(start=rng.start, end=rng.start + len(text)).to_dict(),
            removed_content=removed,
            inserted_content=text,
            document_length=len(new_content),
        )

    def remove(self, start: Any = None, end: Any = None, target: Any = None) -> ToolResult:
        handle = self.session.refresh()
        current = handle.content
        if target is not None:
            if not isinstance(target, str) or not target:
                raise ToolValidationError("target must be a non-empty string", fields=["target"])
            index = current.find(target)
            if index == -1:
                raise ToolValidationError(f"Target text not found in document: {target[:80]!r}", fields=["target"])
            rng = ContentRange(start=index, end=index + len(target))
        elif start is None or end is None:
            raise ToolValidationError("either from/to or target is required", fields=["from", "to", "target"])
        else:
            rng = require_range(start, end, len(current))

        check_destructive(rng.length, len(current))
        removed = current[rng.start:rng.end]
        new_content = splice(current, rng.start, rng.end)
        self._write("remove", new_content)
        return ToolResult.ok(
            "remove_document_content",
            f"Removed {len(removed)} characters from range [{rng.start}, {rng.end}]",
            before=rng.to_dict(),
            after=ContentRange(start=rng.start, end=rng.start).to_dict(),
            removed_content=removed,
            document_length=len(new_content),
        )
