"""Summary-field operations and project-level read helpers.

Unlike the content tools these never trust an in-memory copy: each call
reads the record straight from the store, applies the edit, and writes the
summary back.
"""

from __future__ import annotations

from typing import Any

from app.core.config import get_settings
from app.core.errors import ToolValidationError
from app.core.logging import get_logger
from app.core.session import DocumentSession
from app.core.state import ContentRange, ToolResult
from app.tools.document import check_destructive, find_matches, require_content, require_position, require_range
from app.tools.positions import splice

logger = get_logger("tools.summary")


class SummaryEditor:
    def __init__(self, session: DocumentSession) -> None:
        self.session = session

    def _current_summary(self) -> str:
        return self.session.read_record().summary or ""

    def _write(self, operation: str, summary: str) -> None:
        handle = self.session.persist("summary", summary)
        logger.info("%s | %s | summary length now %d", operation, handle.id, len(summary))

    def append(self, content: Any) -> ToolResult:
        current = self._current_summary()
        text = require_content(content)
        start = len(current)
        self._write("append_summary", current + text)
        return ToolResult.ok(
            "append_document_summary",
            f"Appended {len(text)} characters to summary",
            before=ContentRange(start=start, end=start).to_dict(),
            after=ContentRange(start=start, end=start + len(text)).to_dict(),
            inserted_content=text,
            summary_length=start + len(text),
        )

    def insert(self, position: Any, content: Any) -> ToolResult:
        current = self._current_summary()
        at = require_position(position, len(current))
        text = require_content(content)
        new_summary = splice(current, at, at, text)
        self._write("insert_summary", new_summary)
        return ToolResult.ok(
            "insert_document_summary",
            f"Inserted {len(text)} characters into summary at position {at}",
            before=ContentRange(start=at, end=at).to_dict(),
            after=ContentRange(start=at, end=at + len(text)).to_dict(),
            inserted_content=text,
            summary_length=len(new_summary),
        )

    def replace(self, start: Any, end: Any, content: Any) -> ToolResult:
        current = self._current_summary()
        rng = require_range(start, end, len(current))
        text = require_content(content)
        check_destructive(rng.length, len(current), replacement=len(text))
        removed = current[rng.start:rng.end]
        new_summary = splice(current, rng.start, rng.end, text)
        self._write("replace_summary", new_summary)
        return ToolResult.ok(
            "replace_document_summary",
            f"Replaced summary range [{rng.start}, {rng.end}] with {len(text)} characters",
            before=rng.to_dict(),
            after=ContentRange(start=rng.start, end=rng.start + len(text)).to_dict(),
            removed_content=removed,
            inserted_content=text,
            summary_length=len(new_summary),
        )

    def remove(self, start: Any, end: Any) -> ToolResult:
        current = self._current_summary()
        rng = require_range(start, end, len(current))
        check_destructive(rng.length, len(current))
        removed = current[rng.start:rng.end]
        new_summary = splice(current, rng.start, rng.end)
        self._write("remove_summary", new_summary)
        return ToolResult.ok(
            "remove_document_summary",
            f"Removed {len(removed)} characters from summary range [{rng.start}, {rng.end}]",
            before=rng.to_dict(),
            after=ContentRange(start=rng.start, end=rng.start).to_dict(),
            removed_content=removed,
            summary_length=len(new_summary),
        )

    def search(self, query: Any) -> ToolResult:
        current = self._current_summary()
        settings = get_settings()
        found = find_matches(current, query, settings.search_max_matches, settings.search_context_chars)
        return ToolResult.ok(
            "search_document_summary",
            f"Found {found['total_matches']} matches for {query!r} in summary",
            **found,
        )

    # ── Read helpers ─────────────────────────────────────────────────────

    def get_summary(self, document_id: str = "") -> ToolResult:
        record = self.session.read_record(document_id)
        summary = record.summary or ""
        return ToolResult.ok(
            "get_document_summary",
            f"Read {len(summary)} summary characters",
            document_id=record.id,
            document_name=record.name,
            summary=summary,
            length=len(summary),
        )

    def list_project_documents(self, document_id: str = "") -> ToolResult:
        """Metadata (no content/summary) for every document in the same project."""
        record = self.session.read_record(document_id)
        if not record.project_id:
            raise ToolValidationError(f"Document {record.id!r} does not belong to a project", fields=["document_id"])
        store = self.session.store
        documents = [doc.metadata() for doc in store.list_by_project(record.project_id)]
        return ToolResult.ok(
            "get_all_documents_metadata_within_project",
            f"Found {len(documents)} documents in project {record.project_id}",
            project_id=record.project_id,
            documents=documents,
            count=len(documents),
        )
