"""Per-session active document context.

A :class:`DocumentSession` owns exactly one bound document and the store it
came from.  Every agent session (and the web API's default session) gets its
own instance, so two sessions never see each other's active document.

Typical call-site pattern
-------------------------
::

    session = DocumentSession(store)
    session.bind("doc-1")
    handle = session.refresh()      # re-read before computing offsets
    ...
    session.persist("content", new_content)
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from app.core.errors import DocumentNotFoundError, NoActiveDocumentError, StoreNotInitializedError
from app.core.events import emit_document_bound
from app.core.logging import get_logger
from app.core.state import DocumentHandle
from infra.document_store import DocumentRecord, DocumentStore

logger = get_logger("core.session")

DocumentField = Literal["content", "summary"]


class DocumentSession:
    """Active-document context for one agent session.

    Args:
        store: Persistent store; ``None`` leaves the session unusable until
               one is assigned (every read raises :class:`StoreNotInitializedError`).
        session_id: Label used in logs and events.
    """

    def __init__(self, store: DocumentStore | None = None, session_id: str = "") -> None:
        self.store = store
        self.session_id = session_id or uuid.uuid4().hex[:8]
        self._handle: DocumentHandle | None = None

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    @property
    def handle(self) -> DocumentHandle | None:
        return self._handle

    @property
    def document_id(self) -> str:
        return self._handle.id if self._handle else ""

    def bind(self, document_id: str) -> dict[str, str]:
        """Make *document_id* the active document.  An empty id clears it.

        Raises:
            StoreNotInitializedError: no store configured.
            DocumentNotFoundError: the store has no such document.
        """
        if not document_id:
            self.clear()
            return {"document_id": "", "content": "", "document_name": ""}

        record = self._require_store().get(document_id)
        if record is None:
            raise DocumentNotFoundError(document_id)

        self._handle = DocumentHandle(
            id=record.id,
            name=record.name,
            content=record.content or "",
            summary=record.summary or "",
            updated_at=record.updated_at,
        )
        logger.info("session %s | bound document %s (%d chars)", self.session_id, record.id, len(self._handle.content))
        emit_document_bound(record.id, record.name)
        return {"document_id": record.id, "content": self._handle.content, "document_name": record.name}

    def clear(self) -> None:
        if self._handle is not None:
            logger.info("session %s | cleared document %s", self.session_id, self._handle.id)
            emit_document_bound("")
        self._handle = None

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    def _require_store(self) -> DocumentStore:
        if self.store is None:
            raise StoreNotInitializedError("Document store is not initialized")
        return self.store

    def require_handle(self) -> DocumentHandle:
        if self._handle is None:
            raise NoActiveDocumentError("No active document. Set the current document first.")
        return self._handle

    def read_record(self, document_id: str = "") -> DocumentRecord:
        """Read a record straight from the store (defaults to the active document)."""
        target = document_id or self.require_handle().id
        record = self._require_store().get(target)
        if record is None:
            raise DocumentNotFoundError(target)
        return record

    def refresh(self) -> DocumentHandle:
        """Re-read the active document and adopt the stored copy if it changed."""
        handle = self.require_handle()
        record = self.read_record(handle.id)
        content = record.content or ""
        if record.updated_at != handle.updated_at or content != handle.content:
            logger.debug("session %s | document %s changed in store, refreshing", self.session_id, handle.id)
            handle.content = content
            handle.summary = record.summary or ""
            handle.name = record.name
            handle.updated_at = record.updated_at
        return handle

    def persist(self, field: DocumentField, value: str) -> DocumentHandle:
        """Write *value* into *field* of the active document (write-through)."""
        handle = self.require_handle()
        now = datetime.now(timezone.utc)
        fields: dict[str, object] = {field: value, "updated_at": now}
        if field == "content":
            fields["is_draft"] = True
        record = self._require_store().update(handle.id, fields)
        setattr(handle, field, value)
        handle.updated_at = record.updated_at or now
        logger.debug("session %s | persisted %s of %s (%d chars)", self.session_id, field, handle.id, len(value))
        return handle
