"""Persistent document store — protocol, record model and adapters.

Every document tool reads the record immediately before computing offsets
and writes the full field back after each mutation (write-through, last
writer wins).  Two adapters ship:

- :class:`InMemoryDocumentStore`: process-local, used by tests and when
  ``DOCUMENT_STORE_URL`` is empty.
- :class:`HttpDocumentStore`: talks to the REST document service.

Usage::

    from infra.document_store import get_document_store
    store = get_document_store()
    record = store.get("doc-1")
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


class DocumentRecord(BaseModel):
    """A document as persisted by the store.

    Accepts both snake_case and the camelCase field names used by the
    document service (``projectId``, ``updatedAt``, ``isDraft``, ``_id``).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str = ""
    content: str = ""
    summary: str = ""
    project_id: str = ""
    description: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    is_draft: bool = False

    def metadata(self) -> dict[str, Any]:
        """Everything except the (potentially large) content and summary fields."""
        return self.model_dump(mode="json", exclude={"content", "summary"})


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class DocumentStore(Protocol):
    """Minimal persistence operations the document tools rely on.

    All methods are synchronous.  Async callers should run them in a thread
    pool (e.g. ``asyncio.to_thread``).
    """

    def get(self, document_id: str) -> DocumentRecord | None:
        """Return the record, or ``None`` when no such document exists."""
        ...

    def update(self, document_id: str, fields: dict[str, Any]) -> DocumentRecord:
        """Overwrite *fields* on the record and return the stored result.

        Raises:
            DocumentStoreError: when the record does not exist or the write fails.
        """
        ...

    def list_by_project(self, project_id: str) -> list[DocumentRecord]:
        """Return every document belonging to *project_id* (may be empty)."""
        ...


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DocumentStoreError(Exception):
    """Raised for any store transport or persistence error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __repr__(self) -> str:  # pragma: no cover
        return f"DocumentStoreError({self.args[0]!r}, status_code={self.status_code})"


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------


class InMemoryDocumentStore:
    """Dictionary-backed store.  Thread-safe; tools run in worker threads."""

    def __init__(self, records: list[DocumentRecord] | None = None) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, DocumentRecord] = {r.id: r for r in records or []}

    def add(self, record: DocumentRecord) -> DocumentRecord:
        with self._lock:
            self._records[record.id] = record
        return record

    def get(self, document_id: str) -> DocumentRecord | None:
        with self._lock:
            record = self._records.get(document_id)
            return record.model_copy() if record else None

    def update(self, document_id: str, fields: dict[str, Any]) -> DocumentRecord:
        with self._lock:
            current = self._records.get(document_id)
            if current is None:
                raise DocumentStoreError(f"Document {document_id!r} does not exist", status_code=404)
            updated = current.model_copy(update=fields)
            self._records[document_id] = updated
            return updated.model_copy()

    def list_by_project(self, project_id: str) -> list[DocumentRecord]:
        with self._lock:
            return [r.model_copy() for r in self._records.values() if r.project_id == project_id]

    def __len__(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# HTTP adapter
# ---------------------------------------------------------------------------


class HttpDocumentStore:
    """REST document service client.

    Endpoints used:
        ``GET   {base}/documents/{id}``
        ``PATCH {base}/documents/{id}``
        ``GET   {base}/projects/{project_id}/documents``

    Args:
        base_url: Service base URL, e.g. ``http://localhost:5000/api``.
        token: Bearer token; empty for unauthenticated services.
        timeout: HTTP timeout in seconds.
    """

    def __init__(self, base_url: str, token: str = "", timeout: float = 15.0) -> None:
        self._base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(headers=headers, timeout=timeout)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.request(method, url, json=json)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise DocumentStoreError(
                f"Document store {method} {path} failed: "
                f"{exc.response.status_code} {exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise DocumentStoreError(f"Document store {method} {path} network error: {exc}") from exc

    @staticmethod
    def _doc_path(document_id: str) -> str:
        return f"/documents/{quote(document_id, safe='')}"

    # ------------------------------------------------------------------
    # DocumentStore implementation
    # ------------------------------------------------------------------

    def get(self, document_id: str) -> DocumentRecord | None:
        try:
            data = self._request("GET", self._doc_path(document_id))
        except DocumentStoreError as exc:
            if exc.status_code == 404:
                return None
            raise
        return DocumentRecord.model_validate(data)

    def update(self, document_id: str, fields: dict[str, Any]) -> DocumentRecord:
        payload = {to_camel(key): value for key, value in to_jsonable_python(fields).items()}
        data = self._request("PATCH", self._doc_path(document_id), json=payload)
        return DocumentRecord.model_validate(data)

    def list_by_project(self, project_id: str) -> list[DocumentRecord]:
        data = self._request("GET", f"/projects/{quote(project_id, safe='')}/documents")
        return [DocumentRecord.model_validate(item) for item in data]

    def __repr__(self) -> str:  # pragma: no cover
        return f"HttpDocumentStore(base_url={self._base_url!r})"


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_default_store: DocumentStore | None = None


def get_document_store() -> DocumentStore:
    """Return the process-wide store selected by ``DOCUMENT_STORE_URL``."""
    global _default_store
    if _default_store is None:
        from app.core.config import get_settings

        settings = get_settings()
        if settings.document_store_url:
            _default_store = HttpDocumentStore(
                settings.document_store_url,
                token=settings.document_store_token,
                timeout=settings.document_store_timeout_seconds,
            )
        else:
            _default_store = InMemoryDocumentStore()
    return _default_store


def reset_document_store() -> None:
    """Forget the cached store (useful in tests)."""
    global _default_store
    _default_store = None
