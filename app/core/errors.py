"""Error taxonomy shared by the tool layer and the agent loop.

Tool handlers raise these; :mod:`app.tools.registry` turns every one of them
into a structured :class:`~app.core.state.ToolResult` so the model always sees
a uniform failure shape.  Only :class:`TransientProviderError` reaches the
orchestrator directly.
"""

from __future__ import annotations


class DocwrightError(Exception):
    """Base class for all docwright errors."""


class ToolValidationError(DocwrightError):
    """Bad or missing tool arguments.  Never retried."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class NotFoundError(DocwrightError):
    """A required resource is absent."""


class StoreNotInitializedError(NotFoundError):
    """No persistent document store has been configured for the session."""


class NoActiveDocumentError(NotFoundError):
    """A document tool was called before any document was bound."""


class DocumentNotFoundError(NotFoundError):
    def __init__(self, document_id: str) -> None:
        super().__init__(f"Document {document_id!r} not found")
        self.document_id = document_id


class DestructiveEditError(ToolValidationError):
    """An edit would wipe out most of the document in one call."""


class ToolDispatchError(DocwrightError):
    """Unknown tool name or a handler failure during dispatch."""


class TransientProviderError(DocwrightError):
    """The language-model provider failed (network, quota, server error)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
