"""Tool registry and dispatch.

The registry is assembled once per session, after every handler exists.
``execute_tool`` never raises: unknown names, invalid arguments and handler
exceptions all come back as a failed :class:`~app.core.state.ToolResult`
with a short message, and every call lands in the bounded usage log.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from pydantic import ValidationError

from app.core.errors import DocwrightError, ToolDispatchError
from app.core.events import emit_tool_call, emit_tool_result, get_tool_usage_log, record_tool_usage
from app.core.logging import get_logger
from app.core.session import DocumentSession
from app.core.state import ToolResult, ToolUsageEntry
from app.tools import schemas
from app.tools.document import DocumentEditor
from app.tools.repository import RepositoryTools
from app.tools.summary import SummaryEditor
from infra.document_store import DocumentStore, DocumentStoreError
from infra.forge import ForgeError

logger = get_logger("tools.registry")


@dataclass
class ToolSpec:
    name: str
    description: str
    handler: Callable[[Any], ToolResult]
    repository: bool = False

    @property
    def args_schema(self) -> type[schemas.ToolArgs]:
        return schemas.TOOL_ARGS[self.name]

    def parameters(self) -> dict[str, Any]:
        return self.args_schema.model_json_schema(by_alias=True)


def _document_specs(editor: DocumentEditor) -> list[ToolSpec]:
    return [
        ToolSpec(
            "get_document_content",
            "Return the full current content of the active document (or bind another document by id).",
            lambda a: editor.get_content(a.document_id or None),
        ),
        ToolSpec(
            "scan_document_content",
            "Analyze the active document: line, word and character counts, heading outline, preview.",
            lambda a: editor.scan(),
        ),
        ToolSpec(
            "search_document_content",
            "Find every case-insensitive occurrence of a query, with surrounding context and offsets.",
            lambda a: editor.search(a.query),
        ),
        ToolSpec(
            "append_document_content",
            "Add content at the end of the document.",
            lambda a: editor.append(a.content),
        ),
        ToolSpec(
            "insert_document_content",
            "Insert content at an exact character offset.",
            lambda a: editor.insert(a.position, a.content),
        ),
        ToolSpec(
            "insert_document_content_at_location",
            "Insert content before or after existing text. After a heading, content goes to the end of that section.",
            lambda a: editor.insert_at_location(a.target, a.position, a.content),
        ),
        ToolSpec(
            "replace_document_content",
            "Replace the characters in [from, to) with new content. Offsets are clamped to the document.",
            lambda a: editor.replace(a.position.start, a.position.end, a.content),
        ),
        ToolSpec(
            "remove_document_content",
            "Remove the characters in [from, to), or the first occurrence of target text.",
            lambda a: editor.remove(
                a.position.start if a.position else None,
                a.position.end if a.position else None,
                a.target,
            ),
        ),
    ]


def _summary_specs(editor: SummaryEditor) -> list[ToolSpec]:
    return [
        ToolSpec(
            "get_document_summary",
            "Return the summary of the active document (or of another document by id).",
            lambda a: editor.get_summary(a.document_id),
        ),
        ToolSpec(
            "append_document_summary",
            "Add content at the end of the document summary.",
            lambda a: editor.append(a.content),
        ),
        ToolSpec(
            "insert_document_summary",
            "Insert content into the summary at an exact character offset.",
            lambda a: editor.insert(a.position, a.content),
        ),
        ToolSpec(
            "replace_document_summary",
            "Replace the summary characters in [from, to) with new content.",
            lambda a: editor.replace(a.position.start, a.position.end, a.content),
        ),
        ToolSpec(
            "remove_document_summary",
            "Remove the summary characters in [from, to).",
            lambda a: editor.remove(a.position.start, a.position.end),
        ),
        ToolSpec(
            "search_document_summary",
            "Find case-insensitive occurrences of a query in the summary.",
            lambda a: editor.search(a.query),
        ),
        ToolSpec(
            "get_all_documents_metadata_within_project",
            "List metadata (no content) of every document in the active document's project.",
            lambda a: editor.list_project_documents(a.document_id),
        ),
    ]


def _repository_specs(tools: RepositoryTools, default_link: str) -> list[ToolSpec]:
    return [
        ToolSpec(
            "get_repo_structure",
            "List every file and directory of the linked GitHub repository.",
            lambda a: tools.structure(a.repo_link or default_link, a.branch),
            repository=True,
        ),
        ToolSpec(
            "get_repo_commits",
            "List recent commits of the linked GitHub repository, newest first.",
            lambda a: tools.commits(a.repo_link or default_link, a.branch, a.page, a.per_page),
            repository=True,
        ),
    ]


def _summarize_args(args: dict[str, Any]) -> dict[str, Any]:
    """Keep the usage log small: long strings are cut."""
    return {k: (v[:200] + "…" if isinstance(v, str) and len(v) > 200 else v) for k, v in args.items()}


class ToolRegistry:
    """Name → handler map for one session.

    Args:
        session: The session whose active document the tools edit.
        repository: Repository handlers; ``None`` leaves the repository tools unregistered.
        repo_link: Repository used when a repository tool is called without ``repo_link``.
    """

    def __init__(
        self,
        session: DocumentSession,
        repository: RepositoryTools | None = None,
        repo_link: str = "",
    ) -> None:
        self.session = session
        specs = _document_specs(DocumentEditor(session)) + _summary_specs(SummaryEditor(session))
        if repository is not None:
            specs += _repository_specs(repository, repo_link)
        self._specs: dict[str, ToolSpec] = {spec.name: spec for spec in specs}

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def available_tools(self) -> list[str]:
        return sorted(self._specs)

    def specs(self, include_repository: bool = True) -> list[ToolSpec]:
        return [
            spec for name, spec in sorted(self._specs.items())
            if include_repository or not spec.repository
        ]

    def tool_specs(self, include_repository: bool = True) -> list[dict[str, Any]]:
        return [
            {"name": s.name, "description": s.description, "parameters": s.parameters()}
            for s in self.specs(include_repository)
        ]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _lookup(self, name: str) -> ToolSpec:
        spec = self._specs.get(name)
        if spec is None:
            raise ToolDispatchError(
                f"Unknown tool: {name!r}. Available tools: {', '.join(self.available_tools())}"
            )
        return spec

    def execute_tool(self, name: str, args: dict[str, Any] | None = None) -> ToolResult:
        """Run *name* with *args*; always returns a ToolResult."""
        args = args if args is not None else {}
        emit_tool_call(name, repr(args))
        result = self._dispatch(name, args)
        logger.info("%s | success=%s | %s", name, result.success, result.message)

        record_tool_usage(ToolUsageEntry(
            tool=name,
            document_id=self.session.document_id,
            args=_summarize_args(args) if isinstance(args, dict) else {},
            success=result.success,
            operation=result.operation,
            summary=result.message,
        ))
        emit_tool_result(name, result.success, result.message)
        return result

    def _dispatch(self, name: str, args: Any) -> ToolResult:
        try:
            spec = self._lookup(name)
        except ToolDispatchError as exc:
            return ToolResult.fail(name, str(exc))

        if not isinstance(args, dict):
            return ToolResult.fail(name, "Tool arguments must be a JSON object")

        try:
            params = spec.args_schema.model_validate(args)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'args'}: {err['msg']}" for err in exc.errors()
            )
            return ToolResult.fail(name, f"Invalid arguments for {name}: {problems}")

        try:
            return spec.handler(params)
        except DocwrightError as exc:
            return ToolResult.fail(name, str(exc))
        except (DocumentStoreError, ForgeError) as exc:
            logger.warning("%s | backend error: %s", name, exc)
            return ToolResult.fail(name, str(exc))
        except Exception as exc:
            logger.exception("%s | handler raised", name)
            return ToolResult.fail(name, f"{name} failed: {type(exc).__name__}: {exc}")


class DocumentToolService:
    """Stateful facade used by the HTTP API: one session, one registry.

    ``set_current_document`` rebinds the session; ``execute_tool`` and
    ``available_tools`` delegate to the registry.
    """

    def __init__(
        self,
        store: DocumentStore | None,
        repository: RepositoryTools | None = None,
        session_id: str = "default",
    ) -> None:
        self.session = DocumentSession(store, session_id=session_id)
        self.registry = ToolRegistry(self.session, repository)

    def set_current_document(self, document_id: str) -> dict[str, str]:
        return self.session.bind(document_id)

    def execute_tool(self, name: str, args: dict[str, Any] | None = None) -> ToolResult:
        return self.registry.execute_tool(name, args)

    def available_tools(self) -> list[str]:
        return self.registry.available_tools()

    def usage_log(self) -> list[ToolUsageEntry]:
        return get_tool_usage_log()
