"""Argument models for every tool, keyed by tool name.

These are validated at the dispatch boundary; handlers only ever see a
validated instance.  Ranges travel as ``{"position": {"from": a, "to": b}}``.
Every tool also accepts an optional free-text ``reason`` that ends up in
the usage log.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, model_validator


class ToolArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    reason: str = Field("", description="Why the tool is being called")


class NoArgs(ToolArgs):
    pass


class DocumentRef(ToolArgs):
    document_id: str = Field("", description="Document id; defaults to the active document")


class ContentArgs(ToolArgs):
    content: str = Field(description="Markup or markdown to write")


class QueryArgs(ToolArgs):
    query: str = Field(description="Case-insensitive text to find")


class InsertArgs(ToolArgs):
    position: StrictInt = Field(description="Character offset, 0..length")
    content: str = Field(description="Markup or markdown to insert")


class InsertAtLocationArgs(ToolArgs):
    target: str = Field(description="Exact existing text to anchor on (first occurrence)")
    position: Literal["before", "after"] = Field(description="'before' or 'after' the target")
    content: str = Field(description="Markup or markdown to insert")


class Span(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: StrictInt = Field(alias="from")
    end: StrictInt = Field(alias="to")


class RangeArgs(ToolArgs):
    position: Span = Field(description="Character range {from, to}; clamped to the text")


class ReplaceArgs(RangeArgs):
    content: str = Field(description="Replacement markup or markdown")


class RemoveArgs(ToolArgs):
    position: Span | None = Field(None, description="Character range {from, to}; clamped to the text")
    target: str | None = Field(None, description="Exact text to remove instead of a range")

    @model_validator(mode="after")
    def _range_or_target(self) -> "RemoveArgs":
        if self.position is None and self.target is None:
            raise ValueError("either position {from, to} or target is required")
        return self


class RepoArgs(ToolArgs):
    repo_link: str = Field("", description="GitHub URL or owner/repo; defaults to the linked repository")
    branch: str | None = Field(None, description="Branch to read; falls back to main, master, then the default")


class RepoCommitsArgs(RepoArgs):
    page: int = Field(1, description="1-based page number")
    per_page: int = Field(30, description="Commits per page, 1..100")


TOOL_ARGS: dict[str, type[ToolArgs]] = {
    "get_document_content": DocumentRef,
    "scan_document_content": NoArgs,
    "search_document_content": QueryArgs,
    "append_document_content": ContentArgs,
    "insert_document_content": InsertArgs,
    "insert_document_content_at_location": InsertAtLocationArgs,
    "replace_document_content": ReplaceArgs,
    "remove_document_content": RemoveArgs,
    "get_document_summary": DocumentRef,
    "append_document_summary": ContentArgs,
    "insert_document_summary": InsertArgs,
    "replace_document_summary": ReplaceArgs,
    "remove_document_summary": RangeArgs,
    "search_document_summary": QueryArgs,
    "get_all_documents_metadata_within_project": DocumentRef,
    "get_repo_structure": RepoArgs,
    "get_repo_commits": RepoCommitsArgs,
}
