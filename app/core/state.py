"""Shared data model for documents, tool calls and agent stages."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Iterator, Literal

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentHandle(BaseModel):
    """In-memory copy of the document a session is working on."""
    id: str
    name: str = ""
    content: str = ""
    summary: str = ""
    updated_at: datetime | None = None


class ContentRange(BaseModel):
    """Half-open character range ``[from, to)`` into a document field.

    Serialized with the wire names ``from`` / ``to``.
    """
    model_config = ConfigDict(populate_by_name=True)

    start: int = Field(alias="from")
    end: int = Field(alias="to")

    @property
    def length(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict[str, int]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Uniform tool outcome, whether the handler succeeded, refused or raised."""
    success: bool
    operation: str = ""
    message: str = ""
    data: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def ok(cls, operation: str, message: str = "", **data: Any) -> "ToolResult":
        return cls(success=True, operation=operation, message=message, data=data)

    @classmethod
    def fail(cls, operation: str, error: str) -> "ToolResult":
        return cls(success=False, operation=operation, message=error, error=error)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ToolUsageEntry(BaseModel):
    """One record in the bounded tool usage log."""
    tool: str
    timestamp: datetime = Field(default_factory=_utcnow)
    document_id: str = ""
    args: dict[str, Any] = Field(default_factory=dict)
    success: bool = True
    operation: str = ""
    summary: str = ""


class BranchResolution(BaseModel):
    """Which branch a repository call ended up using, and why."""
    branch: str
    source: Literal["requested", "main", "master", "default"]
    tried: list[str] = Field(default_factory=list)
    tree_sha: str = ""


# ---------------------------------------------------------------------------
# Agent stages
# ---------------------------------------------------------------------------


class AgentStage(StrEnum):
    PLANNING = "planning"
    REASONING = "reasoning"
    EXECUTING = "executing"
    TOOL_USED = "toolUsed"
    TOOL_RESULT = "toolResult"
    SUMMARY = "summary"
    ERROR = "error"


TERMINAL_STAGES = frozenset({AgentStage.SUMMARY, AgentStage.ERROR})


class AgentTurn(BaseModel):
    """One stage emitted by the agent loop.

    ``content`` is text for narrative stages, ``{"tool", "args"}`` for
    ``toolUsed`` and a tool result payload for ``toolResult``.
    """
    stage: AgentStage
    content: str | dict[str, Any]

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def tool_call(self) -> ToolCall | None:
        """The requested call, or ``None`` when the turn is not a well-formed toolUsed."""
        if self.stage != AgentStage.TOOL_USED or not isinstance(self.content, dict):
            return None
        name = self.content.get("tool")
        args = self.content.get("args")
        if not isinstance(name, str) or not name or not isinstance(args, dict):
            return None
        return ToolCall(name=name, args=args)

    def to_wire(self) -> dict[str, Any]:
        return {"stage": self.stage.value, "content": self.content}


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ChatTurn(BaseModel):
    role: Literal["user", "model"]
    text: str


class ConversationHistory:
    """Append-only, ordered turns for one agent session."""

    def __init__(self, turns: list[ChatTurn] | None = None) -> None:
        self._turns: list[ChatTurn] = list(turns or [])

    def append(self, role: Literal["user", "model"], text: str) -> ChatTurn:
        turn = ChatTurn(role=role, text=text)
        self._turns.append(turn)
        return turn

    @property
    def turns(self) -> tuple[ChatTurn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ChatTurn]:
        return iter(tuple(self._turns))
