"""Event bus for agent activity — decouples the agent loop from the UI layer.

The orchestrator and the tool layer call `emit(...)` to publish structured
events.  The web server subscribes via `subscribe_async()` to forward them.

Event categories:
  stage: the agent produced a stage (planning, reasoning, ...)
  tool_call: a tool is being dispatched
  tool_result: tool returned (success or structured failure)
  tool_usage: a tool usage entry was recorded in the usage log
  document_bound: a session bound (or cleared) its active document
  status: session lifecycle / progress change
  error: something went wrong

The bounded tool usage log lives here too: every tool invocation appends a
:class:`~app.core.state.ToolUsageEntry`; only the most recent
``settings.tool_usage_log_size`` entries are retained.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.state import ToolUsageEntry

logger = get_logger("core.events")

# ── Event loop reference for cross-thread delivery ───────────────────────
_loop: asyncio.AbstractEventLoop | None = None


def set_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Register the main asyncio event loop for cross-thread event delivery."""
    global _loop
    _loop = loop


class EventCategory(str, Enum):
    STAGE = "stage"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    TOOL_USAGE = "tool_usage"
    DOCUMENT_BOUND = "document_bound"
    STATUS = "status"
    ERROR = "error"


@dataclass
class AgentEvent:
    """A single event emitted during an agent session."""
    category: EventCategory
    source: str                     # e.g. "agent", "tools", "session", "system"
    title: str                      # short human-readable headline
    detail: str = ""
    metadata: dict = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "source": self.source,
            "title": self.title,
            "detail": self.detail,
            "metadata": self.metadata,
            "ts": self.timestamp,
        }


# ── Singleton event bus ──────────────────────────────────────────────────

_listeners: list[Callable[[AgentEvent], Any]] = []
_async_listeners: list[Callable[[AgentEvent], Awaitable[Any]]] = []
_history: deque[AgentEvent] = deque(maxlen=1000)


def emit(event: AgentEvent) -> None:
    """Emit an event synchronously. Safe to call from any thread."""
    _history.append(event)
    logger.debug("EVENT | %s | %s | %s", event.category.value, event.source, event.title)

    for listener in _listeners:
        try:
            listener(event)
        except Exception as e:
            logger.warning("Sync listener error: %s", e)

    # Schedule async listeners into the main event loop (thread-safe)
    if _loop is not None and not _loop.is_closed():
        for listener in _async_listeners:
            try:
                _loop.call_soon_threadsafe(asyncio.ensure_future, listener(event))
            except RuntimeError:
                logger.debug("Event loop closed, dropping async delivery of %s", event.title)
    elif _async_listeners:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, async listeners skipped for %s", event.title)
            return
        for listener in _async_listeners:
            loop.create_task(listener(event))


def subscribe_sync(listener: Callable[[AgentEvent], Any]) -> None:
    """Register a synchronous event listener."""
    _listeners.append(listener)


def subscribe_async(listener: Callable[[AgentEvent], Awaitable[Any]]) -> None:
    """Register an async event listener."""
    _async_listeners.append(listener)


def get_history(limit: int = 200) -> list[dict]:
    """Return recent events as dicts."""
    items = list(_history)
    return [e.to_dict() for e in items[-limit:]]


def clear_listeners() -> None:
    """Remove all listeners (useful for testing)."""
    _listeners.clear()
    _async_listeners.clear()


# ── Tool usage log ───────────────────────────────────────────────────────

_usage_log: deque[ToolUsageEntry] | None = None


def _usage_buffer() -> deque[ToolUsageEntry]:
    global _usage_log
    if _usage_log is None:
        _usage_log = deque(maxlen=max(1, get_settings().tool_usage_log_size))
    return _usage_log


def record_tool_usage(entry: ToolUsageEntry) -> None:
    """Append *entry* to the bounded usage log and publish it."""
    _usage_buffer().append(entry)
    logger.info("tool_usage | %s | %s", entry.tool, entry.summary)
    emit(AgentEvent(
        category=EventCategory.TOOL_USAGE,
        source="tools",
        title=f"{entry.tool}: {entry.summary}",
        metadata=entry.model_dump(mode="json"),
    ))


def get_tool_usage_log() -> list[ToolUsageEntry]:
    """Return retained usage entries, oldest first."""
    return list(_usage_buffer())


def clear_tool_usage_log() -> None:
    global _usage_log
    _usage_log = None


# ── Convenience emitters ─────────────────────────────────────────────────

def emit_stage(stage: str, content: Any, session_id: str = "") -> None:
    detail = content if isinstance(content, str) else repr(content)
    emit(AgentEvent(
        category=EventCategory.STAGE,
        source="agent",
        title=f"agent → {stage}",
        detail=detail[:1000],
        metadata={"stage": stage, "session_id": session_id},
    ))


def emit_tool_call(tool_name: str, args_summary: str = "") -> None:
    emit(AgentEvent(
        category=EventCategory.TOOL_CALL,
        source="tools",
        title=f"🔧 {tool_name}",
        detail=args_summary[:300] if args_summary else "",
        metadata={"tool": tool_name},
    ))


def emit_tool_result(tool_name: str, success: bool, message: str = "") -> None:
    icon = "📎" if success else "❌"
    emit(AgentEvent(
        category=EventCategory.TOOL_RESULT,
        source="tools",
        title=f"{icon} {tool_name} returned",
        detail=message[:1000],
        metadata={"tool": tool_name, "success": success},
    ))


def emit_document_bound(document_id: str, document_name: str = "") -> None:
    title = f"📄 Active document: {document_name or document_id}" if document_id else "📄 Active document cleared"
    emit(AgentEvent(
        category=EventCategory.DOCUMENT_BOUND,
        source="session",
        title=title,
        metadata={"document_id": document_id, "document_name": document_name},
    ))


def emit_status(source: str, message: str, **extra) -> None:
    emit(AgentEvent(
        category=EventCategory.STATUS,
        source=source,
        title=message,
        metadata=extra,
    ))


def emit_error(source: str, error: str) -> None:
    emit(AgentEvent(
        category=EventCategory.ERROR,
        source=source,
        title=f"❌ Error in {source}",
        detail=error,
    ))
