"""Tests for the event bus and the bounded tool usage log."""

import pytest

from app.core import events
from app.core.events import (
    AgentEvent,
    EventCategory,
    clear_listeners,
    clear_tool_usage_log,
    emit,
    emit_stage,
    get_history,
    get_tool_usage_log,
    record_tool_usage,
    subscribe_sync,
)
from app.core.state import ToolUsageEntry


@pytest.fixture(autouse=True)
def _reset():
    clear_listeners()
    clear_tool_usage_log()
    yield
    clear_listeners()
    clear_tool_usage_log()


def test_sync_listener_receives_events():
    received = []
    subscribe_sync(received.append)
    emit(AgentEvent(category=EventCategory.STATUS, source="test", title="hello"))
    assert [e.title for e in received] == ["hello"]


def test_listener_errors_do_not_propagate():
    def broken(event):
        raise RuntimeError("listener bug")

    seen = []
    subscribe_sync(broken)
    subscribe_sync(seen.append)
    emit(AgentEvent(category=EventCategory.STATUS, source="test", title="still delivered"))
    assert len(seen) == 1


def test_history_as_dicts():
    emit_stage("planning", "Read first", session_id="s1")
    last = get_history(1)[0]
    assert last["category"] == "stage"
    assert last["metadata"] == {"stage": "planning", "session_id": "s1"}
    assert "ts" in last


def test_stage_detail_for_dict_content():
    emit_stage("toolUsed", {"tool": "scan_document_content", "args": {}})
    assert "scan_document_content" in get_history(1)[0]["detail"]


def test_usage_entry_emits_event():
    received = []
    subscribe_sync(received.append)
    record_tool_usage(ToolUsageEntry(tool="append_document_content", summary="Appended 3 characters"))
    assert received[0].category == EventCategory.TOOL_USAGE
    assert received[0].metadata["tool"] == "append_document_content"


def test_usage_log_keeps_most_recent(monkeypatch):
    from app.core.config import Settings

    monkeypatch.setattr(events, "get_settings", lambda: Settings(_env_file=None, tool_usage_log_size=2))
    for name in ("a", "b", "c"):
        record_tool_usage(ToolUsageEntry(tool=name))
    assert [e.tool for e in get_tool_usage_log()] == ["b", "c"]


def test_clear_usage_log():
    record_tool_usage(ToolUsageEntry(tool="a"))
    clear_tool_usage_log()
    assert get_tool_usage_log() == []
