"""Tests for the FastAPI web server endpoints."""

import json

import pytest

from app.agents.models import GenerationResult
from app.core.config import Settings
from app.core.events import clear_listeners, clear_tool_usage_log
from app.core.orchestrator import AgentOrchestrator
from app.tools.registry import DocumentToolService
from infra.document_store import DocumentRecord, InMemoryDocumentStore


class _OneShotProvider:
    def __init__(self, *texts):
        self.texts = list(texts)

    def generate(self, request):
        return GenerationResult(text=self.texts.pop(0))


@pytest.fixture
def store():
    return InMemoryDocumentStore([
        DocumentRecord(id="doc-1", name="Greeting", content="Hello world", project_id="p"),
    ])


@pytest.fixture
def client(store, monkeypatch):
    """Test client wired to an in-memory store and a scripted provider."""
    from fastapi.testclient import TestClient

    from app.web import server

    provider = _OneShotProvider(
        json.dumps({"stage": "planning", "content": "Append a mark"}),
        json.dumps({"stage": "toolUsed", "content": {"tool": "append_document_content", "args": {"content": "!"}}}),
        json.dumps({"stage": "summary", "content": "Appended"}),
    )
    monkeypatch.setattr(server, "_service", DocumentToolService(store))
    monkeypatch.setattr(
        server, "_orchestrator",
        AgentOrchestrator(store, provider, settings=Settings(_env_file=None)),
    )
    clear_tool_usage_log()
    with TestClient(server.app) as c:
        yield c
    clear_listeners()
    clear_tool_usage_log()


class TestHealthAndTools:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "tools": 15}

    def test_list_tools(self, client):
        tools = client.get("/api/tools").json()["tools"]
        assert "insert_document_content" in tools
        assert tools == sorted(tools)

    def test_list_tools_detail(self, client):
        tools = client.get("/api/tools?detail=true").json()["tools"]
        scan = next(t for t in tools if t["name"] == "scan_document_content")
        assert scan["description"]
        assert "properties" in scan["parameters"]


class TestCurrentDocument:
    def test_bind(self, client):
        resp = client.post("/api/documents/current", json={"document_id": "doc-1"})
        assert resp.status_code == 200
        assert resp.json() == {"document_id": "doc-1", "content": "Hello world", "document_name": "Greeting"}

    def test_unknown_document(self, client):
        resp = client.post("/api/documents/current", json={"document_id": "nope"})
        assert resp.status_code == 404
        assert "nope" in resp.json()["error"]

    def test_clear(self, client):
        resp = client.post("/api/documents/current", json={"document_id": ""})
        assert resp.json()["document_id"] == ""


class TestToolExecution:
    def test_execute_against_bound_document(self, client, store):
        client.post("/api/documents/current", json={"document_id": "doc-1"})
        resp = client.post(
            "/api/tools/replace_document_content",
            json={"position": {"from": 6, "to": 11}, "content": "there"},
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["success"] is True
        assert body["data"]["after"] == {"from": 6, "to": 11}
        assert store.get("doc-1").content == "Hello there"

    def test_failure_is_structured(self, client):
        resp = client.post("/api/tools/scan_document_content", json={})
        assert resp.status_code == 200
        assert resp.json()["success"] is False

    def test_unknown_tool(self, client):
        body = client.post("/api/tools/nope", json={}).json()
        assert body["success"] is False
        assert "Unknown tool" in body["error"]

    def test_usage_log(self, client):
        client.post("/api/documents/current", json={"document_id": "doc-1"})
        client.post("/api/tools/scan_document_content", json={"reason": "look"})
        entries = client.get("/api/tools/usage").json()["entries"]
        assert [e["tool"] for e in entries] == ["scan_document_content"]
        assert entries[0]["args"] == {"reason": "look"}

        assert client.delete("/api/tools/usage").json() == {"status": "cleared"}
        assert client.get("/api/tools/usage").json()["entries"] == []


class TestAgentStream:
    def test_streams_stages_as_ndjson(self, client, store):
        resp = client.post("/api/agent/stream", json={"prompt": "Add emphasis", "document_id": "doc-1"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/x-ndjson")
        stages = [json.loads(line) for line in resp.text.splitlines() if line]
        assert [s["stage"] for s in stages] == ["planning", "toolUsed", "toolResult", "summary"]
        assert stages[2]["content"]["success"] is True
        assert store.get("doc-1").content == "Hello world!"

    def test_unknown_document_streams_error(self, client):
        resp = client.post("/api/agent/stream", json={"prompt": "x", "document_id": "missing"})
        stages = [json.loads(line) for line in resp.text.splitlines() if line]
        assert [s["stage"] for s in stages] == ["error"]


class TestEventsEndpoint:
    def test_events_returns_list(self, client):
        client.post("/api/documents/current", json={"document_id": "doc-1"})
        events = client.get("/api/events?limit=5").json()["events"]
        assert isinstance(events, list)
        assert len(events) <= 5
        assert any(e["category"] == "document_bound" for e in events)
