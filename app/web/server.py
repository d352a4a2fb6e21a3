"""FastAPI web server — tool dispatch, agent streaming and the event feed.

Stateless tool calls (``/api/tools/*``, ``/api/documents/current``) share one
default :class:`~app.tools.registry.DocumentToolService`.  Every agent stream
gets its own session inside the orchestrator.  Events from the bus are
forwarded to WebSocket clients in real time.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.errors import DocumentNotFoundError, StoreNotInitializedError
from app.core.events import AgentEvent, clear_tool_usage_log, get_history, set_event_loop, subscribe_async
from app.core.logging import get_logger
from app.core.orchestrator import AgentOrchestrator
from app.tools.registry import DocumentToolService
from app.tools.repository import RepositoryTools
from infra.document_store import DocumentStoreError, get_document_store
from infra.github_client import get_github_client

logger = get_logger("web.server")

# ── In-memory state ───────────────────────────────────────────────────────
_service: DocumentToolService | None = None
_orchestrator: AgentOrchestrator | None = None
_ws_clients: set[WebSocket] = set()


def get_service() -> DocumentToolService:
    global _service
    if _service is None:
        _service = DocumentToolService(get_document_store(), RepositoryTools(get_github_client()))
    return _service


def get_orchestrator() -> AgentOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = AgentOrchestrator(
            get_document_store(),
            repository_client=get_github_client(),
            settings=get_settings(),
        )
    return _orchestrator


# ── Models ────────────────────────────────────────────────────────────────

class CurrentDocumentRequest(BaseModel):
    document_id: str = ""


class HistoryItem(BaseModel):
    role: str
    text: str = ""
    content: str = ""


class AgentRequest(BaseModel):
    prompt: str
    document_id: str
    history: list[HistoryItem] = Field(default_factory=list)
    repo_link: str | None = None


# ── WebSocket broadcast (wired to event bus) ─────────────────────────────

async def _broadcast_event(event: AgentEvent) -> None:
    """Forward an event to all connected WebSocket clients."""
    if not _ws_clients:
        return
    message = json.dumps({"type": "event", "data": event.to_dict()}, default=str)
    disconnected: set[WebSocket] = set()
    for ws in tuple(_ws_clients):
        try:
            await ws.send_text(message)
        except Exception as exc:
            logger.warning("WS send failed | %s | %s", event.title, exc)
            disconnected.add(ws)
    if disconnected:
        _ws_clients.difference_update(disconnected)


# ── Lifespan ──────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Register main event loop for cross-thread event delivery
    set_event_loop(asyncio.get_running_loop())
    subscribe_async(_broadcast_event)
    logger.info("Web server started, event bus wired")
    yield
    logger.info("Lifespan cleanup complete")


app = FastAPI(title="docwright", version="0.1.0", lifespan=lifespan)


# ── API Endpoints ─────────────────────────────────────────────────────────

@app.get("/api/health")
async def health():
    return {"status": "ok", "tools": len(get_service().available_tools())}


@app.get("/api/tools")
async def list_tools(detail: bool = False):
    service = get_service()
    if detail:
        return {"tools": service.registry.tool_specs()}
    return {"tools": service.available_tools()}


@app.get("/api/tools/usage")
async def get_usage(limit: int = 50):
    entries = get_service().usage_log()[-limit:] if limit > 0 else []
    return {"entries": [e.model_dump(mode="json") for e in entries]}


@app.delete("/api/tools/usage")
async def clear_usage():
    clear_tool_usage_log()
    return {"status": "cleared"}


@app.post("/api/tools/{name}")
async def execute_tool(name: str, args: dict[str, Any] = Body(default_factory=dict)):
    """Run one tool against the default session's active document."""
    result = await asyncio.to_thread(get_service().execute_tool, name, args)
    return result.to_payload()


@app.post("/api/documents/current")
async def set_current_document(req: CurrentDocumentRequest):
    try:
        return await asyncio.to_thread(get_service().set_current_document, req.document_id)
    except DocumentNotFoundError as exc:
        return JSONResponse(status_code=404, content={"error": str(exc)})
    except StoreNotInitializedError as exc:
        return JSONResponse(status_code=503, content={"error": str(exc)})
    except DocumentStoreError as exc:
        return JSONResponse(status_code=502, content={"error": str(exc)})


@app.post("/api/agent/stream")
async def agent_stream(req: AgentRequest):
    """Stream agent stages as newline-delimited JSON."""
    orchestrator = get_orchestrator()
    history = [{"role": h.role, "text": h.text or h.content} for h in req.history]

    async def _lines():
        async for turn in orchestrator.execute_with_stream(
            req.prompt, req.document_id, history, req.repo_link
        ):
            yield json.dumps(turn.to_wire(), ensure_ascii=False, default=str) + "\n"

    return StreamingResponse(_lines(), media_type="application/x-ndjson")


@app.get("/api/events")
async def get_events(limit: int = 200):
    """Return recent agent events."""
    return {"events": get_history(limit)}


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    _ws_clients.add(ws)
    logger.info("WebSocket client connected (%d total)", len(_ws_clients))
    try:
        for evt in get_history(50):
            await ws.send_text(json.dumps({"type": "event", "data": evt}, default=str))
        while True:
            # Clients only listen; incoming frames keep the connection alive
            await ws.receive_text()
    except WebSocketDisconnect:
        _ws_clients.discard(ws)
        logger.info("WebSocket client disconnected (%d remaining)", len(_ws_clients))
