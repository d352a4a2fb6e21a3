"""Turning raw model replies into agent stages.

Models wrap their JSON in prose or code fences often enough that the reply
is scanned for the first well-formed JSON object instead of parsed whole.
"""

from __future__ import annotations

import json
from typing import Any

from app.core.state import AgentStage, AgentTurn

_decoder = json.JSONDecoder()

_STAGE_VALUES = {stage.value for stage in AgentStage}


class StageParseError(ValueError):
    """The reply did not contain a usable ``{"stage", "content"}`` object."""


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Return the first JSON object in *text* that carries a ``stage`` key.

    Falls back to the first object of any shape, or ``None`` if there is none.
    """
    if not text:
        return None
    first: dict[str, Any] | None = None
    start = text.find("{")
    while start != -1:
        try:
            value, end = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            if "stage" in value:
                return value
            if first is None:
                first = value
        start = text.find("{", end)
    return first


def turn_from_payload(payload: Any) -> AgentTurn:
    """Validate a decoded stage object.

    A ``toolUsed`` stage with a missing or malformed ``{tool, args}`` body is
    still returned; the caller answers it with a failed tool result.
    """
    if not isinstance(payload, dict):
        raise StageParseError("reply is not a JSON object")

    stage = payload.get("stage")
    if stage not in _STAGE_VALUES:
        raise StageParseError(f"unknown stage {stage!r}")

    content = payload.get("content")
    if AgentStage(stage) == AgentStage.TOOL_USED:
        if not isinstance(content, dict):
            content = {"tool": None, "args": None, "raw": content}
        return AgentTurn(stage=AgentStage.TOOL_USED, content=content)

    if isinstance(content, str):
        if not content.strip():
            raise StageParseError(f"empty content for stage {stage!r}")
        return AgentTurn(stage=AgentStage(stage), content=content)
    if isinstance(content, dict) and content:
        return AgentTurn(stage=AgentStage(stage), content=content)
    raise StageParseError(f"missing content for stage {stage!r}")


def parse_reply(text: str, parsed: dict[str, Any] | None = None) -> AgentTurn:
    """Prefer a provider-validated object; fall back to scanning *text*."""
    if parsed is not None:
        return turn_from_payload(parsed)
    payload = extract_json_object(text)
    if payload is None:
        raise StageParseError("no JSON object in reply")
    return turn_from_payload(payload)
