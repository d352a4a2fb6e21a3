"""System instruction assembly and the fixed messages the agent loop sends."""

from __future__ import annotations

import json
from string import Template
from typing import TYPE_CHECKING, Any

from app.agents.models import load_system_prompt

if TYPE_CHECKING:
    from app.tools.registry import ToolSpec

INVALID_JSON_MESSAGE = (
    "ERROR: Your response was not valid JSON. Please respond with ONLY valid JSON "
    'in the format: {"stage":"...","content":...}'
)
INVALID_TOOL_MESSAGE = (
    'ERROR: Invalid tool specification. A toolUsed stage must look like '
    '{"stage":"toolUsed","content":{"tool":"<tool name>","args":{...}}}.'
)
CONTINUE_MESSAGE = "Continue to the next stage."
PROCEED_MESSAGE = "Proceed with the toolUsed stage for the action you announced."
TOOL_RESULT_PREFIX = "TOOL RESULT: "


def _param_type(schema: dict[str, Any]) -> str:
    if "type" in schema:
        return str(schema["type"])
    if "enum" in schema:
        return "|".join(json.dumps(v) for v in schema["enum"])
    if "anyOf" in schema:
        return "|".join(_param_type(s) for s in schema["anyOf"] if s.get("type") != "null") or "any"
    return "object"


def describe_tool(spec: "ToolSpec") -> str:
    """``• name(param*: type - description, ...) - description``"""
    schema = spec.parameters()
    required = set(schema.get("required", []))
    params = ", ".join(
        f"{name}{'*' if name in required else ''}: {_param_type(prop)} - {prop.get('description', '')}".rstrip(" -")
        for name, prop in schema.get("properties", {}).items()
        if name != "reason"
    )
    return f"• {spec.name}({params}) - {spec.description}"


def build_system_instruction(
    specs: list["ToolSpec"],
    document_name: str,
    document_length: int,
    repo_link: str = "",
) -> str:
    repository_section = ""
    if repo_link:
        repository_section = Template(load_system_prompt("repository_section")).substitute(repo_link=repo_link)
    return Template(load_system_prompt("document_agent")).substitute(
        document_name=document_name or "untitled",
        document_length=document_length,
        repository_section=repository_section,
        tool_descriptions="\n".join(describe_tool(spec) for spec in specs),
    )


def tool_result_message(payload: dict[str, Any]) -> str:
    return TOOL_RESULT_PREFIX + json.dumps(payload, ensure_ascii=False, default=str)
