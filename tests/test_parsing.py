"""Tests for stage parsing and system instruction assembly."""

import json

import pytest

from app.agents.parsing import StageParseError, extract_json_object, parse_reply, turn_from_payload
from app.core.state import AgentStage


class TestExtractJsonObject:
    def test_plain_object(self):
        assert extract_json_object('{"stage":"planning","content":"x"}') == {"stage": "planning", "content": "x"}

    def test_wrapped_in_prose_and_fences(self):
        text = 'Sure!\n```json\n{"stage": "reasoning", "content": "look first"}\n```\nDone.'
        assert extract_json_object(text)["stage"] == "reasoning"

    def test_prefers_object_with_stage(self):
        text = '{"note": 1} then {"stage": "summary", "content": "ok"}'
        assert extract_json_object(text)["stage"] == "summary"

    def test_falls_back_to_first_object(self):
        assert extract_json_object('x {"a": 1} y {"b": 2}') == {"a": 1}

    def test_skips_broken_braces(self):
        assert extract_json_object('{oops {"stage": "planning", "content": "p"}')["stage"] == "planning"

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{not: valid}"])
    def test_nothing_found(self, text):
        assert extract_json_object(text) is None


class TestTurnFromPayload:
    def test_text_stage(self):
        turn = turn_from_payload({"stage": "planning", "content": "Read then edit"})
        assert turn.stage == AgentStage.PLANNING
        assert turn.content == "Read then edit"

    def test_tool_used(self):
        turn = turn_from_payload({"stage": "toolUsed", "content": {"tool": "scan_document_content", "args": {}}})
        assert turn.tool_call.name == "scan_document_content"

    def test_tool_used_with_text_content_kept_as_malformed(self):
        turn = turn_from_payload({"stage": "toolUsed", "content": "scan it"})
        assert turn.stage == AgentStage.TOOL_USED
        assert turn.tool_call is None
        assert turn.content["raw"] == "scan it"

    def test_unknown_stage(self):
        with pytest.raises(StageParseError, match="unknown stage"):
            turn_from_payload({"stage": "thinking", "content": "hmm"})

    @pytest.mark.parametrize("content", [None, "", "   ", {}])
    def test_missing_content(self, content):
        with pytest.raises(StageParseError):
            turn_from_payload({"stage": "summary", "content": content})

    def test_not_an_object(self):
        with pytest.raises(StageParseError):
            turn_from_payload(["planning"])


class TestParseReply:
    def test_prefers_structured_payload(self):
        turn = parse_reply("garbage", {"stage": "summary", "content": "done"})
        assert turn.stage == AgentStage.SUMMARY

    def test_scans_text(self):
        assert parse_reply('ok: {"stage":"executing","content":"inserting"}').stage == AgentStage.EXECUTING

    def test_no_json(self):
        with pytest.raises(StageParseError):
            parse_reply("I will now edit the document.")


class TestSystemInstruction:
    def _specs(self, with_repository: bool = False):
        from app.core.session import DocumentSession
        from app.tools.registry import ToolRegistry
        from app.tools.repository import RepositoryTools
        from infra.document_store import InMemoryDocumentStore

        repository = RepositoryTools(client=object()) if with_repository else None
        return ToolRegistry(DocumentSession(InMemoryDocumentStore()), repository).specs()

    def test_describe_tool(self):
        from app.agents.instructions import describe_tool

        spec = next(s for s in self._specs() if s.name == "insert_document_content")
        assert describe_tool(spec) == (
            "• insert_document_content(position*: integer - Character offset, 0..length, "
            "content*: string - Markup or markdown to insert) - Insert content at an exact character offset."
        )

    def test_describe_tool_without_params(self):
        from app.agents.instructions import describe_tool

        spec = next(s for s in self._specs() if s.name == "scan_document_content")
        assert describe_tool(spec).startswith("• scan_document_content() - ")

    def test_document_details_and_tools(self):
        from app.agents.instructions import build_system_instruction

        text = build_system_instruction(self._specs(), "Roadmap", 1234)
        assert '"Roadmap" (1234 characters)' in text
        assert "• append_document_content(" in text
        assert "get_repo_structure" not in text
        assert "$" not in text

    def test_repository_section(self):
        from app.agents.instructions import build_system_instruction

        text = build_system_instruction(self._specs(True), "Roadmap", 0, repo_link="https://github.com/octo/repo")
        assert "https://github.com/octo/repo" in text
        assert "• get_repo_commits(" in text

    def test_untitled_document(self):
        from app.agents.instructions import build_system_instruction

        assert '"untitled"' in build_system_instruction([], "", 0)

    def test_tool_result_message(self):
        from app.agents.instructions import tool_result_message

        message = tool_result_message({"success": True, "operation": "scan_document_content"})
        assert message.startswith("TOOL RESULT: ")
        assert json.loads(message[len("TOOL RESULT: "):])["success"] is True
