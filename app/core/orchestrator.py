"""Agent orchestrator — drives the model through the stage machine.

    planning → reasoning ⇄ executing → toolUsed → toolResult → …
                                                     ↘ summary | error

One sequential loop per session: each iteration sends the accumulated
conversation to the model, parses a single stage out of the reply, yields
it immediately and, for ``toolUsed``, dispatches the tool and yields the
``toolResult``.  Blocking work (model call, store I/O, GitHub API) runs in a
worker thread via ``asyncio.to_thread``; there is never more than one model
call in flight.

Bounds:
  - consecutive unparseable replies: ``agent_max_parse_retries``
  - tool executions: ``agent_max_tool_executions`` (ends with a "continue?" summary)
  - model calls: ``agent_max_iterations`` (same)
"""

from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Iterable

from app.agents.instructions import (
    CONTINUE_MESSAGE,
    INVALID_JSON_MESSAGE,
    INVALID_TOOL_MESSAGE,
    PROCEED_MESSAGE,
    build_system_instruction,
    tool_result_message,
)
from app.agents.models import (
    ChatModelProvider,
    GenerationConfig,
    GenerationRequest,
    LanguageModelProvider,
)
from app.agents.parsing import StageParseError, parse_reply
from app.core.config import Settings, get_settings
from app.core.errors import NotFoundError, TransientProviderError
from app.core.events import emit_error, emit_stage, emit_status
from app.core.logging import get_logger
from app.core.session import DocumentSession
from app.core.state import AgentStage, AgentTurn, ChatTurn, ConversationHistory, ToolResult
from app.tools.registry import ToolRegistry
from app.tools.repository import RepositoryTools
from infra.document_store import DocumentStore, DocumentStoreError
from infra.forge import RepositoryReader

logger = get_logger("core.orchestrator")

HistoryInput = Iterable[ChatTurn | dict]


def _coerce_history(history: HistoryInput | ConversationHistory | None) -> ConversationHistory:
    """Accept prior turns as ChatTurn objects or ``{"role", "text"|"content"}`` dicts."""
    if history is None:
        return ConversationHistory()
    turns: list[ChatTurn] = []
    for item in history:
        if isinstance(item, ChatTurn):
            turns.append(item)
            continue
        role = "model" if item.get("role") in ("model", "assistant", "ai") else "user"
        text = item.get("text", item.get("content", ""))
        if text:
            turns.append(ChatTurn(role=role, text=str(text)))
    return ConversationHistory(turns)


def continue_summary(operations: int) -> str:
    return (
        f"I've completed {operations} operations on your document. "
        "Would you like me to continue?"
    )


class AgentOrchestrator:
    """Runs agent sessions against one document store.

    Args:
        store: Persistent document store shared by all sessions.
        provider: Language-model provider; defaults to a LangChain chat model
                  chosen by ``AGENT_MODEL``.
        repository_client: GitHub reader used when a session has a repo link.
        settings: Overrides the global settings (tests).
    """

    def __init__(
        self,
        store: DocumentStore | None,
        provider: LanguageModelProvider | None = None,
        repository_client: RepositoryReader | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.provider = provider or ChatModelProvider(structured=self.settings.agent_structured_output)
        self.repository_client = repository_client

    def _request(
        self,
        conversation: ConversationHistory,
        system_instruction: str,
        tools: list[dict],
    ) -> GenerationRequest:
        return GenerationRequest(
            model=self.settings.agent_model,
            contents=list(conversation.turns),
            system_instruction=system_instruction,
            tools=tools,
            generation_config=GenerationConfig(
                temperature=self.settings.agent_temperature,
                max_output_tokens=self.settings.agent_max_output_tokens,
            ),
        )

    async def execute_with_stream(
        self,
        prompt: str,
        document_id: str,
        history: HistoryInput | ConversationHistory | None = None,
        repo_link: str | None = None,
    ) -> AsyncIterator[AgentTurn]:
        """Run one agent session, yielding every stage as soon as it exists."""
        session = DocumentSession(self.store)
        emit_status("agent", "Agent session started", session_id=session.session_id, document_id=document_id)

        def _announce(turn: AgentTurn) -> AgentTurn:
            emit_stage(turn.stage.value, turn.content, session.session_id)
            if turn.stage == AgentStage.ERROR:
                emit_error("agent", str(turn.content))
            return turn

        try:
            bound = await asyncio.to_thread(session.bind, document_id)
        except (NotFoundError, DocumentStoreError) as exc:
            logger.warning("session %s | cannot bind %r: %s", session.session_id, document_id, exc)
            yield _announce(AgentTurn(stage=AgentStage.ERROR, content=f"Cannot open document: {exc}"))
            return

        repository = None
        if repo_link and self.repository_client is not None:
            repository = RepositoryTools(self.repository_client)
        registry = ToolRegistry(session, repository, repo_link or "")
        tool_specs = registry.tool_specs(include_repository=repository is not None)
        system_instruction = build_system_instruction(
            registry.specs(include_repository=repository is not None),
            document_name=bound["document_name"],
            document_length=len(bound["content"]),
            repo_link=(repo_link or "") if repository is not None else "",
        )

        conversation = _coerce_history(history)
        conversation.append("user", prompt)

        settings = self.settings
        parse_failures = 0
        tool_runs = 0
        model_calls = 0

        while True:
            if model_calls >= settings.agent_max_iterations:
                logger.info("session %s | iteration ceiling reached", session.session_id)
                yield _announce(AgentTurn(stage=AgentStage.SUMMARY, content=continue_summary(tool_runs)))
                return
            model_calls += 1

            request = self._request(conversation, system_instruction, tool_specs)
            try:
                result = await asyncio.to_thread(self.provider.generate, request)
            except TransientProviderError as exc:
                logger.error("session %s | provider failure: %s", session.session_id, exc)
                yield _announce(AgentTurn(stage=AgentStage.ERROR, content=f"Model request failed: {exc}"))
                return

            try:
                turn = parse_reply(result.text, result.parsed)
            except StageParseError as exc:
                parse_failures += 1
                logger.warning(
                    "session %s | unparseable reply (%d/%d): %s",
                    session.session_id, parse_failures, settings.agent_max_parse_retries, exc,
                )
                conversation.append("model", result.text or "(empty reply)")
                if parse_failures >= settings.agent_max_parse_retries:
                    yield _announce(AgentTurn(
                        stage=AgentStage.ERROR,
                        content=f"The model did not return a valid response after {parse_failures} attempts.",
                    ))
                    return
                conversation.append("user", INVALID_JSON_MESSAGE)
                continue

            parse_failures = 0
            conversation.append(
                "model",
                result.text if result.parsed is None else json.dumps(turn.to_wire(), ensure_ascii=False),
            )
            yield _announce(turn)

            if turn.is_terminal:
                emit_status("agent", "Agent session finished", session_id=session.session_id, stage=turn.stage.value)
                return

            if turn.stage == AgentStage.TOOL_USED:
                call = turn.tool_call
                if call is None:
                    payload = ToolResult.fail("toolUsed", "Invalid tool specification").to_payload()
                    follow_up = tool_result_message(payload) + "\n" + INVALID_TOOL_MESSAGE
                else:
                    tool_result = await asyncio.to_thread(registry.execute_tool, call.name, call.args)
                    tool_runs += 1
                    payload = {"tool": call.name, **tool_result.to_payload()}
                    follow_up = tool_result_message(payload)
                conversation.append("user", follow_up)
                yield _announce(AgentTurn(stage=AgentStage.TOOL_RESULT, content=payload))

                if tool_runs >= settings.agent_max_tool_executions:
                    logger.info("session %s | tool execution ceiling reached", session.session_id)
                    yield _announce(AgentTurn(stage=AgentStage.SUMMARY, content=continue_summary(tool_runs)))
                    return
            elif turn.stage == AgentStage.EXECUTING:
                conversation.append("user", PROCEED_MESSAGE)
            else:
                conversation.append("user", CONTINUE_MESSAGE)