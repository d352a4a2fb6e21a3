"""Tests for model factory credential validation, provider routing and the provider seam."""

from types import SimpleNamespace

import pytest


def _settings(**overrides):
    values = {
        "agent_model": "gpt-4o-mini",
        "agent_temperature": 0.3,
        "agent_max_output_tokens": 2048,
        "openai_api_key": "openai-test-key",
        "anthropic_api_key": "anthropic-test-key",
        "ollama_base_url": "http://localhost:11434",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _request(text: str = "hi"):
    from app.agents.models import GenerationRequest
    from app.core.state import ChatTurn

    return GenerationRequest(
        model="gpt-4o-mini",
        contents=[ChatTurn(role="user", text=text)],
        system_instruction="be brief",
    )


# ---------------------------------------------------------------------------
# get_llm routing
# ---------------------------------------------------------------------------


def test_openai_model_uses_openai_factory(monkeypatch):
    from app.agents import models
    monkeypatch.setattr(models, "get_settings", lambda: _settings(agent_model="gpt-4o"))
    monkeypatch.setattr(models, "_make_openai", lambda *args, **kwargs: "ok-openai")
    assert models.get_llm() == "ok-openai"


def test_anthropic_model_uses_anthropic_factory(monkeypatch):
    from app.agents import models
    monkeypatch.setattr(models, "get_settings", lambda: _settings(agent_model="claude-sonnet-4-5"))
    monkeypatch.setattr(models, "_make_anthropic", lambda *args, **kwargs: "ok-anthropic")
    assert models.get_llm() == "ok-anthropic"


def test_ollama_model_uses_ollama_factory(monkeypatch):
    from app.agents import models
    monkeypatch.setattr(models, "get_settings", lambda: _settings(agent_model="ollama:llama3.1:70b"))
    monkeypatch.setattr(models, "_make_ollama", lambda *args, **kwargs: "ok-ollama")
    assert models.get_llm() == "ok-ollama"


def test_explicit_model_overrides_setting(monkeypatch):
    from app.agents import models
    calls = []
    monkeypatch.setattr(models, "get_settings", lambda: _settings(agent_model="gpt-4o"))
    monkeypatch.setattr(models, "_make_anthropic", lambda *args: calls.append(args) or "anthropic")
    assert models.get_llm("claude-haiku-4-5", temperature=0.0, max_tokens=99) == "anthropic"
    assert calls == [("claude-haiku-4-5", "anthropic-test-key", 0.0, 99)]


def test_missing_openai_key_has_clear_message(monkeypatch):
    from app.agents import models
    monkeypatch.setattr(models, "get_settings", lambda: _settings(openai_api_key=""))
    with pytest.raises(ValueError) as exc:
        models.get_llm()
    msg = str(exc.value)
    assert "OPENAI_API_KEY" in msg
    assert "gpt-4o-mini" in msg


def test_anthropic_model_missing_key_has_clear_message(monkeypatch):
    from app.agents import models
    monkeypatch.setattr(models, "get_settings", lambda: _settings(
        agent_model="claude-sonnet-4-20250514",
        anthropic_api_key="  ",
    ))
    with pytest.raises(ValueError) as exc:
        models.get_llm()
    assert "ANTHROPIC_API_KEY" in str(exc.value)


def test_ollama_does_not_require_any_api_key(monkeypatch):
    from app.agents import models
    monkeypatch.setattr(models, "get_settings", lambda: _settings(
        agent_model="ollama:llama3.1",
        openai_api_key="",
        anthropic_api_key="",
    ))
    monkeypatch.setattr(models, "_make_ollama", lambda *args, **kwargs: "ollama")
    assert models.get_llm() == "ollama"


@pytest.mark.parametrize("name,provider", [
    ("ollama:llama3.1", "ollama"),
    ("OLLAMA:qwen", "ollama"),
    ("claude-opus-4-5", "anthropic"),
    ("gpt-4o", "openai"),
    ("o3-mini", "openai"),
])
def test_provider_for_model(name, provider):
    from app.agents.models import provider_for_model
    assert provider_for_model(name) == provider


def test_strip_ollama_prefix():
    from app.agents.models import _strip_ollama_prefix
    assert _strip_ollama_prefix("ollama:llama3.1:70b") == "llama3.1:70b"


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class TestLoadSystemPrompt:
    def test_document_agent_prompt(self):
        from app.agents.models import load_system_prompt
        text = load_system_prompt("document_agent")
        assert "$tool_descriptions" in text
        assert '"stage"' in text

    def test_unknown_prompt(self):
        from app.agents.models import load_system_prompt
        with pytest.raises(FileNotFoundError):
            load_system_prompt("nope")


# ---------------------------------------------------------------------------
# Provider seam
# ---------------------------------------------------------------------------


class TestToMessages:
    def test_roles_mapped(self):
        from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

        from app.agents.models import GenerationRequest, to_messages
        from app.core.state import ChatTurn

        request = GenerationRequest(
            model="m",
            system_instruction="sys",
            contents=[ChatTurn(role="user", text="a"), ChatTurn(role="model", text="b")],
        )
        messages = to_messages(request)
        assert [type(m) for m in messages] == [SystemMessage, HumanMessage, AIMessage]
        assert messages[2].content == "b"


class TestExtractTokenUsage:
    def test_usage_metadata(self):
        from app.agents.models import extract_token_usage
        response = SimpleNamespace(usage_metadata={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15})
        assert extract_token_usage(response) == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}

    def test_response_metadata(self):
        from app.agents.models import extract_token_usage
        response = SimpleNamespace(
            usage_metadata=None,
            response_metadata={"token_usage": {"prompt_tokens": 3, "completion_tokens": 4}},
        )
        assert extract_token_usage(response)["total_tokens"] == 7

    def test_nothing_available(self):
        from app.agents.models import extract_token_usage
        assert extract_token_usage(object())["total_tokens"] == 0


class TestChatModelProvider:
    def test_plain_text_reply(self):
        from langchain_core.language_models.fake_chat_models import FakeListChatModel

        from app.agents.models import ChatModelProvider
        llm = FakeListChatModel(responses=['{"stage":"planning","content":"plan"}'])
        result = ChatModelProvider(llm=llm).generate(_request())
        assert result.text == '{"stage":"planning","content":"plan"}'
        assert result.parsed is None

    def test_content_blocks_joined(self):
        from langchain_core.messages import AIMessage

        from app.agents.models import ChatModelProvider
        llm = SimpleNamespace(invoke=lambda messages: AIMessage(content=[
            {"type": "text", "text": '{"stage":'},
            {"type": "text", "text": '"summary","content":"ok"}'},
        ]))
        assert ChatModelProvider(llm=llm).generate(_request()).text == '{"stage":"summary","content":"ok"}'

    def test_structured_output(self):
        from langchain_core.messages import AIMessage

        from app.agents.models import ChatModelProvider, StagePayload
        from app.core.state import AgentStage

        bound = SimpleNamespace(invoke=lambda messages: {
            "raw": AIMessage(content=""),
            "parsed": StagePayload(stage=AgentStage.SUMMARY, content="done"),
            "parsing_error": None,
        })
        llm = SimpleNamespace(with_structured_output=lambda schema, include_raw: bound)
        result = ChatModelProvider(llm=llm, structured=True).generate(_request())
        assert result.parsed == {"stage": "summary", "content": "done"}

    def test_failure_becomes_transient_error(self):
        from app.agents.models import ChatModelProvider
        from app.core.errors import TransientProviderError

        def boom(messages):
            err = RuntimeError("rate limited")
            err.status_code = 429
            raise err

        with pytest.raises(TransientProviderError) as exc_info:
            ChatModelProvider(llm=SimpleNamespace(invoke=boom)).generate(_request())
        assert exc_info.value.status_code == 429

    def test_models_cached_per_configuration(self, monkeypatch):
        from langchain_core.language_models.fake_chat_models import FakeListChatModel

        from app.agents import models
        built = []

        def fake_get_llm(model, temperature, max_tokens):
            built.append(model)
            return FakeListChatModel(responses=["x"])

        monkeypatch.setattr(models, "get_llm", fake_get_llm)
        provider = models.ChatModelProvider()
        provider.generate(_request())
        provider.generate(_request())
        assert built == ["gpt-4o-mini"]
