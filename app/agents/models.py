"""LLM model configuration, factory and the provider seam used by the agent loop.

Provider routing is done via model name prefix:
  - "ollama:<model>"  → local Ollama  (e.g. "ollama:llama3.1:70b")
  - "claude-*"        → Anthropic API
  - anything else     → OpenAI API   (e.g. "gpt-4o", "gpt-4o-mini")

Set AGENT_MODEL in .env to choose freely.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.errors import TransientProviderError
from app.core.logging import get_logger
from app.core.state import AgentStage, ChatTurn

logger = get_logger("agents.models")

PROMPTS_DIR = Path(__file__).parent / "prompts"


# ---------------------------------------------------------------------------
# Provider detection
# ---------------------------------------------------------------------------

def _is_ollama_model(model_name: str) -> bool:
    """Models prefixed with 'ollama:' are served by local Ollama."""
    return model_name.lower().startswith("ollama:")


def _is_anthropic_model(model_name: str) -> bool:
    """Anthropic models contain 'claude' in their name."""
    return "claude" in model_name.lower()


def provider_for_model(model_name: str) -> str:
    """Return "ollama", "anthropic" or "openai" for *model_name*."""
    if _is_ollama_model(model_name):
        return "ollama"
    if _is_anthropic_model(model_name):
        return "anthropic"
    return "openai"


def _strip_ollama_prefix(model_name: str) -> str:
    return model_name[len("ollama:"):]


# ---------------------------------------------------------------------------
# LLM constructors
# ---------------------------------------------------------------------------

def _make_ollama(model: str, base_url: str, temperature: float, max_tokens: int) -> BaseChatModel:
    """Create a ChatOllama instance. langchain-ollama must be installed."""
    try:
        from langchain_ollama import ChatOllama  # type: ignore[import-untyped]
    except ImportError as exc:
        raise ImportError(
            "langchain-ollama is not installed. Run: pip install langchain-ollama"
        ) from exc

    bare_model = _strip_ollama_prefix(model)
    logger.info("Using Ollama model '%s' at %s", bare_model, base_url)
    return ChatOllama(model=bare_model, base_url=base_url, temperature=temperature, num_predict=max_tokens)


def _make_anthropic(model: str, api_key: str, temperature: float, max_tokens: int) -> BaseChatModel:
    from langchain_anthropic import ChatAnthropic

    logger.info("Using Anthropic model '%s'", model)
    return ChatAnthropic(model=model, api_key=api_key, temperature=temperature, max_tokens=max_tokens)


def _make_openai(model: str, api_key: str, temperature: float, max_tokens: int) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    logger.info("Using OpenAI model '%s'", model)
    return ChatOpenAI(model=model, api_key=api_key, temperature=temperature, max_tokens=max_tokens)


# ---------------------------------------------------------------------------
# Key validation helpers
# ---------------------------------------------------------------------------

def _normalized_secret(value: str | None) -> str:
    return (value or "").strip()


def _require_key(env_name: str, model: str, api_key: str) -> str:
    key = _normalized_secret(api_key)
    if key:
        return key
    raise ValueError(
        f"Missing {env_name} for model '{model}'. "
        f"Set {env_name} in .env or switch AGENT_MODEL to another provider."
    )


def get_llm(model: str | None = None, temperature: float | None = None, max_tokens: int | None = None) -> BaseChatModel:
    """Create a chat model for *model* (defaults to AGENT_MODEL).

    The provider is determined entirely by the model string; no provider
    is hardcoded.
    """
    settings = get_settings()
    model = model or settings.agent_model
    temperature = settings.agent_temperature if temperature is None else temperature
    max_tokens = max_tokens or settings.agent_max_output_tokens

    if _is_ollama_model(model):
        return _make_ollama(model, settings.ollama_base_url, temperature, max_tokens)

    if _is_anthropic_model(model):
        key = _require_key("ANTHROPIC_API_KEY", model, settings.anthropic_api_key)
        return _make_anthropic(model, key, temperature, max_tokens)

    key = _require_key("OPENAI_API_KEY", model, settings.openai_api_key)
    return _make_openai(model, key, temperature, max_tokens)


def load_system_prompt(name: str = "document_agent") -> str:
    """Load a prompt template from ``PROMPTS_DIR/<name>.txt``."""
    prompt_file = PROMPTS_DIR / f"{name}.txt"
    if not prompt_file.exists():
        raise FileNotFoundError(f"System prompt not found: {prompt_file}")
    return prompt_file.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Provider seam
# ---------------------------------------------------------------------------


class GenerationConfig(BaseModel):
    temperature: float = 0.3
    max_output_tokens: int = 2048


class GenerationRequest(BaseModel):
    model: str
    contents: list[ChatTurn]
    system_instruction: str = ""
    generation_config: GenerationConfig = Field(default_factory=GenerationConfig)
    tools: list[dict[str, Any]] = Field(default_factory=list)


class GenerationResult(BaseModel):
    text: str = ""
    usage: dict[str, int] = Field(default_factory=dict)
    # Stage object already validated by the provider (structured output), if any
    parsed: dict[str, Any] | None = None


class StagePayload(BaseModel):
    """Schema handed to providers that support structured output."""
    stage: AgentStage = Field(description="Current stage of the workflow")
    content: str | dict[str, Any] = Field(
        description='Text for narrative stages; {"tool": name, "args": {...}} for toolUsed'
    )


@runtime_checkable
class LanguageModelProvider(Protocol):
    """Anything that can turn a conversation into the next model reply.

    Implementations are synchronous; the orchestrator runs them in a worker
    thread.  Failures must surface as :class:`TransientProviderError`.
    """

    def generate(self, request: GenerationRequest) -> GenerationResult:
        ...


def extract_token_usage(response: object) -> dict[str, int]:
    """Extract prompt/completion/total token counts from a LangChain response.

    Anthropic and modern OpenAI integrations report ``usage_metadata``;
    older OpenAI responses carry ``response_metadata.token_usage``.
    All values default to 0 if metadata is unavailable.
    """
    meta = getattr(response, "usage_metadata", None)
    if meta and isinstance(meta, dict):
        prompt = meta.get("input_tokens", 0) or meta.get("prompt_tokens", 0)
        completion = meta.get("output_tokens", 0) or meta.get("completion_tokens", 0)
        total = meta.get("total_tokens", 0) or (prompt + completion)
        if prompt or completion:
            return {"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": total}

    rm = getattr(response, "response_metadata", {}) or {}
    usage = rm.get("token_usage") or rm.get("usage") or {}
    if isinstance(usage, dict):
        prompt = usage.get("prompt_tokens", 0)
        completion = usage.get("completion_tokens", 0)
        total = usage.get("total_tokens", 0) or (prompt + completion)
        if prompt or completion:
            return {"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": total}

    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


def _message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    # Anthropic-style content blocks
    return "".join(
        block.get("text", "") if isinstance(block, dict) else str(block)
        for block in content
    )


def to_messages(request: GenerationRequest) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    if request.system_instruction:
        messages.append(SystemMessage(content=request.system_instruction))
    for turn in request.contents:
        cls = HumanMessage if turn.role == "user" else AIMessage
        messages.append(cls(content=turn.text))
    return messages


class ChatModelProvider:
    """LangChain-backed provider.

    Args:
        llm: Pre-built chat model; when omitted one is created per model name
             with :func:`get_llm` and cached.
        structured: Ask the model for a :class:`StagePayload` via
             ``with_structured_output``; the raw text is still returned so the
             caller can fall back to JSON extraction.
    """

    def __init__(self, llm: BaseChatModel | None = None, structured: bool = False) -> None:
        self._llm = llm
        self._structured = structured
        self._cache: dict[tuple[str, float, int], BaseChatModel] = {}

    def _model_for(self, request: GenerationRequest) -> BaseChatModel:
        if self._llm is not None:
            return self._llm
        cfg = request.generation_config
        key = (request.model, cfg.temperature, cfg.max_output_tokens)
        if key not in self._cache:
            self._cache[key] = get_llm(request.model, cfg.temperature, cfg.max_output_tokens)
        return self._cache[key]

    def generate(self, request: GenerationRequest) -> GenerationResult:
        messages = to_messages(request)
        try:
            llm = self._model_for(request)
            if self._structured:
                out = llm.with_structured_output(StagePayload, include_raw=True).invoke(messages)
                raw = out.get("raw")
                parsed = out.get("parsed")
                return GenerationResult(
                    text=_message_text(raw) if raw is not None else "",
                    usage=extract_token_usage(raw),
                    parsed=parsed.model_dump(mode="json") if parsed is not None else None,
                )
            response = llm.invoke(messages)
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            logger.warning("Model call failed (%s): %s", type(exc).__name__, exc)
            raise TransientProviderError(f"Model call failed: {exc}", status_code=status) from exc

        return GenerationResult(text=_message_text(response), usage=extract_token_usage(response))
