"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration for docwright. Reads from .env automatically."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # LLM API keys (only required for the providers you actually use)
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Ollama base URL, used for "ollama:<model>" identifiers
    ollama_base_url: str = "http://localhost:11434"

    # Model identifier, prefix determines the provider:
    #   "ollama:<model>"     → local Ollama  (e.g. "ollama:llama3.1:70b")
    #   "claude-*" / "claude" → Anthropic API
    #   anything else        → OpenAI API    (e.g. "gpt-4o", "gpt-4o-mini")
    agent_model: str = "gpt-4o-mini"
    agent_temperature: float = 0.3
    agent_max_output_tokens: int = 2048

    # Ask the provider for a schema-validated stage object instead of free text.
    # Falls back to JSON-span extraction when the provider returns nothing parsed.
    agent_structured_output: bool = False

    # ── Agent loop bounds ──────────────────────────────────────────────
    # Consecutive malformed replies tolerated before the session ends in error.
    agent_max_parse_retries: int = 3
    # Tool executions per session before the agent asks the user to continue.
    agent_max_tool_executions: int = 14
    # Hard ceiling on model calls per session.
    agent_max_iterations: int = 40

    # Web UI / API
    web_host: str = "127.0.0.1"
    web_port: int = 8420

    # ── Document store ─────────────────────────────────────────────────
    # Leave empty to use the in-process store (tests, local experiments).
    # Otherwise the REST document service, e.g. http://localhost:5000/api
    document_store_url: str = ""
    document_store_token: str = ""
    document_store_timeout_seconds: float = 15.0

    @field_validator("document_store_url")
    @classmethod
    def _strip_store_url(cls, value: str) -> str:
        return value.strip().rstrip("/")

    # ── Repository context (GitHub REST API) ──────────────────────────
    # Personal access token.  Needed for private repos and to avoid
    # rate-limiting on public repos (5000 req/h vs 60 req/h).
    github_token: str = ""
    github_api_url: str = "https://api.github.com"

    # ── Tool behaviour ─────────────────────────────────────────────────
    tool_usage_log_size: int = 50
    search_max_matches: int = 10
    search_context_chars: int = 50
    scan_preview_chars: int = 200

    # Reject replace/remove calls that wipe more than this fraction of the
    # document in one go.  0.0 = disabled.
    max_destructive_fraction: float = 0.0

    @field_validator("max_destructive_fraction")
    @classmethod
    def _check_fraction(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("max_destructive_fraction must be between 0.0 and 1.0")
        return value

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/docwright.log"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Singleton accessor."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
