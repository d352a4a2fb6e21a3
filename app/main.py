"""docwright main entry point.

Starts the FastAPI web server (tool API, agent stream, event feed).
"""

from __future__ import annotations

import uvicorn

from app.core.config import get_settings
from app.core.logging import get_logger, setup_logging
from app.agents.models import provider_for_model


def main():
    """Entry point: starts the web server."""
    setup_logging()
    logger = get_logger("main")
    settings = get_settings()

    logger.info("=" * 60)
    logger.info("docwright starting")
    logger.info("=" * 60)

    model = settings.agent_model
    provider = provider_for_model(model)
    if provider == "anthropic" and not settings.anthropic_api_key.strip():
        logger.error("ANTHROPIC_API_KEY not set - agent model '%s' will fail", model)
    elif provider == "openai" and not settings.openai_api_key.strip():
        logger.error("OPENAI_API_KEY not set - agent model '%s' will fail", model)

    if settings.document_store_url:
        logger.info("Document store: %s", settings.document_store_url)
    else:
        logger.warning("DOCUMENT_STORE_URL not set - using the in-memory store (documents are lost on exit)")

    if not settings.github_token:
        logger.info("GITHUB_TOKEN not set - repository tools use unauthenticated requests (60 req/h)")

    logger.info("API: http://%s:%d", settings.web_host, settings.web_port)

    config = uvicorn.Config(
        "app.web.server:app",
        host=settings.web_host,
        port=settings.web_port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
    server = uvicorn.Server(config)

    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
