"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aiproxy.config import Settings, settings
from aiproxy.generator import TextGenerator
from aiproxy.routes import ai_sdk, health

logger = logging.getLogger(__name__)


def create_app(config: Settings | None = None) -> FastAPI:
    """Build the app around one explicit Settings value."""
    config = config or settings
    logging.basicConfig(level=config.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: report provider status. Nothing to tear down."""
        if app.state.generator.is_initialized():
            logger.info("AI SDK initialized with model %s", config.chat_model)
        else:
            logger.warning("ANTHROPIC_API_KEY not set, AI SDK not initialized")
        yield

    app = FastAPI(
        title="aiproxy",
        description="Anthropic prompt proxy with SSE streaming",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.generator = TextGenerator(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(ai_sdk.router)
    return app


app = create_app()
