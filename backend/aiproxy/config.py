"""Application configuration via pydantic-settings.

Reads from environment variables and .env file.
"""

from __future__ import annotations

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CHAT_MODELS: tuple[str, ...] = (
    "claude-opus-4-6",
    "claude-sonnet-4-5-20250929",
    "claude-haiku-4-5-20251001",
)
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Anthropic
    anthropic_api_key: str = ""
    anthropic_base_url: str | None = None
    chat_model: str = DEFAULT_MODEL
    max_turns: int = 1

    # Frontend
    frontend_url: str = "http://localhost:3000"

    # Streaming
    sse_ping_interval: int = 15

    log_level: str = "INFO"

    @field_validator("chat_model")
    @classmethod
    def _known_chat_model(cls, value: str) -> str:
        if value not in CHAT_MODELS:
            logger.warning(
                "Unknown chat model %r, falling back to %s", value, DEFAULT_MODEL
            )
            return DEFAULT_MODEL
        return value

    @property
    def anthropic_configured(self) -> bool:
        return bool(self.anthropic_api_key)


settings = Settings()
