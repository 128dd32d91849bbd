"""Request-scoped access to objects built once in the app factory."""

from __future__ import annotations

from fastapi import Request

from aiproxy.config import Settings
from aiproxy.generator import TextGenerator


def get_generator(request: Request) -> TextGenerator:
    """Return the TextGenerator attached to the running app."""
    return request.app.state.generator


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
