"""Error types for the proxy.

Pre-stream errors (NotInitializedError) are raised to the route and become
HTTP responses. Mid-stream errors never leave the relay as exceptions; they
are written in-band as a single error frame.
"""

from __future__ import annotations


class AIProxyError(Exception):
    """Base class for proxy errors."""


class NotInitializedError(AIProxyError):
    """The provider integration has no credentials configured."""

    def __init__(self, message: str = "AI SDK not initialized"):
        super().__init__(message)


class UpstreamError(AIProxyError):
    """The provider call failed, before or during streaming."""

    def __init__(self, message: str, model: str | None = None):
        super().__init__(message)
        self.model = model


class SinkError(AIProxyError):
    """Writing to or closing a relay sink failed."""
