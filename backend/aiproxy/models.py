"""Pydantic models — the shared contract between backend and browser client.

These models define the request/response shapes and the frames written to
the event stream. Changes here require coordinating with the client's
stream parser.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class AskRequest(BaseModel):
    """POST /api/ai-sdk/ask and /api/ai-sdk/ask-stream request body."""
    prompt: str = Field(min_length=1)
    system: str | None = None


class UIMessagePart(BaseModel):
    """One content part of a chat message. Only `text` parts are forwarded."""
    model_config = ConfigDict(extra="allow")

    type: str
    text: str | None = None


class UIMessage(BaseModel):
    """A prior turn of a chat conversation, as sent by the browser client."""
    id: str | None = None
    role: Literal["user", "assistant", "system"]
    parts: list[UIMessagePart] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(
            part.text for part in self.parts if part.type == "text" and part.text
        )


class ChatRequest(BaseModel):
    """POST /api/ai-sdk/chat request body."""
    messages: list[UIMessage] = Field(min_length=1)
    system: str | None = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class AskResponseData(BaseModel):
    text: str


class AskResponse(BaseModel):
    """POST /api/ai-sdk/ask response."""
    data: AskResponseData


class HealthResponse(BaseModel):
    """GET /api/health response."""
    status: Literal["ok", "degraded"]
    version: str = "0.1.0"
    anthropic_configured: bool
    chat_model: str


# ---------------------------------------------------------------------------
# Stream frames (what goes in the `data` field of each SSE event)
# ---------------------------------------------------------------------------

class TextFrame(BaseModel):
    """data: {"text": "..."}"""
    model_config = ConfigDict(frozen=True)

    text: str


class ErrorFrame(BaseModel):
    """data: {"error": "..."}"""
    model_config = ConfigDict(frozen=True)

    error: str


class DoneFrame(BaseModel):
    """data: [DONE] — successful end of stream."""
    model_config = ConfigDict(frozen=True)


class UIChunk(BaseModel):
    """One chunk of the chat UI message stream.

    e.g. data: {"type":"text-delta","id":"txt-0","delta":"Hel"}
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str
    id: str | None = None
    delta: str | None = None
    error_text: str | None = Field(default=None, alias="errorText")


DONE = DoneFrame()

Frame = TextFrame | ErrorFrame | UIChunk | DoneFrame
