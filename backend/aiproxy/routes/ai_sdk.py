"""AI SDK endpoints — ask (JSON), ask-stream (SSE text), chat (SSE UI stream).

Validation and initialization failures are answered as plain HTTP errors
before any stream opens. Once a stream is open, failures arrive in-band as
a single error frame.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from aiproxy.config import Settings
from aiproxy.dependencies import get_generator, get_settings
from aiproxy.exceptions import NotInitializedError, UpstreamError
from aiproxy.generator import TextGenerator
from aiproxy.models import AskRequest, AskResponse, AskResponseData, ChatRequest
from aiproxy.relay import UIMessageFrameFormat
from aiproxy.sse_bridge import SSE_SEPARATOR, STREAM_HEADERS, relay_sse_events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai-sdk")

UI_MESSAGE_STREAM_HEADERS = {
    **STREAM_HEADERS,
    "x-vercel-ai-ui-message-stream": "v1",
}


def _not_initialized(e: NotInitializedError) -> HTTPException:
    return HTTPException(status_code=503, detail=str(e))


def _event_source(
    events, headers: dict[str, str], config: Settings
) -> EventSourceResponse:
    return EventSourceResponse(
        events,
        media_type="text/event-stream",
        headers=headers,
        sep=SSE_SEPARATOR,
        ping=config.sse_ping_interval,
    )


@router.post("/ask", response_model=AskResponse)
async def ask(
    request: AskRequest,
    generator: TextGenerator = Depends(get_generator),
) -> AskResponse:
    """Send a prompt, receive the complete answer."""
    try:
        text = await generator.generate_text(request.prompt, system=request.system)
    except NotInitializedError as e:
        raise _not_initialized(e) from e
    except UpstreamError as e:
        logger.error("ask failed: %s", e)
        raise HTTPException(status_code=502, detail="Upstream provider error") from e
    return AskResponse(data=AskResponseData(text=text))


@router.post("/ask-stream")
async def ask_stream(
    request: AskRequest,
    generator: TextGenerator = Depends(get_generator),
    config: Settings = Depends(get_settings),
) -> EventSourceResponse:
    """Send a prompt, receive streaming SSE text frames.

    Frames: {"text": ...} per fragment, then [DONE]; or one {"error": ...}.
    """
    try:
        upstream = generator.stream_text(request.prompt, system=request.system)
    except NotInitializedError as e:
        raise _not_initialized(e) from e
    return _event_source(relay_sse_events(upstream), STREAM_HEADERS, config)


@router.post("/chat")
async def chat(
    request: ChatRequest,
    generator: TextGenerator = Depends(get_generator),
    config: Settings = Depends(get_settings),
) -> EventSourceResponse:
    """Send a conversation, receive a streaming UI message stream."""
    try:
        upstream = generator.stream_chat(request.messages, system=request.system)
    except NotInitializedError as e:
        raise _not_initialized(e) from e
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return _event_source(
        relay_sse_events(upstream, UIMessageFrameFormat()),
        UI_MESSAGE_STREAM_HEADERS,
        config,
    )
