"""SSE bridge — translates relay frames to ServerSentEvent objects.

This module sits between the relay and the HTTP response. Every frame is
one `data:` line terminated by a blank line; payloads are JSON so fragments
containing newlines never split a frame.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator

from sse_starlette.sse import ServerSentEvent

from aiproxy.models import DONE, ErrorFrame, Frame, TextFrame, UIChunk
from aiproxy.relay import FrameFormat, QueueSink, StreamRelay

logger = logging.getLogger(__name__)

DONE_PAYLOAD = "[DONE]"
SSE_SEPARATOR = "\n"

# Headers sent with every event-stream response
STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_frame(frame: Frame) -> str:
    """Serialize a frame to its `data:` payload."""
    if frame == DONE:
        return DONE_PAYLOAD
    if isinstance(frame, UIChunk):
        return frame.model_dump_json(by_alias=True, exclude_none=True)
    return frame.model_dump_json()


def decode_frame(payload: str) -> Frame:
    """Parse a `data:` payload back into a frame.

    Raises:
        ValueError: payload is not a known frame shape.
    """
    if payload == DONE_PAYLOAD:
        return DONE
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError(f"Unrecognized frame payload: {payload!r}")
    if "type" in data:
        return UIChunk.model_validate(data)
    if "text" in data:
        return TextFrame.model_validate(data)
    if "error" in data:
        return ErrorFrame.model_validate(data)
    raise ValueError(f"Unrecognized frame payload: {payload!r}")


async def stream_sse_events(
    frames: AsyncIterable[Frame],
) -> AsyncGenerator[ServerSentEvent, None]:
    """Convert frames to SSE events ready for EventSourceResponse."""
    async for frame in frames:
        yield ServerSentEvent(data=encode_frame(frame), sep=SSE_SEPARATOR)


async def relay_sse_events(
    upstream: AsyncIterator[str],
    frame_format: FrameFormat | None = None,
) -> AsyncGenerator[ServerSentEvent, None]:
    """Run a StreamRelay in a background task and yield its frames as SSE.

    If the consumer stops early (client disconnect), the relay task is
    cancelled, which in turn closes the upstream.
    """
    sink = QueueSink()
    relay = StreamRelay(upstream, sink, frame_format)
    task = asyncio.create_task(relay.run(), name=f"stream-relay-{relay.session_id}")
    drained = False
    try:
        async for event in stream_sse_events(sink):
            yield event
        drained = True
    finally:
        if not drained and not task.done():
            logger.info("Client went away, cancelling relay %s", relay.session_id)
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
