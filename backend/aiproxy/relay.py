"""Stream relay — drains an upstream text sequence into frames on a sink.

One StreamRelay is one session: it owns its upstream iterator and its sink
until the sink is closed, and is never reused. Every run ends in exactly one
terminal signal (the format's closing frames or a single error frame) and
exactly one sink.close(), whatever the upstream does.

The relay does no buffering, retrying, or timing of its own. Frames are
written in upstream order, one fragment at a time.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections.abc import AsyncIterator
from typing import Protocol

from aiproxy.exceptions import SinkError
from aiproxy.models import DONE, ErrorFrame, Frame, TextFrame, UIChunk

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "Stream error"

_CLOSED = object()  # Marks the end of a sink's frame sequence


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class Sink(Protocol):
    async def write(self, frame: Frame) -> None: ...

    async def close(self) -> None: ...


class QueueSink:
    """Sink backed by an unbounded asyncio.Queue.

    The relay writes from its own task without ever waiting on the reader.
    Iterating the sink yields frames in write order and stops after close().
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Frame | object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, frame: Frame) -> None:
        if self._closed:
            raise SinkError("Cannot write to a closed sink")
        self._queue.put_nowait(frame)

    async def close(self) -> None:
        if self._closed:
            raise SinkError("Sink already closed")
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[Frame]:
        return self._drain()

    async def _drain(self) -> AsyncIterator[Frame]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


# ---------------------------------------------------------------------------
# Frame formats
# ---------------------------------------------------------------------------


class FrameFormat(Protocol):
    """Maps the relay's lifecycle onto frames."""

    def opening(self) -> list[Frame]: ...

    def fragment(self, text: str) -> list[Frame]: ...

    def closing(self) -> list[Frame]: ...

    def error(self) -> Frame: ...


class TextFrameFormat:
    """ask-stream framing: one {"text"} frame per fragment, then [DONE]."""

    def opening(self) -> list[Frame]:
        return []

    def fragment(self, text: str) -> list[Frame]:
        return [TextFrame(text=text)]

    def closing(self) -> list[Frame]:
        return [DONE]

    def error(self) -> Frame:
        return ErrorFrame(error=STREAM_ERROR_MESSAGE)


class UIMessageFrameFormat:
    """chat framing: a UI message stream (v1) wrapping a single text part.

    start, start-step, text-start, text-delta*, text-end, finish-step,
    finish, [DONE]. A failure replaces everything after the last delta with
    one {"type": "error"} chunk.
    """

    def __init__(self, text_id: str = "txt-0"):
        self.text_id = text_id

    def opening(self) -> list[Frame]:
        return [
            UIChunk(type="start"),
            UIChunk(type="start-step"),
            UIChunk(type="text-start", id=self.text_id),
        ]

    def fragment(self, text: str) -> list[Frame]:
        if not text:
            return []
        return [UIChunk(type="text-delta", id=self.text_id, delta=text)]

    def closing(self) -> list[Frame]:
        return [
            UIChunk(type="text-end", id=self.text_id),
            UIChunk(type="finish-step"),
            UIChunk(type="finish"),
            DONE,
        ]

    def error(self) -> Frame:
        return UIChunk(type="error", error_text=STREAM_ERROR_MESSAGE)


# ---------------------------------------------------------------------------
# The relay
# ---------------------------------------------------------------------------


class RelayState(enum.Enum):
    OPEN = "open"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"

    @property
    def closed(self) -> bool:
        return self in (RelayState.COMPLETED, RelayState.ERRORED)


class StreamRelay:
    """Relay one upstream text sequence onto one sink."""

    def __init__(
        self,
        upstream: AsyncIterator[str],
        sink: Sink,
        frame_format: FrameFormat | None = None,
    ):
        self.session_id = uuid.uuid4().hex[:8]
        self.state = RelayState.OPEN
        self._upstream = upstream
        self._sink = sink
        self._format = frame_format or TextFrameFormat()
        self._started = False

    async def run(self) -> RelayState:
        """Drain the upstream and return the terminal state.

        Never raises for upstream or sink failures. Cancellation is
        re-raised after the upstream and the sink have been released.
        """
        if self._started:
            raise RuntimeError("StreamRelay.run() can only be called once")
        self._started = True
        logger.debug("Relay %s started", self.session_id)

        try:
            await self._write_all(self._format.opening())
            async for fragment in self._upstream:
                self.state = RelayState.STREAMING
                await self._write_all(self._format.fragment(fragment))
            await self._write_all(self._format.closing())
            self.state = RelayState.COMPLETED

        except SinkError:
            logger.exception("Relay %s: sink failed, abandoning stream", self.session_id)
            self.state = RelayState.ERRORED

        except asyncio.CancelledError:
            logger.info("Relay %s cancelled", self.session_id)
            self.state = RelayState.ERRORED
            raise

        except Exception:
            logger.exception("Relay %s: stream error", self.session_id)
            self.state = RelayState.ERRORED
            try:
                await self._write(self._format.error())
            except SinkError:
                logger.warning("Relay %s: could not write error frame", self.session_id)

        finally:
            await self._release()

        logger.debug("Relay %s finished: %s", self.session_id, self.state.value)
        return self.state

    async def _write_all(self, frames: list[Frame]) -> None:
        for frame in frames:
            await self._write(frame)

    async def _write(self, frame: Frame) -> None:
        """Write one frame; any failure raised by the sink becomes SinkError."""
        try:
            await self._sink.write(frame)
        except SinkError:
            raise
        except Exception as e:
            raise SinkError(f"Sink write failed: {e!r}") from e

    async def _release(self) -> None:
        """Close the sink, then the upstream. Failures here are only logged."""
        try:
            await self._sink.close()
        except Exception:
            logger.warning("Relay %s: sink close failed", self.session_id, exc_info=True)
        finally:
            aclose = getattr(self._upstream, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception:
                    logger.warning(
                        "Relay %s: error closing upstream", self.session_id, exc_info=True
                    )
