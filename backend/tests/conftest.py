"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Sequence

import pytest
from httpx import ASGITransport, AsyncClient

from aiproxy.config import Settings
from aiproxy.dependencies import get_generator
from aiproxy.exceptions import NotInitializedError, SinkError
from aiproxy.generator import render_transcript
from aiproxy.main import create_app
from aiproxy.models import Frame, UIMessage


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a process-wide exit event bound to the first loop."""
    import sse_starlette.sse as sse_mod

    app_status = getattr(sse_mod, "AppStatus", None)
    if app_status is not None:
        app_status.should_exit_event = None
    yield
    if app_status is not None:
        app_status.should_exit_event = None


@pytest.fixture(autouse=True)
def isolate_settings_env(monkeypatch):
    """Keep exported ANTHROPIC_* / CHAT_MODEL etc. out of Settings built in tests."""
    for name in Settings.model_fields:
        monkeypatch.delenv(name.upper(), raising=False)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(anthropic_api_key="test-key", _env_file=None)


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
async def client(test_settings, fake_generator) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    app = create_app(test_settings)
    app.dependency_overrides[get_generator] = lambda: fake_generator
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Fakes for the relay's collaborators
# ---------------------------------------------------------------------------


class FakeUpstream:
    """Async iterator of text fragments that can fail or hang at the end."""

    def __init__(
        self,
        fragments: Sequence[str] = (),
        error: BaseException | None = None,
        block: bool = False,
    ):
        self.fragments = list(fragments)
        self.error = error
        self.block = block
        self.yielded = 0
        self.closed = False
        self._gate = asyncio.Event()

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        if self.yielded < len(self.fragments):
            fragment = self.fragments[self.yielded]
            self.yielded += 1
            return fragment
        if self.block:
            await self._gate.wait()
        if self.error is not None:
            raise self.error
        raise StopAsyncIteration

    async def aclose(self) -> None:
        self.closed = True


class RecordingSink:
    """Sink that records frames and close() calls."""

    def __init__(self, fail_on_write: int | None = None, fail_on_close: bool = False):
        self.frames: list[Frame] = []
        self.close_calls = 0
        self.writes_after_close = 0
        self.fail_on_write = fail_on_write
        self.fail_on_close = fail_on_close

    async def write(self, frame: Frame) -> None:
        if self.close_calls:
            self.writes_after_close += 1
        if self.fail_on_write is not None and len(self.frames) == self.fail_on_write:
            raise SinkError("connection reset")
        self.frames.append(frame)

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_on_close:
            raise SinkError("close failed")


class FakeGenerator:
    """Stands in for TextGenerator behind the get_generator dependency."""

    model = "claude-sonnet-4-5-20250929"

    def __init__(self):
        self.initialized = True
        self.text = "Paris"
        self.fragments: list[str] = ["1", ", 2", ", 3"]
        self.error: BaseException | None = None
        self.calls: list[tuple] = []
        self.upstreams: list[FakeUpstream] = []

    def is_initialized(self) -> bool:
        return self.initialized

    def require_initialized(self) -> None:
        if not self.initialized:
            raise NotInitializedError()

    async def generate_text(self, prompt: str, system: str | None = None) -> str:
        self.require_initialized()
        self.calls.append(("ask", prompt, system))
        if self.error is not None:
            raise self.error
        return self.text

    def stream_text(self, prompt: str, system: str | None = None) -> FakeUpstream:
        self.require_initialized()
        self.calls.append(("ask-stream", prompt, system))
        return self._upstream()

    def stream_chat(
        self, messages: Sequence[UIMessage], system: str | None = None
    ) -> FakeUpstream:
        self.require_initialized()
        prompt, system_prompt = render_transcript(messages, system)
        self.calls.append(("chat", prompt, system_prompt))
        return self._upstream()

    def _upstream(self) -> FakeUpstream:
        upstream = FakeUpstream(self.fragments, self.error)
        self.upstreams.append(upstream)
        return upstream


# ---------------------------------------------------------------------------
# SSE parsing
# ---------------------------------------------------------------------------


def parse_sse_data(raw: str) -> list[str]:
    """Split a raw event stream into the `data:` payload of each event.

    Comment lines (keep-alive pings) are ignored. Handles both \\n and \\r\\n.
    """
    payloads = []
    current: list[str] = []
    for line in raw.split("\n"):
        line = line.rstrip("\r")
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            current.append(line[len("data:"):].removeprefix(" "))
        elif line == "" and current:
            payloads.append("\n".join(current))
            current = []
    if current:
        payloads.append("\n".join(current))
    return payloads
