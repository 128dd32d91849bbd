"""Upstream generator — produces text from Anthropic via the Claude Agent SDK.

TextGenerator is built from an explicit Settings value. It exposes three
shapes of the same provider call: a complete answer, a stream of text
fragments for a single prompt, and a stream of text fragments for a chat
transcript. The relay consumes the streams as plain async iterators of str
and never sees SDK types.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from typing import Any

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ClaudeSDKError,
    ResultMessage,
    TextBlock,
    query,
)
from claude_agent_sdk.types import StreamEvent

from aiproxy.config import Settings
from aiproxy.exceptions import NotInitializedError, UpstreamError
from aiproxy.models import UIMessage

logger = logging.getLogger(__name__)

TRANSCRIPT_INSTRUCTION = (
    "The user prompt is the transcript of a conversation, one turn per "
    "paragraph, each prefixed with its speaker. Reply as the assistant to "
    "the latest user turn. Do not prefix your reply with a speaker label."
)

_ROLE_LABELS = {"user": "User", "assistant": "Assistant"}


def render_transcript(
    messages: Sequence[UIMessage], system: str | None = None
) -> tuple[str, str | None]:
    """Flatten chat messages into a (prompt, system_prompt) pair.

    System messages join the system prompt. A lone user turn is sent as is;
    longer conversations are rendered as labelled turns.

    Raises:
        ValueError: no user or assistant message carries any text.
    """
    system_parts = [system] if system else []
    turns: list[tuple[str, str]] = []
    for message in messages:
        text = message.text
        if not text:
            continue
        if message.role == "system":
            system_parts.append(text)
        else:
            turns.append((message.role, text))

    if not turns:
        raise ValueError("messages contain no text to send")

    if len(turns) == 1 and turns[0][0] == "user":
        prompt = turns[0][1]
    else:
        system_parts.append(TRANSCRIPT_INSTRUCTION)
        prompt = "\n\n".join(f"{_ROLE_LABELS[role]}: {text}" for role, text in turns)

    return prompt, "\n\n".join(system_parts) or None


def _stderr_callback(line: str) -> None:
    """Capture CLI subprocess stderr for debugging."""
    logger.warning("CLI stderr: %s", line)


class TextGenerator:
    """Anthropic text generation through claude_agent_sdk.query()."""

    def __init__(self, settings: Settings):
        self._settings = settings

    @property
    def model(self) -> str:
        return self._settings.chat_model

    def is_initialized(self) -> bool:
        return self._settings.anthropic_configured

    def require_initialized(self) -> None:
        if not self.is_initialized():
            raise NotInitializedError()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_text(self, prompt: str, system: str | None = None) -> str:
        """Return the complete answer to a prompt."""
        self.require_initialized()
        options = self._build_options(system, streaming=False)

        chunks: list[str] = []
        result_text: str | None = None
        async with contextlib.aclosing(self._query(prompt, options)) as messages:
            async for msg in messages:
                if isinstance(msg, AssistantMessage):
                    if getattr(msg, "parent_tool_use_id", None):
                        continue
                    chunks.extend(
                        block.text for block in msg.content if isinstance(block, TextBlock)
                    )
                elif isinstance(msg, ResultMessage):
                    result_text = msg.result

        text = "".join(chunks)
        return text or (result_text or "")

    def stream_text(
        self, prompt: str, system: str | None = None
    ) -> AsyncGenerator[str, None]:
        """Return an async stream of text fragments for a prompt.

        Initialization is checked here, before the stream is created, so a
        missing key surfaces to the caller and never reaches the relay.
        """
        self.require_initialized()
        return self._stream(prompt, self._build_options(system, streaming=True))

    def stream_chat(
        self, messages: Sequence[UIMessage], system: str | None = None
    ) -> AsyncGenerator[str, None]:
        """Return an async stream of text fragments answering a transcript."""
        self.require_initialized()
        prompt, system_prompt = render_transcript(messages, system)
        return self._stream(prompt, self._build_options(system_prompt, streaming=True))

    # ------------------------------------------------------------------
    # SDK plumbing
    # ------------------------------------------------------------------

    def _build_options(self, system: str | None, streaming: bool) -> ClaudeAgentOptions:
        env = {"ANTHROPIC_API_KEY": self._settings.anthropic_api_key}
        if self._settings.anthropic_base_url:
            env["ANTHROPIC_BASE_URL"] = self._settings.anthropic_base_url
        return ClaudeAgentOptions(
            system_prompt=system,
            model=self._settings.chat_model,
            max_turns=self._settings.max_turns,
            include_partial_messages=streaming,
            env=env,
            stderr=_stderr_callback,
        )

    async def _query(
        self, prompt: str, options: ClaudeAgentOptions
    ) -> AsyncIterator[Any]:
        """Iterate SDK messages, turning SDK failures into UpstreamError."""
        try:
            async with contextlib.aclosing(query(prompt=prompt, options=options)) as messages:
                async for msg in messages:
                    if isinstance(msg, ResultMessage) and msg.is_error:
                        raise UpstreamError(
                            f"Provider returned an error result: {msg.result or msg.subtype}",
                            model=self.model,
                        )
                    yield msg
        except ClaudeSDKError as e:
            logger.error("Claude SDK error: %s", e)
            raise UpstreamError(f"Claude SDK error: {e}", model=self.model) from e

    async def _stream(
        self, prompt: str, options: ClaudeAgentOptions
    ) -> AsyncGenerator[str, None]:
        # When the SDK streams deltas, the AssistantMessage TextBlocks that
        # follow duplicate them; they are only emitted if no deltas came.
        has_streamed_text = False
        async with contextlib.aclosing(self._query(prompt, options)) as messages:
            async for msg in messages:
                if isinstance(msg, StreamEvent):
                    if msg.parent_tool_use_id:
                        continue
                    event = msg.event
                    if event.get("type") != "content_block_delta":
                        continue
                    delta = event.get("delta", {})
                    if delta.get("type") == "text_delta":
                        has_streamed_text = True
                        yield delta.get("text", "")

                elif isinstance(msg, AssistantMessage):
                    if getattr(msg, "parent_tool_use_id", None):
                        continue
                    if not has_streamed_text:
                        for block in msg.content:
                            if isinstance(block, TextBlock):
                                yield block.text
                    has_streamed_text = False
