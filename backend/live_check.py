#!/usr/bin/env python3
"""Check a running aiproxy server with real ask, ask-stream and chat requests.

Usage: python live_check.py [--base-url http://localhost:8000]
"""

import argparse
import asyncio
import json
import sys
from collections.abc import AsyncIterable, AsyncIterator

import httpx

from aiproxy.models import DONE, ErrorFrame, TextFrame, UIChunk
from aiproxy.sse_bridge import decode_frame


async def iter_sse_data(chunks: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield the payload of each `data:` line in a decoded event stream.

    Lines end at "\\n" only. U+2028, U+2029 and U+0085 may appear unescaped
    inside JSON payloads and are not line breaks here.
    """
    buffer = ""
    async for chunk in chunks:
        buffer += chunk
        *lines, buffer = buffer.split("\n")
        for line in lines:
            line = line.rstrip("\r")
            if line.startswith("data:"):
                yield line[len("data:"):].removeprefix(" ")
    if buffer.startswith("data:"):
        yield buffer.rstrip("\r")[len("data:"):].removeprefix(" ")


async def check_health(base_url: str):
    """Check health endpoint."""
    print("🏥 Checking health endpoint...")
    async with httpx.AsyncClient(timeout=10.0) as client:
        resp = await client.get(f"{base_url}/api/health")
        print(f"   Status: {resp.status_code}")
        print(f"   Response: {resp.json()}")
        assert resp.status_code == 200
        assert resp.json()["anthropic_configured"] is True
        print("   ✅ Health check passed\n")


async def check_ask(base_url: str):
    """Check the non-streaming ask endpoint."""
    print("💬 Checking /ask...")
    async with httpx.AsyncClient(timeout=60.0) as client:
        resp = await client.post(
            f"{base_url}/api/ai-sdk/ask",
            json={"prompt": "What is the capital of France? Answer in one word."},
        )
        print(f"   Status: {resp.status_code}")
        assert resp.status_code == 200
        data = resp.json()
        print(f"   Response: {json.dumps(data)}")
        assert data["data"]["text"]
        print("   ✅ Ask passed\n")


async def check_ask_stream(base_url: str):
    """Check the streaming ask endpoint frame by frame."""
    print("📡 Checking /ask-stream...")
    text_chunks = []
    saw_done = False

    async with httpx.AsyncClient(timeout=60.0) as client:
        async with client.stream(
            "POST",
            f"{base_url}/api/ai-sdk/ask-stream",
            json={"prompt": "Count from 1 to 5"},
        ) as resp:
            print(f"   Status: {resp.status_code}")
            assert resp.status_code == 200

            async for payload in iter_sse_data(resp.aiter_text()):
                frame = decode_frame(payload)
                if frame == DONE:
                    saw_done = True
                    break
                if isinstance(frame, ErrorFrame):
                    raise AssertionError(f"stream error frame: {frame.error}")
                if isinstance(frame, TextFrame):
                    text_chunks.append(frame.text)
                    print(f"   📨 {frame.text!r}")

    assert saw_done, "stream ended without [DONE]"
    print(f"   💬 Full text: {''.join(text_chunks)}")
    print(f"   📊 Text frames: {len(text_chunks)}")
    print("   ✅ Ask-stream passed\n")


async def check_chat(base_url: str):
    """Check the chat endpoint with a two-turn conversation."""
    print("🔄 Checking /chat...")
    messages = [
        {"id": "msg-1", "role": "user", "parts": [{"type": "text", "text": "My favourite colour is teal."}]},
        {"id": "msg-2", "role": "assistant", "parts": [{"type": "text", "text": "Teal is a lovely colour."}]},
        {"id": "msg-3", "role": "user", "parts": [{"type": "text", "text": "What is my favourite colour?"}]},
    ]
    deltas = []
    chunk_types = []

    async with httpx.AsyncClient(timeout=60.0) as client:
        async with client.stream(
            "POST",
            f"{base_url}/api/ai-sdk/chat",
            json={"messages": messages},
        ) as resp:
            assert resp.status_code == 200
            assert resp.headers.get("x-vercel-ai-ui-message-stream") == "v1"

            async for payload in iter_sse_data(resp.aiter_text()):
                frame = decode_frame(payload)
                if frame == DONE:
                    break
                assert isinstance(frame, UIChunk)
                chunk_types.append(frame.type)
                if frame.type == "error":
                    raise AssertionError(f"chat error chunk: {frame.error_text}")
                if frame.type == "text-delta":
                    deltas.append(frame.delta or "")

    reply = "".join(deltas)
    print(f"   💬 Reply: {reply}")
    print(f"   📊 Chunk types: {sorted(set(chunk_types))}")
    if "teal" in reply.lower():
        print("   ✅ Context preserved across turns")
    else:
        print("   ⚠️  Reply did not mention teal")
    print("   ✅ Chat passed\n")


async def main(base_url: str) -> int:
    print("=" * 60)
    print(f"🚀 aiproxy live check against {base_url}")
    print("=" * 60)
    print()

    try:
        await check_health(base_url)
        await check_ask(base_url)
        await check_ask_stream(base_url)
        await check_chat(base_url)
    except Exception as e:
        print()
        print("=" * 60)
        print(f"❌ CHECK FAILED: {e}")
        print("=" * 60)
        import traceback
        traceback.print_exc()
        return 1

    print("=" * 60)
    print("✅ ALL CHECKS PASSED!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--base-url", default="http://localhost:8000")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.base_url)))
