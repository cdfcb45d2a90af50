from __future__ import annotations

import json

import httpx
import pytest

from vidchat.llm.client import APOLOGY, LLMClient, build_prompt


@pytest.fixture
def anyio_backend():
    return "asyncio"


def client_for(handler) -> LLMClient:
    return LLMClient("http://llm.test/", transport=httpx.MockTransport(handler))


@pytest.mark.anyio("asyncio")
async def test_invoke_posts_prompt_and_returns_reply() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/invoke-llm"
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"reply": "It is about fibre optics."})

    client = client_for(handler)
    reply = await client.invoke("what is this?")
    await client.aclose()

    assert reply == "It is about fibre optics."
    assert seen == [{"prompt": "what is this?"}]


@pytest.mark.anyio("asyncio")
async def test_server_error_is_returned_as_text() -> None:
    client = client_for(lambda request: httpx.Response(502, text="upstream down"))
    assert await client.invoke("hi") == "Server error (502): upstream down"
    await client.aclose()


@pytest.mark.anyio("asyncio")
async def test_transport_failure_returns_apology() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = client_for(handler)
    assert await client.invoke("hi") == APOLOGY
    await client.aclose()


@pytest.mark.anyio("asyncio")
async def test_missing_reply_returns_apology() -> None:
    client = client_for(lambda request: httpx.Response(200, json={"answer": "nope"}))
    assert await client.invoke("hi") == APOLOGY
    await client.aclose()


def test_prompt_quotes_user_message() -> None:
    prompt = build_prompt("Who is speaking?")
    assert prompt.endswith('User\'s message: "Who is speaking?"')
    assert "watching a YouTube video" in prompt
