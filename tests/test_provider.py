"""Tests for the OpenAI-compatible provider using an in-process httpx transport."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from pydantic import SecretStr

from mikrobot.config.schema import MikrobotConfig
from mikrobot.providers import create_provider
from mikrobot.providers.exceptions import (
    AuthenticationError,
    ProviderConnectionError,
    ProviderError,
    RateLimitError,
    ServerError,
    raise_for_status,
)
from mikrobot.providers.openai_provider import OpenAICompatProvider
from mikrobot.providers.types import LLMMessage, ToolCall


def _provider(handler) -> OpenAICompatProvider:
    return OpenAICompatProvider(
        api_base="https://llm.example/v1",
        api_key="sk-test",
        default_model="test-model",
        transport=httpx.MockTransport(handler),
    )


def _completion(message: dict[str, Any], **extra: Any) -> dict[str, Any]:
    return {
        "choices": [{"message": message, "finish_reason": extra.get("finish_reason", "stop")}],
        "usage": {"prompt_tokens": 11, "completion_tokens": 3},
    }


@pytest.mark.asyncio
async def test_text_completion_and_request_shape():
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion({"role": "assistant", "content": "hi"}))

    provider = _provider(handler)
    tools = [{"type": "function", "function": {"name": "exec", "parameters": {}}}]
    resp = await provider.chat(
        [LLMMessage(role="user", content="hello")], tools=tools, temperature=0.2, max_tokens=50
    )
    await provider.close()

    assert resp.content == "hi"
    assert resp.has_tool_calls is False
    assert resp.usage.total_tokens == 14
    assert captured["url"] == "https://llm.example/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    body = captured["body"]
    assert body["model"] == "test-model"
    assert body["tool_choice"] == "auto"
    assert body["max_tokens"] == 50
    assert body["messages"] == [{"role": "user", "content": "hello"}]


@pytest.mark.asyncio
async def test_tool_calls_parsed_and_repaired():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=_completion(
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": "call_1",
                            "type": "function",
                            "function": {"name": "exec", "arguments": '{"command": "ls"}'},
                        },
                        {
                            "id": "call_2",
                            "type": "function",
                            "function": {"name": "read_file", "arguments": "{'path': 'a.txt',}"},
                        },
                    ],
                },
                finish_reason="tool_calls",
            ),
        )

    resp = await _provider(handler).chat([LLMMessage(role="user", content="x")])
    assert resp.finish_reason == "tool_calls"
    assert resp.tool_calls[0] == ToolCall(id="call_1", function_name="exec", arguments={"command": "ls"})
    assert resp.tool_calls[1].arguments == {"path": "a.txt"}


def test_tool_messages_serialize_to_wire_format():
    assistant = LLMMessage(
        role="assistant",
        tool_calls=[ToolCall(id="c1", function_name="exec", arguments={"command": "pwd"})],
    )
    wire = assistant.to_dict()
    assert wire["tool_calls"][0]["function"]["arguments"] == '{"command": "pwd"}'

    tool = LLMMessage(role="tool", content="out", tool_call_id="c1", name="exec")
    assert tool.to_dict()["tool_call_id"] == "c1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "exc_type"),
    [(401, AuthenticationError), (429, RateLimitError), (503, ServerError), (504, ServerError)],
)
async def test_http_errors_mapped(status: int, exc_type: type[ProviderError]):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, text="nope")

    with pytest.raises(exc_type):
        await _provider(handler).chat([LLMMessage(role="user", content="x")])


@pytest.mark.asyncio
async def test_connect_error_mapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderConnectionError):
        await _provider(handler).chat([LLMMessage(role="user", content="x")])


@pytest.mark.asyncio
async def test_malformed_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(ProviderError, match="Malformed"):
        await _provider(handler).chat([LLMMessage(role="user", content="x")])


def test_raise_for_status_passes_2xx():
    raise_for_status(200, "openai", "https://x", "m")
    with pytest.raises(ProviderError, match="HTTP 418"):
        raise_for_status(418, "openai", "https://x", "m")


def test_create_provider_requires_key():
    config = MikrobotConfig()
    with pytest.raises(ValueError, match="No API key"):
        create_provider(config)

    config.providers.openai.api_key = SecretStr("sk-live")
    provider = create_provider(config)
    assert isinstance(provider, OpenAICompatProvider)
    assert provider.name == "openai"
