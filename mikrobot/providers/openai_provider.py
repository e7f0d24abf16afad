"""OpenAI-compatible chat completions provider.

Talks to any /chat/completions endpoint (OpenAI, OpenRouter, Ollama, vLLM)
with a pooled httpx.AsyncClient.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import json_repair
from loguru import logger

from mikrobot.config.schema import MikrobotConfig
from mikrobot.providers.exceptions import ProviderConnectionError, ProviderError, raise_for_status
from mikrobot.providers.types import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    TokenUsage,
    ToolCall,
)

_DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=120.0, write=10.0, pool=10.0)


class OpenAICompatProvider(LLMProvider):
    """Adapter for endpoints that speak the OpenAI chat completions protocol."""

    def __init__(
        self,
        api_base: str,
        api_key: str,
        default_model: str,
        *,
        provider_name: str = "openai",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._provider_name = provider_name
        self._api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._default_model = default_model
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def name(self) -> str:
        return self._provider_name

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers: dict[str, str] = {"Content-Type": "application/json"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"

            self._client = httpx.AsyncClient(
                base_url=self._api_base,
                headers=headers,
                timeout=_DEFAULT_TIMEOUT,
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
                transport=self._transport,
            )
        return self._client

    async def chat(
        self,
        messages: list[LLMMessage],
        *,
        model: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        client = self._get_client()
        resolved_model = model or self._default_model

        payload: dict[str, Any] = {
            "model": resolved_model,
            "messages": [m.to_dict() for m in messages],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        logger.debug(
            "LLM call: base={}, model={}, messages={}, tools={}",
            self._api_base,
            resolved_model,
            len(messages),
            len(tools) if tools else 0,
        )

        try:
            resp = await client.post("/chat/completions", json=payload)
        except httpx.ConnectError as exc:
            raise ProviderConnectionError(
                f"[{self._provider_name}] Cannot connect to {self._api_base}",
                provider=self._provider_name,
                hint="Check that the API URL is correct and the service is running.",
            ) from exc
        except httpx.TimeoutException as exc:
            raise ProviderConnectionError(
                f"[{self._provider_name}] Request timed out waiting for a response.",
                provider=self._provider_name,
                hint="The model may be slow or overloaded.",
            ) from exc

        if resp.status_code >= 400:
            raise_for_status(
                resp.status_code,
                self._provider_name,
                self._api_base,
                resolved_model,
                raw_message=resp.text[:300] if resp.text else "",
            )

        try:
            return self._parse_response(resp.json())
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderError(
                f"[{self._provider_name}] Malformed chat completion response",
                provider=self._provider_name,
            ) from exc

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse:
        choice = data["choices"][0]
        message = choice["message"]

        tool_calls: list[ToolCall] = []
        for tc in message.get("tool_calls") or []:
            fn = tc["function"]
            args = fn.get("arguments") or "{}"
            if isinstance(args, str):
                args = self._safe_parse_json(args)
            tool_calls.append(ToolCall(id=tc["id"], function_name=fn["name"], arguments=args))

        usage_raw = data.get("usage") or {}
        usage = TokenUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
        )

        return LLMResponse(
            content=message.get("content"),
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason") or "",
            usage=usage,
        )

    @staticmethod
    def _safe_parse_json(text: str) -> dict[str, Any]:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = json_repair.loads(text)
        return parsed if isinstance(parsed, dict) else {}

    async def close(self) -> None:
        """Close the underlying HTTP client. Call on shutdown."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


def create_provider(config: MikrobotConfig) -> OpenAICompatProvider:
    """Build the chat provider from providers.openai.

    Raises ValueError when no API key is configured so callers can stop
    before the first request fails with a 401.
    """
    entry = config.providers.openai
    api_key = entry.api_key.get_secret_value()
    if not api_key:
        raise ValueError(
            "No API key configured. Set providers.openai.api_key in config.json "
            "or the OPENAI_API_KEY environment variable."
        )
    return OpenAICompatProvider(
        api_base=entry.api_base,
        api_key=api_key,
        default_model=config.agents.defaults.model,
    )
