"""Core agent execution loop.

The AgentLoop orchestrates the iterative cycle of:

  1. Send conversation + tool definitions to the LLM
  2. If the LLM returns tool_calls -> execute each tool in order -> append
     results -> goto 1
  3. If the LLM returns plain text -> that is the final answer
  4. Stop after max_tool_iterations LLM calls with a fixed reply

Two entry points share the same per-session sequence: process_direct()
for request/response callers (CLI, HTTP) and run() which consumes the
message bus until cancelled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anyio
import httpx
from loguru import logger

from mikrobot.agent.context import ContextBuilder
from mikrobot.bus.events import OutboundMessage
from mikrobot.config.schema import MikrobotConfig
from mikrobot.providers.exceptions import (
    AuthenticationError,
    InsufficientQuotaError,
    ModelNotFoundError,
    ProviderConnectionError,
    RateLimitError,
    ServerError,
)
from mikrobot.providers.types import LLMMessage, LLMProvider, LLMResponse, TokenUsage, ToolCall
from mikrobot.security.redact import redact_secrets, sanitize_error
from mikrobot.session.manager import SessionManager
from mikrobot.tools import create_default_registry
from mikrobot.tools.base import ToolContext, ToolRegistry
from mikrobot.workspace.manager import WorkspaceManager

if TYPE_CHECKING:
    from mikrobot.bus.queue import MessageBus

MAX_ITERATIONS_MESSAGE = "Max iterations reached. Please try a simpler request."
DEFAULT_SESSION_KEY = "cli:default"

_LLM_MAX_ATTEMPTS = 3
_LLM_BASE_DELAY = 1.0


class AgentError(Exception):
    """A turn could not be completed because of an infrastructure failure."""


@dataclass(slots=True)
class AgentRunResult:
    """Final response of one turn plus bookkeeping."""

    response: str
    iterations: int
    usage: TokenUsage = field(default_factory=TokenUsage)
    tool_calls_made: list[str] = field(default_factory=list)


def split_session_key(session_key: str) -> tuple[str, str]:
    """Split "channel:chat_id". A key without a colon has no channel."""
    channel, sep, chat_id = session_key.partition(":")
    if not sep:
        return "", session_key
    return channel, chat_id


class AgentLoop:
    """Orchestrates the LLM <-> tool execution cycle.

    Usage:
        loop = AgentLoop(config, provider, WorkspaceManager(workspace))
        result = await loop.process_direct("Hello", session_key="cli:user")
    """

    def __init__(
        self,
        config: MikrobotConfig,
        provider: LLMProvider,
        workspace: WorkspaceManager,
        *,
        tool_registry: ToolRegistry | None = None,
        session_manager: SessionManager | None = None,
    ) -> None:
        self._config = config
        self._provider = provider
        self._workspace = workspace
        self._registry = tool_registry if tool_registry is not None else create_default_registry()
        self._sessions = session_manager or SessionManager(workspace.sessions_dir)
        self._context_builder = ContextBuilder(
            workspace,
            self._registry,
            history_window=config.agents.defaults.history_window,
        )
        self._running = False

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    # ── Entry points ──

    async def process_direct(
        self, content: str, session_key: str = DEFAULT_SESSION_KEY
    ) -> AgentRunResult:
        """Run one full turn for a session and persist it.

        Holding the session lock for the whole sequence keeps the bus
        worker and HTTP handlers from interleaving turns on one session.
        """
        channel, chat_id = split_session_key(session_key)

        async with self._sessions.lock_for(session_key):
            session = self._sessions.get_or_create(session_key)
            session.add_message("user", content)
            messages = self._context_builder.build_messages(session, content, channel, chat_id)

            result = await self.run_cycle(messages, session_key=session_key)

            session.add_message("assistant", result.response)
            self._sessions.save(session)

        return result

    async def run(self, bus: MessageBus) -> None:
        """Consume inbound bus messages until cancelled or stopped.

        Each message gets exactly one outbound reply. Infrastructure errors
        become a one-line "Error: ..." reply with secrets stripped.
        """
        self._running = True
        logger.info("Agent loop started")
        try:
            while self._running:
                msg = await bus.consume_inbound()
                logger.info(
                    "Processing message: channel={} chat_id={} len={}",
                    msg.channel,
                    msg.chat_id,
                    len(msg.text),
                )
                try:
                    result = await self.process_direct(msg.text, msg.session_key)
                    reply = result.response
                except Exception as exc:
                    logger.opt(exception=exc).error(
                        "Agent turn failed for {}: {}", msg.session_key, exc
                    )
                    reply = f"Error: {sanitize_error(exc)}"

                await bus.publish_outbound(
                    OutboundMessage(channel=msg.channel, chat_id=msg.chat_id, text=reply)
                )
        finally:
            self._running = False
            logger.info("Agent loop stopped")

    def stop(self) -> None:
        """Ask run() to exit after the message it is currently handling."""
        self._running = False

    # ── Iteration cycle ──

    async def run_cycle(
        self, messages: list[LLMMessage], *, session_key: str = ""
    ) -> AgentRunResult:
        """Drive LLM calls and tool executions until a text answer or the cap."""
        defaults = self._config.agents.defaults
        max_iter = defaults.max_tool_iterations
        tools = self._registry.get_definitions() or None
        tool_ctx = ToolContext.from_config(self._config, self._workspace.root, session_key)
        usage = TokenUsage()
        tool_calls_made: list[str] = []

        for iteration in range(1, max_iter + 1):
            logger.debug("Agent loop iteration {}/{}", iteration, max_iter)
            response = await self._call_llm(
                messages,
                tools=tools,
                model=defaults.model,
                temperature=defaults.temperature,
                max_tokens=defaults.max_tokens,
            )
            usage = usage + response.usage

            if not response.tool_calls:
                logger.info(
                    "Agent finished after {} iterations ({} tool calls)",
                    iteration,
                    len(tool_calls_made),
                )
                return AgentRunResult(
                    response=response.content or "",
                    iterations=iteration,
                    usage=usage,
                    tool_calls_made=tool_calls_made,
                )

            messages.append(
                LLMMessage(
                    role="assistant",
                    content=response.content,
                    tool_calls=list(response.tool_calls),
                )
            )

            # Executed in order; results keep the call order in the transcript.
            for tool_call in response.tool_calls:
                output = await self._execute_tool(tool_call, tool_ctx)
                tool_calls_made.append(tool_call.function_name)
                messages.append(
                    LLMMessage(
                        role="tool",
                        content=redact_secrets(output),
                        tool_call_id=tool_call.id,
                        name=tool_call.function_name,
                    )
                )

        logger.warning("Agent hit max iterations ({})", max_iter)
        return AgentRunResult(
            response=MAX_ITERATIONS_MESSAGE,
            iterations=max_iter,
            usage=usage,
            tool_calls_made=tool_calls_made,
        )

    async def _execute_tool(self, tool_call: ToolCall, ctx: ToolContext) -> str:
        args = tool_call.arguments if isinstance(tool_call.arguments, dict) else {}
        logger.info(
            "Executing tool: {}({})",
            tool_call.function_name,
            ", ".join(f"{k}={v!r}" for k, v in list(args.items())[:3]),
        )
        return await self._registry.execute(tool_call.function_name, args, ctx)

    # ── LLM call with retry ──

    async def _call_llm(
        self,
        messages: list[LLMMessage],
        *,
        tools: list[dict[str, Any]] | None,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        """Call the provider, retrying transient failures with exponential backoff."""
        for attempt in range(_LLM_MAX_ATTEMPTS):
            try:
                return await self._provider.chat(
                    messages,
                    model=model,
                    tools=tools,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except Exception as exc:
                if not _is_retryable_error(exc) or attempt == _LLM_MAX_ATTEMPTS - 1:
                    logger.error(
                        "LLM call failed (attempt {}/{}): {}",
                        attempt + 1,
                        _LLM_MAX_ATTEMPTS,
                        exc,
                    )
                    raise AgentError(f"LLM call failed: {exc}") from exc

                delay = _LLM_BASE_DELAY * (2**attempt)
                logger.warning(
                    "LLM call failed (attempt {}/{}), retrying in {:.1f}s: {}",
                    attempt + 1,
                    _LLM_MAX_ATTEMPTS,
                    delay,
                    exc,
                )
                await anyio.sleep(delay)

        raise AgentError("LLM call failed: retries exhausted")


def _is_retryable_error(exc: Exception) -> bool:
    """Determine if an LLM API error is transient and worth retrying."""
    if isinstance(exc, (AuthenticationError, InsufficientQuotaError, ModelNotFoundError)):
        return False
    if isinstance(exc, (RateLimitError, ServerError, ProviderConnectionError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in (429, 500, 502, 503, 504)
    return isinstance(exc, (httpx.ConnectError, httpx.TimeoutException))
