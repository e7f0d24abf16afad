"""Agent loop and context assembly."""

from mikrobot.agent.context import ContextBuilder
from mikrobot.agent.loop import AgentError, AgentLoop, AgentRunResult

__all__ = ["AgentError", "AgentLoop", "AgentRunResult", "ContextBuilder"]
