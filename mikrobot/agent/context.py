"""Context builder: assembles the message list sent to the LLM.

The system prompt is built from, in order:
  1. Agent identity and runtime info
  2. Bootstrap documents (AGENTS.md, SOUL.md, USER.md, TOOLS.md, IDENTITY.md)
  3. Long-term memory (memory/MEMORY.md)
  4. Tools and workspace skills
  5. Current session (channel and chat id)

No wall-clock time is included, so identical inputs produce identical
output.
"""

from __future__ import annotations

import platform
from typing import TYPE_CHECKING

from loguru import logger

from mikrobot import __version__
from mikrobot.providers.types import LLMMessage
from mikrobot.workspace.manager import WorkspaceManager

if TYPE_CHECKING:
    from mikrobot.session.manager import Session
    from mikrobot.tools.base import ToolRegistry

SECTION_SEPARATOR = "\n\n---\n\n"
DEFAULT_HISTORY_WINDOW = 50


class ContextBuilder:
    def __init__(
        self,
        workspace: WorkspaceManager,
        registry: ToolRegistry,
        *,
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ) -> None:
        self._workspace = workspace
        self._registry = registry
        self._history_window = history_window

    def build_system_prompt(self) -> str:
        parts: list[str] = [self._build_identity_section()]

        bootstrap = self._build_bootstrap_section()
        if bootstrap:
            parts.append(bootstrap)

        memory = self._workspace.read_memory()
        if memory:
            parts.append(f"# Memory\n\n{memory}")

        skills = self._build_skills_section()
        if skills:
            parts.append(f"# Skills\n\n{skills}")

        return SECTION_SEPARATOR.join(parts)

    def build_messages(
        self,
        session: Session,
        current_message: str,
        channel: str = "",
        chat_id: str = "",
    ) -> list[LLMMessage]:
        """Return [system, *history, user] for one turn.

        If the session already ends with the current input (the loop appends
        it before building), that copy is dropped from history so it is only
        sent once, as the final user message.
        """
        system_prompt = self.build_system_prompt()
        if chat_id:
            lines = ["## Current Session"]
            if channel:
                lines.append(f"Channel: {channel}")
            lines.append(f"Chat ID: {chat_id}")
            system_prompt += "\n\n" + "\n".join(lines)

        history = session.history(self._history_window)
        if history and history[-1].role == "user" and history[-1].content == current_message:
            history = history[:-1]

        messages = [LLMMessage(role="system", content=system_prompt)]
        messages.extend(history)
        messages.append(LLMMessage(role="user", content=current_message))

        logger.debug(
            "Context built: system={} chars, history={} messages",
            len(system_prompt),
            len(history),
        )
        return messages

    def _build_identity_section(self) -> str:
        ws = self._workspace.root
        runtime = (
            f"{platform.system().lower()} {platform.machine()}, "
            f"Python {platform.python_version()}"
        )
        return (
            "# mikrobot\n\n"
            "You are mikrobot, a helpful, efficient AI assistant.\n"
            "You have access to tools that allow you to:\n"
            "- Read, write, and edit files\n"
            "- Execute shell commands\n\n"
            f"## Runtime\n{runtime} (mikrobot {__version__})\n\n"
            "## Workspace\n"
            f"Your workspace is at: {ws}\n"
            f"- Memory file: {ws}/memory/MEMORY.md\n"
            f"- Custom skills: {ws}/skills/{{skill-name}}/SKILL.md\n\n"
            "Reply directly with text when answering questions. "
            "Always be helpful, accurate, and concise."
        )

    def _build_bootstrap_section(self) -> str:
        return "\n\n".join(
            f"## {name}\n\n{content}" for name, content in self._workspace.read_bootstrap_files()
        )

    def _build_skills_section(self) -> str:
        tools = self._registry.list()
        if not tools:
            return ""

        lines = ["You have the following tools available:"]
        lines.extend(f"- {tool.name}: {tool.description}" for tool in tools)

        skills = self._workspace.list_skills()
        if skills:
            lines.append("")
            lines.append(
                "Additional skills available in workspace (use read_file to view SKILL.md):"
            )
            lines.extend(f"- {name}" for name in skills)
        return "\n".join(lines)
