"""Tool capability contract and the name-keyed registry the agent dispatches through.

A tool never raises for bad input or a refused action: it returns a string
starting with "Error:" so the model can read it and try something else.
The registry applies the same rule to anything a tool lets escape, except
cancellation, which always propagates to the caller.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel

if TYPE_CHECKING:
    from mikrobot.config.schema import MikrobotConfig

ToolResult = str | BaseModel | dict[str, Any] | list[Any]


def _to_text(result: ToolResult) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json(indent=2)
    if isinstance(result, (dict, list)):
        return json.dumps(result, indent=2, default=str)
    return str(result)


@dataclass(slots=True, frozen=True)
class ToolContext:
    """Per-call settings: where the tool may act and how long exec may run."""

    workspace_path: Path
    restrict_to_workspace: bool = True
    shell_timeout: int = 60
    session_key: str = ""

    @classmethod
    def from_config(
        cls, config: MikrobotConfig, workspace_path: Path, session_key: str = ""
    ) -> ToolContext:
        exec_cfg = config.tools.exec
        return cls(
            workspace_path=workspace_path,
            restrict_to_workspace=exec_cfg.restrict_to_workspace,
            shell_timeout=exec_cfg.timeout,
            session_key=session_key,
        )


class Tool(ABC):
    """A named capability with a JSON Schema and an async execute()."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema object for the arguments."""

    @abstractmethod
    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        """Perform the action. Return "Error: ..." text instead of raising."""

    def to_definition(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """Tools keyed by name, kept in registration order.

    Registration happens while wiring up the agent; afterwards the registry
    is only read, so concurrent execute() calls need no locking.
    """

    __slots__ = ("_tools",)

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        replaced = tool.name in self._tools
        self._tools[tool.name] = tool
        if replaced:
            logger.warning("Tool '{}' re-registered; previous instance replaced", tool.name)
        else:
            logger.debug("Registered tool: {}", tool.name)

    def register_many(self, tools: list[Tool]) -> None:
        for tool in tools:
            self.register(tool)

    def unregister(self, name: str) -> bool:
        removed = self._tools.pop(name, None) is not None
        if removed:
            logger.debug("Unregistered tool: {}", name)
        return removed

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def list(self) -> list[Tool]:
        return list(self._tools.values())

    def get_definitions(self) -> list[dict[str, Any]]:
        """Function-calling definitions sent with every LLM request."""
        return [tool.to_definition() for tool in self._tools.values()]

    async def execute(self, name: str, params: dict[str, Any], ctx: ToolContext) -> str:
        """Dispatch one call and always hand back text.

        An unknown name or an exception escaping the tool is reported as an
        error string. asyncio.CancelledError is a BaseException and is not
        caught here.
        """
        tool = self._tools.get(name)
        if tool is None:
            return f"Error: Unknown tool '{name}'. Available: {', '.join(self._tools)}"

        started = time.perf_counter()
        try:
            result = await tool.execute(params, ctx)
        except Exception as exc:
            logger.opt(exception=exc).error("Tool {} raised: {}", name, exc)
            return f"Error executing {name}: {type(exc).__name__}: {exc}"
        logger.debug("Tool {} finished in {:.0f}ms", name, (time.perf_counter() - started) * 1000)
        return _to_text(result)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
