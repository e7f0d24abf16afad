from mikrobot.tools.base import Tool, ToolContext, ToolRegistry
from mikrobot.tools.filesystem import create_filesystem_tools
from mikrobot.tools.shell import ExecTool, create_shell_tools

__all__ = [
    "ExecTool",
    "Tool",
    "ToolContext",
    "ToolRegistry",
    "create_default_registry",
    "create_filesystem_tools",
    "create_shell_tools",
]


def create_default_registry() -> ToolRegistry:
    """Build a ToolRegistry pre-loaded with the built-in tools.

    Workspace, confinement and timeout are supplied per call through
    ToolContext, so the registry itself carries no configuration.
    """
    registry = ToolRegistry()
    registry.register_many(create_filesystem_tools())
    registry.register_many(create_shell_tools())
    return registry
