"""File system tools: read, write, edit and list.

All path operations go through _resolve_path(), which confines paths to the
workspace when restrict_to_workspace is enabled. Problems are reported as
"Error: ..." strings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from mikrobot.tools.base import Tool, ToolContext

_READ_LIMIT = 100_000


def _resolve_path(raw_path: str, ctx: ToolContext) -> Path:
    """Resolve a user-provided path against the workspace.

    Raises ValueError when confinement is on and the path escapes the
    workspace.
    """
    p = Path(raw_path).expanduser()
    if not p.is_absolute():
        p = ctx.workspace_path / p
    resolved = p.resolve()

    if ctx.restrict_to_workspace:
        workspace_resolved = ctx.workspace_path.resolve()
        if not resolved.is_relative_to(workspace_resolved):
            raise ValueError(f"path '{raw_path}' is outside the workspace")

    return resolved


def _require(params: dict[str, Any], key: str) -> str | None:
    value = params.get(key)
    if not isinstance(value, str) or not value:
        return None
    return value


class ReadFileTool(Tool):
    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Read the contents of a file at the specified path."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File path to read (relative to workspace or absolute).",
                },
            },
            "required": ["path"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> str:
        raw = _require(params, "path")
        if raw is None:
            return "Error: path is required"
        try:
            resolved = _resolve_path(raw, ctx)
        except ValueError as exc:
            return f"Error: {exc}"

        if not resolved.is_file():
            return f"Error: file not found: {raw}"

        try:
            content = resolved.read_text(encoding="utf-8", errors="replace")
        except PermissionError:
            return f"Error: permission denied: {raw}"
        except OSError as exc:
            return f"Error reading file: {exc}"

        if len(content) > _READ_LIMIT:
            content = content[:_READ_LIMIT] + "\n[truncated at 100,000 characters]"
        return content


class WriteFileTool(Tool):
    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return "Write content to a file at the specified path. Creates parent directories if needed."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File path to write (relative to workspace or absolute).",
                },
                "content": {
                    "type": "string",
                    "description": "Content to write to the file.",
                },
            },
            "required": ["path", "content"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> str:
        raw = _require(params, "path")
        if raw is None:
            return "Error: path is required"
        content = params.get("content", "")
        if not isinstance(content, str):
            return "Error: content must be a string"
        try:
            resolved = _resolve_path(raw, ctx)
        except ValueError as exc:
            return f"Error: {exc}"

        try:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            tmp = resolved.with_suffix(resolved.suffix + ".tmp")
            tmp.write_text(content, encoding="utf-8")
            tmp.rename(resolved)
        except PermissionError:
            return f"Error: permission denied: {raw}"
        except OSError as exc:
            return f"Error writing file: {exc}"

        logger.debug("write_file: {} ({} chars)", resolved, len(content))
        return f"Successfully wrote {len(content.encode('utf-8'))} bytes to {raw}"


class EditFileTool(Tool):
    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return "Edit a file by replacing the first occurrence of old_text with new_text."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File path to edit."},
                "old_text": {"type": "string", "description": "Exact text to find."},
                "new_text": {"type": "string", "description": "Replacement text."},
            },
            "required": ["path", "old_text", "new_text"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> str:
        raw = _require(params, "path")
        if raw is None:
            return "Error: path is required"
        old_text = _require(params, "old_text")
        if old_text is None:
            return "Error: old_text is required"
        new_text = params.get("new_text", "")
        try:
            resolved = _resolve_path(raw, ctx)
        except ValueError as exc:
            return f"Error: {exc}"

        if not resolved.is_file():
            return f"Error: file not found: {raw}"

        try:
            content = resolved.read_text(encoding="utf-8")
        except OSError as exc:
            return f"Error reading file: {exc}"

        if old_text not in content:
            return f"Error: text not found in file: {raw}"

        updated = content.replace(old_text, str(new_text), 1)
        try:
            tmp = resolved.with_suffix(resolved.suffix + ".tmp")
            tmp.write_text(updated, encoding="utf-8")
            tmp.rename(resolved)
        except OSError as exc:
            return f"Error writing file: {exc}"
        return f"Successfully edited {raw}"


class ListDirTool(Tool):
    @property
    def name(self) -> str:
        return "list_dir"

    @property
    def description(self) -> str:
        return "List the contents of a directory."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Directory path to list. Defaults to the workspace.",
                },
            },
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> str:
        raw = _require(params, "path") or "."
        try:
            resolved = _resolve_path(raw, ctx)
        except ValueError as exc:
            return f"Error: {exc}"

        if not resolved.is_dir():
            return f"Error: directory not found: {raw}"

        try:
            items = sorted(resolved.iterdir())
        except PermissionError:
            return f"Error: permission denied: {raw}"

        lines = [f"Contents of {raw}:"]
        for item in items:
            if item.is_dir():
                lines.append(f"  [DIR]  {item.name}/")
                continue
            try:
                lines.append(f"  [FILE] {item.name} ({item.stat().st_size} bytes)")
            except OSError:
                lines.append(f"  [FILE] {item.name}")
        return "\n".join(lines)


def create_filesystem_tools() -> list[Tool]:
    return [ReadFileTool(), WriteFileTool(), EditFileTool(), ListDirTool()]
