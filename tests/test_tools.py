"""Tests for the tool system: registry, definitions and filesystem tools."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest
from pydantic import BaseModel

from mikrobot.config.schema import MikrobotConfig
from mikrobot.tools import create_default_registry
from mikrobot.tools.base import Tool, ToolContext, ToolRegistry
from mikrobot.tools.filesystem import EditFileTool, ListDirTool, ReadFileTool, WriteFileTool

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class DummyTool(Tool):
    """Minimal tool implementation for testing."""

    @property
    def name(self) -> str:
        return "dummy"

    @property
    def description(self) -> str:
        return "A dummy tool for testing."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"msg": {"type": "string"}}, "required": ["msg"]}

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> str:
        return f"echo: {params.get('msg', '')}"


class ExplodingTool(DummyTool):
    @property
    def name(self) -> str:
        return "explode"

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> str:
        raise RuntimeError("kaboom")


class SlowTool(DummyTool):
    @property
    def name(self) -> str:
        return "slow"

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> str:
        await asyncio.sleep(10)
        return "done"


class _Report(BaseModel):
    status: str
    count: int


class ModelTool(DummyTool):
    @property
    def name(self) -> str:
        return "report"

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> _Report:
        return _Report(status="ok", count=2)


@pytest.fixture
def ctx(tmp_path: Path) -> ToolContext:
    return ToolContext(workspace_path=tmp_path)


# ---------------------------------------------------------------------------
# ToolRegistry core operations
# ---------------------------------------------------------------------------


class TestRegistryCore:
    def test_register_and_get(self):
        registry = ToolRegistry()
        tool = DummyTool()
        registry.register(tool)

        assert "dummy" in registry
        assert registry.get("dummy") is tool
        assert len(registry) == 1

    def test_list_keeps_registration_order(self):
        registry = ToolRegistry()
        registry.register_many([ModelTool(), DummyTool(), ExplodingTool()])
        assert [t.name for t in registry.list()] == ["report", "dummy", "explode"]
        assert registry.names() == ["report", "dummy", "explode"]

    def test_register_same_name_replaces(self):
        registry = ToolRegistry()
        first, second = DummyTool(), DummyTool()
        registry.register(first)
        registry.register(second)
        assert len(registry) == 1
        assert registry.get("dummy") is second

    def test_unregister(self):
        registry = ToolRegistry()
        registry.register(DummyTool())
        assert registry.unregister("dummy") is True
        assert registry.unregister("dummy") is False
        assert "dummy" not in registry

    def test_definition_shape(self):
        definition = DummyTool().to_definition()
        assert definition == {
            "type": "function",
            "function": {
                "name": "dummy",
                "description": "A dummy tool for testing.",
                "parameters": DummyTool().parameters,
            },
        }


class TestRegistryExecute:
    @pytest.mark.asyncio
    async def test_execute_known_tool(self, ctx: ToolContext):
        registry = ToolRegistry()
        registry.register(DummyTool())
        assert await registry.execute("dummy", {"msg": "hi"}, ctx) == "echo: hi"

    @pytest.mark.asyncio
    async def test_unknown_tool_lists_available(self, ctx: ToolContext):
        registry = ToolRegistry()
        registry.register(DummyTool())
        result = await registry.execute("missing", {}, ctx)
        assert result == "Error: Unknown tool 'missing'. Available: dummy"

    @pytest.mark.asyncio
    async def test_exception_becomes_error_text(self, ctx: ToolContext):
        registry = ToolRegistry()
        registry.register(ExplodingTool())
        result = await registry.execute("explode", {}, ctx)
        assert result == "Error executing explode: RuntimeError: kaboom"

    @pytest.mark.asyncio
    async def test_structured_result_is_serialized(self, ctx: ToolContext):
        registry = ToolRegistry()
        registry.register(ModelTool())
        result = await registry.execute("report", {}, ctx)
        assert '"status": "ok"' in result
        assert '"count": 2' in result

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self, ctx: ToolContext):
        registry = ToolRegistry()
        registry.register(SlowTool())
        task = asyncio.create_task(registry.execute("slow", {}, ctx))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestDefaultRegistry:
    def test_builtin_tools_registered(self):
        registry = create_default_registry()
        assert set(registry.names()) == {"read_file", "write_file", "edit_file", "list_dir", "exec"}

    def test_definitions_for_all(self):
        registry = create_default_registry()
        definitions = registry.get_definitions()
        assert len(definitions) == len(registry)
        for defn in definitions:
            assert defn["type"] == "function"
            assert defn["function"]["parameters"]["type"] == "object"

    def test_iteration_follows_registration_order(self):
        registry = create_default_registry()
        assert [tool.name for tool in registry] == registry.names()


def test_tool_context_from_config(config: MikrobotConfig, tmp_path: Path):
    ctx = ToolContext.from_config(config, tmp_path, "telegram:1")
    assert ctx.workspace_path == tmp_path
    assert ctx.restrict_to_workspace is config.tools.exec.restrict_to_workspace
    assert ctx.shell_timeout == config.tools.exec.timeout
    assert ctx.session_key == "telegram:1"


# ---------------------------------------------------------------------------
# Filesystem tools
# ---------------------------------------------------------------------------


class TestFilesystemTools:
    @pytest.mark.asyncio
    async def test_write_then_read(self, ctx: ToolContext, tmp_path: Path):
        result = await WriteFileTool().execute({"path": "notes/a.txt", "content": "hello"}, ctx)
        assert result == "Successfully wrote 5 bytes to notes/a.txt"
        assert (tmp_path / "notes" / "a.txt").read_text() == "hello"

        assert await ReadFileTool().execute({"path": "notes/a.txt"}, ctx) == "hello"

    @pytest.mark.asyncio
    async def test_read_missing_file(self, ctx: ToolContext):
        result = await ReadFileTool().execute({"path": "nope.txt"}, ctx)
        assert result == "Error: file not found: nope.txt"

    @pytest.mark.asyncio
    async def test_read_requires_path(self, ctx: ToolContext):
        assert await ReadFileTool().execute({}, ctx) == "Error: path is required"

    @pytest.mark.asyncio
    async def test_path_outside_workspace_rejected(self, ctx: ToolContext):
        result = await ReadFileTool().execute({"path": "../../etc/passwd"}, ctx)
        assert result.startswith("Error: path '../../etc/passwd' is outside the workspace")

        result = await WriteFileTool().execute({"path": "/tmp/evil.txt", "content": "x"}, ctx)
        assert "outside the workspace" in result

    @pytest.mark.asyncio
    async def test_edit_replaces_first_occurrence(self, ctx: ToolContext, tmp_path: Path):
        target = tmp_path / "a.txt"
        target.write_text("one two one")

        result = await EditFileTool().execute(
            {"path": "a.txt", "old_text": "one", "new_text": "1"}, ctx
        )
        assert result == "Successfully edited a.txt"
        assert target.read_text() == "1 two one"

    @pytest.mark.asyncio
    async def test_edit_text_not_found(self, ctx: ToolContext, tmp_path: Path):
        (tmp_path / "a.txt").write_text("abc")
        result = await EditFileTool().execute(
            {"path": "a.txt", "old_text": "zzz", "new_text": "y"}, ctx
        )
        assert result == "Error: text not found in file: a.txt"

    @pytest.mark.asyncio
    async def test_list_dir(self, ctx: ToolContext, tmp_path: Path):
        (tmp_path / "sub").mkdir()
        (tmp_path / "file.txt").write_text("12345")

        result = await ListDirTool().execute({}, ctx)
        lines = result.splitlines()
        assert lines[0] == "Contents of .:"
        assert "  [FILE] file.txt (5 bytes)" in lines
        assert "  [DIR]  sub/" in lines
