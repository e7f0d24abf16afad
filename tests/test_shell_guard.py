"""Tests for the exec tool: deny-list, confinement, timeout and output format."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from mikrobot.tools.base import ToolContext
from mikrobot.tools.shell import ExecTool, check_command, has_traversal, resolve_working_dir


@pytest.fixture
def ctx(tmp_path: Path) -> ToolContext:
    return ToolContext(workspace_path=tmp_path, restrict_to_workspace=True, shell_timeout=10)


@pytest.fixture
def tool() -> ExecTool:
    return ExecTool()


class TestDenyList:
    @pytest.mark.parametrize(
        "command",
        [
            "rm -rf /",
            "rm -rf ~",
            "rm -fr build",
            "sudo rm -r -f /var",
            "dd if=/dev/zero of=/dev/sda",
            "mkfs.ext4 /dev/sdb1",
            "fdisk /dev/sda",
            "format c:",
            "echo junk > /dev/sda",
            "chmod -R 777 /",
            "chown -R nobody /",
            ":(){ :|:& };:",
            "shutdown -h now",
            "sudo reboot",
            "halt",
            "init 0",
            "systemctl stop nginx",
        ],
    )
    def test_dangerous_commands_match(self, command: str):
        assert check_command(command) is not None

    @pytest.mark.parametrize(
        "command",
        [
            "ls -la",
            "echo hello > /dev/null",
            "rm notes.txt",
            "git status",
            "systemctl status nginx",
            "python -m pytest",
        ],
    )
    def test_harmless_commands_pass(self, command: str):
        assert check_command(command) is None

    @pytest.mark.asyncio
    async def test_blocked_command_never_spawns(self, tool: ExecTool, ctx: ToolContext):
        with patch("asyncio.create_subprocess_shell") as spawn:
            result = await tool.execute({"command": "rm -rf /"}, ctx)
        spawn.assert_not_called()
        assert result.startswith("Error: Command blocked for safety:")


class TestConfinement:
    def test_traversal_detection(self):
        assert has_traversal("cat ../secret")
        assert has_traversal("cd foo/..")
        assert has_traversal(r"type ..\secret")
        assert not has_traversal("cat ./notes.txt")

    def test_resolve_working_dir_relative_and_default(self, tmp_path: Path):
        assert resolve_working_dir(None, tmp_path) == tmp_path
        assert resolve_working_dir("sub", tmp_path) == tmp_path / "sub"
        assert resolve_working_dir("/etc", tmp_path) == Path("/etc")

    @pytest.mark.asyncio
    async def test_traversal_blocked_when_restricted(self, tool: ExecTool, ctx: ToolContext):
        with patch("asyncio.create_subprocess_shell") as spawn:
            result = await tool.execute({"command": "cat ../outside.txt"}, ctx)
        spawn.assert_not_called()
        assert result == "Error: Path traversal not allowed"

    @pytest.mark.asyncio
    async def test_working_dir_outside_workspace_blocked(self, tool: ExecTool, ctx: ToolContext):
        with patch("asyncio.create_subprocess_shell") as spawn:
            result = await tool.execute({"command": "ls", "working_dir": "/"}, ctx)
        spawn.assert_not_called()
        assert result == "Error: Working directory must be within workspace"

    @pytest.mark.asyncio
    async def test_unrestricted_allows_outside_working_dir(self, tool: ExecTool, tmp_path: Path):
        outside = tmp_path / "outside"
        outside.mkdir()
        ws = tmp_path / "ws"
        ws.mkdir()
        ctx = ToolContext(workspace_path=ws, restrict_to_workspace=False, shell_timeout=10)

        result = await tool.execute({"command": "pwd", "working_dir": str(outside)}, ctx)
        assert str(outside) in result

    @pytest.mark.asyncio
    async def test_missing_working_dir(self, tool: ExecTool, ctx: ToolContext):
        result = await tool.execute({"command": "ls", "working_dir": "nope"}, ctx)
        assert result == "Error: Working directory does not exist: nope"

    @pytest.mark.asyncio
    async def test_missing_command(self, tool: ExecTool, ctx: ToolContext):
        assert await tool.execute({}, ctx) == "Error: command is required"
        assert await tool.execute({"command": "   "}, ctx) == "Error: command is required"


class TestExecution:
    @pytest.mark.asyncio
    async def test_stdout_returned(self, tool: ExecTool, ctx: ToolContext):
        result = await tool.execute({"command": "echo hello"}, ctx)
        assert result.strip() == "hello"

    @pytest.mark.asyncio
    async def test_runs_in_workspace(self, tool: ExecTool, ctx: ToolContext, tmp_path: Path):
        (tmp_path / "marker.txt").write_text("x")
        result = await tool.execute({"command": "ls"}, ctx)
        assert "marker.txt" in result

    @pytest.mark.asyncio
    async def test_stderr_and_exit_code(self, tool: ExecTool, ctx: ToolContext):
        result = await tool.execute({"command": "echo oops >&2; exit 3"}, ctx)
        assert "[stderr]\noops" in result
        assert result.endswith("[exit code: 3]")

    @pytest.mark.asyncio
    async def test_no_output(self, tool: ExecTool, ctx: ToolContext):
        assert await tool.execute({"command": "true"}, ctx) == "(no output)"

    @pytest.mark.asyncio
    async def test_timeout_keeps_partial_output(self, tool: ExecTool, ctx: ToolContext):
        result = await tool.execute({"command": "echo started; sleep 5", "timeout": 1}, ctx)
        assert result.startswith("Error: Command timed out after 1s")
        assert "started" in result

    @pytest.mark.asyncio
    async def test_invalid_timeout(self, tool: ExecTool, ctx: ToolContext):
        result = await tool.execute({"command": "echo hi", "timeout": "soon"}, ctx)
        assert result.startswith("Error: invalid timeout")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeout", [0, -5, "-1"])
    async def test_non_positive_timeout_rejected(self, tool: ExecTool, ctx: ToolContext, timeout):
        with patch("asyncio.create_subprocess_shell") as spawn:
            result = await tool.execute({"command": "echo hi", "timeout": timeout}, ctx)
        assert result.startswith("Error: invalid timeout")
        spawn.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_kills_child(self, tool: ExecTool, ctx: ToolContext, tmp_path: Path):
        pid_file = tmp_path / "pid"
        task = asyncio.create_task(tool.execute({"command": "echo $$ > pid; sleep 30"}, ctx))

        for _ in range(500):
            if pid_file.exists() and pid_file.read_text().strip():
                break
            await asyncio.sleep(0.01)
        pid = int(pid_file.read_text().strip())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
