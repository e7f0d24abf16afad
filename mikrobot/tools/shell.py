"""Shell command execution tool with safety guards.

Commands run through the system shell under a wall-clock timeout. Before
anything is spawned the command is checked against a deny-list of
destructive patterns and, when the workspace restriction is on, against
path traversal patterns and the working directory confinement rule.

The deny-list is advisory, not a sandbox: aliases, symlinks, variable
expansion and encoded payloads can all get around it.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import re
import signal
from pathlib import Path
from typing import Any

from loguru import logger

from mikrobot.tools.base import Tool, ToolContext

DENY_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\brm\s+(-[a-z]+\s+)*[/~]",  # rm targeting root or home
        r"\brm\s+-(?=[a-z]*r)(?=[a-z]*f)[a-z]+\b",  # rm -rf anywhere
        r"\bdd\b.*\bof=/dev/",
        r"\bmkfs\b",
        r"\bfdisk\b",
        r"\bformat\s+[a-z]:",
        r">\s*/dev/(?!null\b|stdout\b|stderr\b)",  # redirect into a device
        r"\bchmod\s+-R\s+777\b",
        r"\bchown\s+-R\b.*\s[/~]",
        r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",  # fork bomb
        r"\bshutdown\b",
        r"\breboot\b",
        r"\bhalt\b",
        r"\binit\s+[0-6]\b",
        r"\bsystemctl\s+(start|stop|restart|enable|disable|poweroff|reboot|halt)\b",
    )
)

TRAVERSAL_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p) for p in (r"\.\./", r"\.\.\\", r"/\.\.", r"\\\.\.")
)

_OUTPUT_LIMIT = 50_000
_DRAIN_GRACE = 1.0


def check_command(command: str) -> str | None:
    """Return the deny pattern a command matches, or None if it is allowed."""
    for pattern in DENY_PATTERNS:
        if pattern.search(command):
            return pattern.pattern
    return None


def has_traversal(command: str) -> bool:
    return any(pattern.search(command) for pattern in TRAVERSAL_PATTERNS)


def resolve_working_dir(raw: str | None, workspace: Path) -> Path:
    """Resolve a working directory relative to the workspace.

    Uses lexical normalization only, so symlinks are not followed.
    """
    if not raw:
        return Path(os.path.abspath(workspace))
    p = Path(raw).expanduser()
    if not p.is_absolute():
        p = workspace / p
    return Path(os.path.abspath(p))


def _truncate(output: str) -> str:
    if len(output) <= _OUTPUT_LIMIT:
        return output
    half = _OUTPUT_LIMIT // 2
    return (
        output[:half]
        + f"\n\n[... truncated {len(output) - _OUTPUT_LIMIT} chars ...]\n\n"
        + output[-half:]
    )


async def _drain(stream: asyncio.StreamReader | None, buf: bytearray) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        buf.extend(chunk)


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the shell and everything it started."""
    if proc.returncode is not None:
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        with contextlib.suppress(ProcessLookupError):
            proc.kill()


class ExecTool(Tool):
    @property
    def name(self) -> str:
        return "exec"

    @property
    def description(self) -> str:
        return "Execute a shell command and return its output."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to execute.",
                },
                "working_dir": {
                    "type": "string",
                    "description": "Optional working directory, relative to the workspace.",
                },
                "timeout": {
                    "type": "integer",
                    "description": "Timeout in seconds. Defaults to the configured exec timeout.",
                },
            },
            "required": ["command"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> str:
        command = params.get("command")
        if not isinstance(command, str) or not command.strip():
            return "Error: command is required"

        raw_timeout = params.get("timeout")
        if raw_timeout is None:
            raw_timeout = ctx.shell_timeout or 60
        try:
            timeout = float(raw_timeout)
        except (TypeError, ValueError):
            return f"Error: invalid timeout: {raw_timeout!r}"
        if timeout <= 0:
            return f"Error: invalid timeout: {raw_timeout!r} (must be positive)"

        matched = check_command(command)
        if matched:
            logger.warning("Blocked dangerous command: {} (pattern {})", command, matched)
            return f"Error: Command blocked for safety: {matched}"

        workspace = Path(os.path.abspath(ctx.workspace_path))
        cwd = resolve_working_dir(params.get("working_dir"), workspace)

        if ctx.restrict_to_workspace:
            if has_traversal(command):
                logger.warning("Blocked path traversal in command: {}", command)
                return "Error: Path traversal not allowed"
            if not cwd.is_relative_to(workspace):
                logger.warning("Blocked working directory outside workspace: {}", cwd)
                return "Error: Working directory must be within workspace"

        if not cwd.is_dir():
            return f"Error: Working directory does not exist: {params.get('working_dir')}"

        logger.info("Executing shell: {} (timeout={}s, cwd={})", command, timeout, cwd)
        try:
            return await self._run(command, cwd, timeout)
        except FileNotFoundError:
            return f"Error: Shell not found. Cannot execute: {command}"
        except OSError as exc:
            return f"Error: OS error executing command: {exc}"

    async def _run(self, command: str, cwd: Path, timeout: float) -> str:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
            start_new_session=True,
        )
        stdout_buf = bytearray()
        stderr_buf = bytearray()
        readers = [
            asyncio.create_task(_drain(proc.stdout, stdout_buf)),
            asyncio.create_task(_drain(proc.stderr, stderr_buf)),
        ]

        timed_out = False
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
        except TimeoutError:
            timed_out = True
            _kill(proc)
            await proc.wait()
        except asyncio.CancelledError:
            _kill(proc)
            for reader in readers:
                reader.cancel()
            # Reap the child so nothing outlives the cancelled call.
            await asyncio.shield(proc.wait())
            raise

        # Grandchildren may still hold the pipes open; take what is buffered.
        _, pending = await asyncio.wait(readers, timeout=_DRAIN_GRACE)
        for reader in pending:
            reader.cancel()

        stdout = stdout_buf.decode("utf-8", errors="replace")
        stderr = stderr_buf.decode("utf-8", errors="replace")

        parts: list[str] = []
        if stdout:
            parts.append(stdout)
        if stderr:
            parts.append(f"[stderr]\n{stderr}")

        if timed_out:
            logger.warning("Shell command timed out after {}s: {}", timeout, command)
            header = f"Error: Command timed out after {timeout:g}s"
            return _truncate("\n".join([header, *parts]))

        if proc.returncode != 0:
            parts.append(f"[exit code: {proc.returncode}]")

        output = "\n".join(parts) if parts else "(no output)"
        return _truncate(output)


def create_shell_tools() -> list[Tool]:
    return [ExecTool()]
