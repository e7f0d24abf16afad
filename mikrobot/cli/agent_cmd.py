"""mikrobot agent -- send one message to the agent and print the reply.

One-shot:  mikrobot agent -m "What is in my workspace?"
Piped:     cat error.log | mikrobot agent -m "Explain this"
"""

from __future__ import annotations

import asyncio
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown

from mikrobot.agent.loop import DEFAULT_SESSION_KEY, AgentLoop, AgentRunResult
from mikrobot.config import MikrobotConfig, load_config
from mikrobot.providers import create_provider
from mikrobot.workspace import WorkspaceManager

console = Console()


def agent_command(
    message: str = typer.Option(None, "--message", "-m", help="Message to send."),  # noqa: B008
    session: str = typer.Option(  # noqa: B008
        DEFAULT_SESSION_KEY, "--session", "-s", help="Session key (channel:chat_id)."
    ),
) -> None:
    """Run a single agent turn and print the response."""
    from mikrobot.cli.app import state

    try:
        config = load_config(state.config_path)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    text = _read_input(message)
    if not text:
        console.print("[red]Nothing to send. Use -m/--message or pipe text on stdin.[/red]")
        raise typer.Exit(1)

    try:
        result = asyncio.run(_run_once(config, text, session))
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc
    except Exception as exc:
        logger.opt(exception=exc).debug("Agent turn failed")
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    console.print(Markdown(result.response))
    logger.debug(
        "Turn finished: iterations={} tools={} tokens={}",
        result.iterations,
        len(result.tool_calls_made),
        result.usage.total_tokens,
    )


def _read_input(message: str | None) -> str:
    """Combine -m with piped stdin, stdin first."""
    piped = ""
    if not sys.stdin.isatty():
        piped = sys.stdin.read().strip()
    if piped and message:
        return f"{piped}\n\n{message}"
    return piped or (message or "")


async def _run_once(config: MikrobotConfig, text: str, session_key: str) -> AgentRunResult:
    provider = create_provider(config)
    ws = WorkspaceManager(config.agents.defaults.workspace.expanduser().resolve())
    if not ws.is_initialized:
        ws.initialize()

    agent = AgentLoop(config, provider, ws)
    try:
        return await agent.process_direct(text, session_key)
    finally:
        await provider.close()
        agent.sessions.close()
