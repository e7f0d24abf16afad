"""mikrobot status: display system status overview."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from mikrobot.config import get_config_path, load_config
from mikrobot.security import redact_api_key
from mikrobot.session import SessionManager
from mikrobot.workspace import WorkspaceManager

console = Console()


def status_command() -> None:
    """Show config, provider, workspace, sessions and channels."""
    from mikrobot.cli.app import state

    config_path = (state.config_path or get_config_path()).expanduser()
    try:
        config = load_config(config_path)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    defaults = config.agents.defaults
    ws_path = defaults.workspace.expanduser().resolve()
    ws = WorkspaceManager(ws_path)

    session_count = 0
    if ws.sessions_dir.exists():
        session_count = len(SessionManager(ws.sessions_dir).list_sessions())

    api_key = config.providers.openai.api_key.get_secret_value()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Config", f"{config_path} " + ("" if config_path.exists() else "[dim](missing)[/dim]"))
    table.add_row("Model", defaults.model)
    table.add_row("API Base", config.providers.openai.api_base)
    table.add_row("API Key", redact_api_key(api_key) if api_key else "[red]not set[/red]")
    table.add_row("Tool Iterations", str(defaults.max_tool_iterations))
    table.add_row("", "")
    table.add_row("Workspace", str(ws_path))
    table.add_row("Workspace Status", "Initialized" if ws.is_initialized else "Not initialized")
    table.add_row("Sessions", str(session_count))
    table.add_row("Sandbox Mode", "Enabled" if config.tools.exec.restrict_to_workspace else "Disabled")
    table.add_row("Shell Timeout", f"{config.tools.exec.timeout}s")
    table.add_row("", "")

    tg = config.channels.telegram
    table.add_row(
        "Channels",
        "telegram [green](enabled)[/green]" if tg.enabled else "telegram [dim](disabled)[/dim]",
    )
    table.add_row("Gateway", f"http://{config.gateway.host}:{config.gateway.port}")

    console.print(Panel(table, title="[bold cyan]mikrobot Status[/bold cyan]", expand=False))
