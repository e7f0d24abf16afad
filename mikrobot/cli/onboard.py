"""mikrobot onboard -- write a starter config and initialize the workspace."""

from __future__ import annotations

import typer
from pydantic import SecretStr
from rich.console import Console
from rich.panel import Panel

from mikrobot.config import MikrobotConfig, get_config_path, load_config, save_config
from mikrobot.workspace import WorkspaceManager

console = Console()


def onboard_command(
    api_key: str = typer.Option(None, "--api-key", help="API key for the chat provider."),  # noqa: B008
    model: str = typer.Option(None, "--model", help="Model name, e.g. gpt-4o."),  # noqa: B008
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file."),  # noqa: B008
) -> None:
    """Create config.json (if missing) and the workspace bootstrap files.

    An existing config is loaded and only the given options are applied,
    unless --force resets it to defaults first.
    """
    from mikrobot.cli.app import state

    config_path = (state.config_path or get_config_path()).expanduser()

    if config_path.exists() and not force:
        try:
            config = load_config(config_path)
        except ValueError as exc:
            console.print(f"[red]{exc}[/red]")
            console.print("[dim]Re-run with --force to replace it.[/dim]")
            raise typer.Exit(1) from exc
    else:
        config = MikrobotConfig()

    if api_key:
        config.providers.openai.api_key = SecretStr(api_key)
    if model:
        config.agents.defaults.model = model

    saved_path = save_config(config, config_path)

    ws_path = config.agents.defaults.workspace.expanduser().resolve()
    ws = WorkspaceManager(ws_path)
    created = ws.initialize()

    console.print(
        Panel(
            f"✓ Config saved: [cyan]{saved_path}[/cyan]\n"
            f"✓ Workspace: [cyan]{ws_path}[/cyan] ({len(created)} new files)",
            border_style="green",
            expand=False,
        )
    )
    if not config.providers.openai.api_key.get_secret_value():
        console.print(
            "[yellow]No API key set.[/yellow] Pass --api-key or export OPENAI_API_KEY."
        )
