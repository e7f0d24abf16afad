"""Main CLI application: registers all subcommands and global options."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from mikrobot import __version__
from mikrobot.logging import setup_logging

app = typer.Typer(
    name="mikrobot",
    help="mikrobot - personal assistant gateway and agent.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

_console = Console()


class _GlobalState:
    """Shared state set by the top-level callback, consumed by subcommands."""

    config_path: Path | None = None
    verbose: bool = False
    quiet: bool = False


state = _GlobalState()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show DEBUG-level logs."),  # noqa: B008
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress logs below WARNING."),  # noqa: B008
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.json."),  # noqa: B008
) -> None:
    """mikrobot - personal assistant gateway and agent."""
    state.verbose = verbose
    state.quiet = quiet
    state.config_path = config
    setup_logging(verbose=verbose, quiet=quiet)


def version_command() -> None:
    """Print the installed version."""
    _console.print(f"mikrobot {__version__}")


# Register subcommands; imported at bottom to avoid circular deps
from mikrobot.cli.agent_cmd import agent_command  # noqa: E402
from mikrobot.cli.gateway_cmd import gateway_command  # noqa: E402
from mikrobot.cli.onboard import onboard_command  # noqa: E402
from mikrobot.cli.status_cmd import status_command  # noqa: E402

app.command(name="onboard", help="Write a default config and initialize the workspace.")(
    onboard_command
)
app.command(name="agent", help="Send one message to the agent and print the reply.")(
    agent_command
)
app.command(name="gateway", help="Run the HTTP API, chat channels and the agent worker.")(
    gateway_command
)
app.command(name="status", help="Show configuration and workspace status.")(status_command)
app.command(name="version", help="Show the mikrobot version.")(version_command)
