"""mikrobot gateway -- run the long-lived process.

The gateway connects:
  - REST API server (FastAPI + uvicorn) behind the middleware chain
  - Chat channels (Telegram) via the message bus
  - The outbound dispatcher that fans replies out to channels
  - One AgentLoop worker consuming inbound messages

Start: mikrobot gateway
Stop:  Ctrl+C (SIGINT) or SIGTERM for graceful shutdown
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Iterator
from dataclasses import dataclass

import typer
import uvicorn
from fastapi import FastAPI
from loguru import logger
from rich.console import Console

from mikrobot import __version__
from mikrobot.agent.loop import AgentLoop
from mikrobot.api import create_api_app
from mikrobot.bus.queue import MessageBus
from mikrobot.channels.manager import ChannelManager
from mikrobot.config import MikrobotConfig, load_config
from mikrobot.providers import LLMProvider, create_provider
from mikrobot.session import SessionManager
from mikrobot.workspace import WorkspaceManager

console = Console()


@dataclass(slots=True)
class GatewayRuntime:
    """Everything the gateway started, in the order it must be torn down."""

    app: FastAPI
    server: uvicorn.Server
    api_task: asyncio.Task
    agent: AgentLoop
    agent_task: asyncio.Task
    dispatch_task: asyncio.Task
    channels: ChannelManager
    provider: LLMProvider
    sessions: SessionManager


def gateway_command(
    host: str = typer.Option(None, "--host", "-H", help="Bind address (overrides config)."),  # noqa: B008
    port: int = typer.Option(None, "--port", "-p", help="Bind port (overrides config)."),  # noqa: B008
) -> None:
    """Start the mikrobot gateway: API + channels + agent worker."""
    from mikrobot.cli.app import state

    try:
        config = load_config(state.config_path)
        provider = create_provider(config)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    try:
        asyncio.run(_run_gateway(config, provider, host=host, port=port))
    except KeyboardInterrupt:
        console.print("\n[dim]Gateway shutdown by user.[/dim]")


async def _run_gateway(
    config: MikrobotConfig,
    provider: LLMProvider,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Main async entry point for the gateway process."""
    if host:
        config.gateway.host = host
    if port:
        config.gateway.port = port

    runtime = await start_gateway(config, provider)
    console.print(
        f"[bold cyan]mikrobot gateway {__version__} running[/bold cyan] on "
        f"http://{config.gateway.host}:{config.gateway.port}. Press Ctrl+C to stop."
    )

    shutdown_event = asyncio.Event()
    _install_signal_handlers(shutdown_event)

    # The API task finishing on its own (e.g. a bind failure) also ends the process.
    waiter = asyncio.create_task(shutdown_event.wait(), name="shutdown-waiter")
    await asyncio.wait({waiter, runtime.api_task}, return_when=asyncio.FIRST_COMPLETED)
    waiter.cancel()

    console.print("\n[dim]Shutting down gateway...[/dim]")
    await shutdown_gateway(runtime, config.gateway.shutdown_timeout)
    console.print("[green]Gateway stopped.[/green]")


async def start_gateway(config: MikrobotConfig, provider: LLMProvider) -> GatewayRuntime:
    """Build and start every gateway component.

    /ready reports true only once all enabled channels started; a gateway
    with no channels enabled is ready as soon as the worker is running.
    """
    ws = WorkspaceManager(config.agents.defaults.workspace.expanduser().resolve())
    if not ws.is_initialized:
        ws.initialize()

    bus = MessageBus(max_queue_size=config.gateway.bus_queue_size)
    sessions = SessionManager(ws.sessions_dir)
    agent = AgentLoop(config, provider, ws, session_manager=sessions)
    app = create_api_app(config, agent)

    channel_mgr = ChannelManager(config.channels)
    started = await channel_mgr.start_all(bus)
    if started:
        console.print(f"[green]Channels started:[/green] {', '.join(started)}")
    else:
        console.print("[yellow]No channels started. Only the HTTP API will accept messages.[/yellow]")

    dispatch_task = asyncio.create_task(bus.dispatch_outbound(), name="outbound-dispatcher")
    agent_task = asyncio.create_task(agent.run(bus), name="agent-loop")

    server = _build_api_server(app, config)
    api_task = asyncio.create_task(server.serve(), name="api-server")

    failed = channel_mgr.failed_channels
    app.state.ready = not failed
    if failed:
        logger.warning("Gateway not ready, channels failed to start: {}", ", ".join(failed))

    return GatewayRuntime(
        app=app,
        server=server,
        api_task=api_task,
        agent=agent,
        agent_task=agent_task,
        dispatch_task=dispatch_task,
        channels=channel_mgr,
        provider=provider,
        sessions=sessions,
    )


async def shutdown_gateway(runtime: GatewayRuntime, timeout: float) -> None:
    """Graceful drain: stop accepting, let in-flight HTTP finish, then tear down.

    Order: mark not ready and stop channels taking new messages, stop the
    HTTP server (in-flight requests get up to `timeout` seconds), stop
    channels, stop the agent worker and the dispatcher, then release the
    provider and flush unsaved sessions.
    """
    runtime.app.state.ready = False
    runtime.channels.pause_inbound()

    runtime.server.should_exit = True
    try:
        await asyncio.wait_for(asyncio.shield(runtime.api_task), timeout=timeout)
    except TimeoutError:
        logger.warning("HTTP server did not drain within {:.1f}s, forcing close", timeout)
        runtime.server.force_exit = True
        runtime.api_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await runtime.api_task
    except Exception as exc:
        logger.error("HTTP server stopped with error: {}", exc)

    await runtime.channels.stop_all()

    runtime.agent.stop()
    for task in (runtime.agent_task, runtime.dispatch_task):
        task.cancel()
    for task in (runtime.agent_task, runtime.dispatch_task):
        with contextlib.suppress(asyncio.CancelledError):
            await task

    await runtime.provider.close()
    runtime.sessions.close()
    logger.info("Gateway shutdown complete")


class _GatewayServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the gateway.

    The gateway's own handlers start shutdown_gateway(), which marks the
    service unready and pauses channels before asking uvicorn to drain.
    """

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def _build_api_server(app: FastAPI, config: MikrobotConfig) -> uvicorn.Server:
    uv_config = uvicorn.Config(
        app,
        host=config.gateway.host,
        port=config.gateway.port,
        log_level="warning",
        access_log=False,
        timeout_graceful_shutdown=max(1, int(config.gateway.shutdown_timeout)),
    )
    return _GatewayServer(uv_config)


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    """Install SIGINT/SIGTERM handlers that trigger graceful shutdown."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)
