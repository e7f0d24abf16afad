"""FastAPI application factory for the gateway HTTP API.

create_api_app() wires routes, the middleware chain and shared state.
The agent stack itself is built by the caller (the gateway command) so
the same AgentLoop serves both HTTP and the message bus.
"""

from __future__ import annotations

import sys

from fastapi import FastAPI
from loguru import logger

from mikrobot import __version__
from mikrobot.agent.loop import AgentLoop
from mikrobot.api.errors import register_error_handlers
from mikrobot.api.middleware import chain, default_middleware
from mikrobot.api.rate_limit import TokenBucketRateLimiter
from mikrobot.api.routers import chat, health
from mikrobot.config.schema import MikrobotConfig


def create_api_app(
    config: MikrobotConfig,
    agent: AgentLoop,
    *,
    limiter: TokenBucketRateLimiter | None = None,
) -> FastAPI:
    """Build the gateway FastAPI app.

    app.state.ready starts False; the gateway flips it once channels have
    started so /ready can report it.
    """
    gw = config.gateway

    app = FastAPI(
        title="mikrobot gateway",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = config
    app.state.agent = agent
    app.state.ready = False
    app.state.rate_limiter = limiter or TokenBucketRateLimiter(
        gw.rate_limit_rps, gw.rate_limit_burst
    )

    chain(app, default_middleware(app.state.rate_limiter, gw.max_body_bytes))
    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(chat.router)

    _print_startup_warnings(config)
    logger.debug(
        "API app created: rate={}/s burst={} max_body={}B",
        gw.rate_limit_rps,
        gw.rate_limit_burst,
        gw.max_body_bytes,
    )
    return app


def _print_startup_warnings(config: MikrobotConfig) -> None:
    """Print security-relevant warnings to stderr."""
    if config.gateway.host == "0.0.0.0":
        print(
            "\n  WARNING: API bound to 0.0.0.0 and reachable from all network interfaces.\n"
            "  X-Forwarded-For is trusted for rate limiting; put a proxy in front.\n",
            file=sys.stderr,
        )

    if not config.tools.exec.restrict_to_workspace:
        print(
            "  WARNING: Workspace sandbox is DISABLED. File and shell tools can access\n"
            "  any path on the host filesystem.\n",
            file=sys.stderr,
        )
