"""Shared FastAPI dependencies injected into route handlers.

All dependencies pull from app.state, populated by create_api_app().
"""

from __future__ import annotations

from fastapi import Request

from mikrobot.agent.loop import AgentLoop


def get_agent(request: Request) -> AgentLoop:
    return request.app.state.agent


def is_ready(request: Request) -> bool:
    """True once the gateway has started its channels."""
    return bool(getattr(request.app.state, "ready", False))
