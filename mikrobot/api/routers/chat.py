"""Chat endpoint.

POST /chat?message=...&session=...  blocking request/response, text/plain
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from loguru import logger

from mikrobot.agent.loop import AgentLoop
from mikrobot.api.dependencies import get_agent

router = APIRouter(tags=["chat"])

DEFAULT_HTTP_SESSION = "local:default"


@router.post("/chat", response_class=PlainTextResponse)
async def chat(
    message: str | None = None,
    session: str | None = None,
    agent: AgentLoop = Depends(get_agent),  # noqa: B008
) -> PlainTextResponse:
    """Run one agent turn and return the reply as plain text.

    Internal failures are logged in full but only a generic 500 is returned.
    """
    if not message:
        return PlainTextResponse("missing message parameter", status_code=400)

    session_key = session or DEFAULT_HTTP_SESSION
    logger.info("HTTP chat request: session={} len={}", session_key, len(message))

    try:
        result = await agent.process_direct(message, session_key)
    except Exception as exc:
        logger.opt(exception=exc).error("/chat failed for {}: {}", session_key, exc)
        return PlainTextResponse("internal server error", status_code=500)

    return PlainTextResponse(result.response)
