"""Probe endpoints.

GET /health  liveness: always 200 while the process serves HTTP
GET /ready   readiness: 200 once channels are up, 503 before that
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from mikrobot.api.dependencies import is_ready

router = APIRouter(tags=["health"])


@router.get("/health", response_class=PlainTextResponse)
async def health_probe() -> PlainTextResponse:
    return PlainTextResponse("ok")


@router.get("/ready", response_class=PlainTextResponse)
async def readiness_probe(ready: bool = Depends(is_ready)) -> PlainTextResponse:  # noqa: B008
    if ready:
        return PlainTextResponse("ready")
    return PlainTextResponse("not ready", status_code=503)
