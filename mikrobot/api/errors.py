"""Plain-text error handlers for the gateway API.

Every response the gateway produces is text/plain, errors included.
Details are logged server-side; clients only get a short message.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers that keep error bodies plain and generic."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> PlainTextResponse:
        logger.warning(
            "Validation error on {} {}: {}",
            request.method,
            request.url.path,
            exc.errors(),
        )
        return PlainTextResponse("invalid request", status_code=400)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> PlainTextResponse:
        """Last resort behind RecovererMiddleware; same generic 500."""
        logger.opt(exception=exc).error(
            "Unhandled error on {} {}: {}",
            request.method,
            request.url.path,
            exc,
        )
        return PlainTextResponse("internal server error", status_code=500)
