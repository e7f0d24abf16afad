"""HTTP boundary middleware for the gateway API.

Default stack, outermost first (see chain()):
  1. RecovererMiddleware: any unhandled exception becomes a plain 500
  2. MaxBodyBytesMiddleware: rejects bodies larger than the limit with 413
  3. RateLimitMiddleware: per-client token bucket, 429 when empty
  4. AuditLogMiddleware: one log line per request
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Sequence

from fastapi import FastAPI, Request, Response
from loguru import logger
from starlette.datastructures import Headers
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from mikrobot.api.rate_limit import TokenBucketRateLimiter, client_key


class BodyTooLargeError(Exception):
    """Raised to a body reader once the request exceeds the byte limit."""


class RecovererMiddleware(BaseHTTPMiddleware):
    """Turn any downstream exception into a generic 500 and keep serving."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.opt(exception=exc).error(
                "HTTP handler failure on {} {}: {}", request.method, request.url.path, exc
            )
            return PlainTextResponse("internal server error", status_code=500)


class MaxBodyBytesMiddleware:
    """Cap request body size at max_bytes; 0 or less disables the cap.

    A declared Content-Length over the limit is rejected up front. Bodies
    without one (chunked) are counted as they are read and the reader gets
    BodyTooLargeError once the limit is crossed, which is answered with 413
    as long as no response has started.
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self._max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self._max_bytes <= 0:
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self._max_bytes:
            logger.warning("Rejected request body of {} bytes", declared)
            await self._reject(scope, receive, send)
            return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self._max_bytes:
                    raise BodyTooLargeError(f"request body exceeds {self._max_bytes} bytes")
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except BodyTooLargeError:
            if response_started:
                raise
            logger.warning("Rejected streamed request body over {} bytes", self._max_bytes)
            await self._reject(scope, receive, send)

    @staticmethod
    async def _reject(scope: Scope, receive: Receive, send: Send) -> None:
        response = PlainTextResponse("request body too large", status_code=413)
        await response(scope, receive, send)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Deny requests once a client's token bucket is empty."""

    def __init__(self, app: ASGIApp, limiter: TokenBucketRateLimiter) -> None:
        super().__init__(app)
        self._limiter = limiter

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        key = client_key(request)
        if not self._limiter.allow(key):
            logger.debug("Rate limit exceeded for {}", key)
            return PlainTextResponse(
                "rate limit exceeded", status_code=429, headers={"Retry-After": "1"}
            )
        return await call_next(request)


class AuditLogMiddleware(BaseHTTPMiddleware):
    """Log every API request with method, path, status code, duration, and client."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        response = await call_next(request)

        logger.info(
            "API {} {} {} {:.0f}ms client={} request_id={}",
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - start) * 1000,
            client_key(request),
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response


def chain(app: FastAPI, middleware: Sequence[Middleware]) -> FastAPI:
    """Install middleware so the first entry is the outermost layer.

    chain(app, [a, b]) serves requests as a(b(app)). Starlette treats the
    most recently added middleware as outermost, hence the reversed order.
    """
    for mw in reversed(middleware):
        app.add_middleware(mw.cls, *mw.args, **mw.kwargs)
    return app


def default_middleware(limiter: TokenBucketRateLimiter, max_body_bytes: int) -> list[Middleware]:
    return [
        Middleware(RecovererMiddleware),
        Middleware(MaxBodyBytesMiddleware, max_bytes=max_body_bytes),
        Middleware(RateLimitMiddleware, limiter=limiter),
        Middleware(AuditLogMiddleware),
    ]
