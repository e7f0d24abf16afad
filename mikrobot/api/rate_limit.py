"""In-memory token-bucket rate limiter for the gateway HTTP API.

Each client identity gets its own bucket holding up to `burst` tokens,
refilled continuously at `rate` tokens per second; a request costs one
token. Buckets are created lazily and idle ones are swept when the table
grows past a threshold, so memory stays bounded under many distinct
clients.

No external dependencies (Redis, etc.): suitable for single-instance
self-hosted deployments.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from starlette.requests import Request

DEFAULT_RATE = 5.0
DEFAULT_BURST = 10
CLEANUP_THRESHOLD = 4096
IDLE_RETENTION_SECONDS = 600.0


@dataclass(slots=True)
class _Bucket:
    tokens: float
    last_refill: float
    last_hit: float


class TokenBucketRateLimiter:
    """Token-bucket limiter keyed by arbitrary string.

    All bucket arithmetic happens under a single lock; allow() never does
    I/O or awaits, so the critical section stays tiny.
    """

    def __init__(
        self,
        rate: float = DEFAULT_RATE,
        burst: int = DEFAULT_BURST,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rate = rate if rate > 0 else DEFAULT_RATE
        self._burst = float(burst if burst > 0 else DEFAULT_BURST)
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def burst(self) -> int:
        return int(self._burst)

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    def allow(self, key: str) -> bool:
        """Take one token for `key`. Returns False when the bucket is empty."""
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _Bucket(tokens=self._burst, last_refill=now, last_hit=now)
                self._buckets[key] = bucket

            if len(self._buckets) > CLEANUP_THRESHOLD:
                self._sweep(now)

            elapsed = max(0.0, now - bucket.last_refill)
            bucket.tokens = min(self._burst, bucket.tokens + elapsed * self._rate)
            bucket.last_refill = now
            bucket.last_hit = now

            if bucket.tokens < 1.0:
                return False
            bucket.tokens -= 1.0
            return True

    def _sweep(self, now: float) -> None:
        cutoff = now - IDLE_RETENTION_SECONDS
        stale = [key for key, b in self._buckets.items() if b.last_hit < cutoff]
        for key in stale:
            del self._buckets[key]


def client_key(request: Request) -> str:
    """Identify the client: leftmost X-Forwarded-For, X-Real-IP, peer host, or "unknown".

    Forwarding headers are trusted as-is, so this is only sound behind a
    proxy that overwrites them.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
