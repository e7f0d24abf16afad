"""Gateway HTTP API: routes, middleware and rate limiting."""

from mikrobot.api.app import create_api_app
from mikrobot.api.middleware import chain
from mikrobot.api.rate_limit import TokenBucketRateLimiter, client_key

__all__ = ["TokenBucketRateLimiter", "chain", "client_key", "create_api_app"]
