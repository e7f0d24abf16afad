"""Provider error taxonomy.

HTTP status codes from an LLM backend are mapped onto a small set of
exception classes so callers can decide what is retryable without
inspecting raw httpx responses.
"""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for all provider errors."""

    def __init__(self, message: str, *, provider: str = "", hint: str = "") -> None:
        self.provider = provider
        self.hint = hint
        super().__init__(message)


class AuthenticationError(ProviderError):
    """API key is missing, invalid, or expired."""


class RateLimitError(ProviderError):
    """Provider rate limit exceeded."""


class InsufficientQuotaError(ProviderError):
    """Account has insufficient credits or quota."""


class ModelNotFoundError(ProviderError):
    """Requested model does not exist on the provider."""


class ProviderConnectionError(ProviderError):
    """Cannot reach the provider's API endpoint."""


class ServerError(ProviderError):
    """Provider returned a 5xx server error."""


_STATUS_MAP: dict[int, tuple[type[ProviderError], str, str]] = {
    401: (
        AuthenticationError,
        "Authentication failed: the API key is invalid or missing.",
        "Run 'mikrobot onboard' or set MIKROBOT_PROVIDERS__OPENAI__API_KEY.",
    ),
    402: (
        InsufficientQuotaError,
        "Insufficient credits or quota on your account.",
        "Add credits on your provider's billing page.",
    ),
    403: (
        AuthenticationError,
        "Access denied: the API key lacks permission for this resource.",
        "Verify the key permissions on the provider's dashboard.",
    ),
    404: (
        ModelNotFoundError,
        "Model not found on this provider.",
        "Set agents.defaults.model to a model the provider serves.",
    ),
    429: (
        RateLimitError,
        "Rate limit exceeded.",
        "Wait a moment and try again.",
    ),
    500: (ServerError, "Provider internal server error.", "Try again in a moment."),
    502: (ServerError, "Provider returned a bad gateway error.", "Try again in a moment."),
    503: (ServerError, "Provider is temporarily unavailable.", "Try again in a moment."),
    529: (ServerError, "Provider is overloaded.", "Try again in a moment."),
}


def raise_for_status(
    status_code: int,
    provider_name: str,
    api_base: str,
    model: str,
    raw_message: str = "",
) -> None:
    """Raise the ProviderError subclass matching an HTTP status code.

    2xx codes return silently. Unknown error codes raise the base class.
    """
    if 200 <= status_code < 300:
        return

    exc_class, message, hint = _STATUS_MAP.get(
        status_code,
        (ProviderError, f"Unexpected HTTP {status_code} from provider.", ""),
    )
    if exc_class is ProviderError and status_code >= 500:
        exc_class = ServerError

    full_message = f"[{provider_name}] {message} (base={api_base}, model={model})"
    if raw_message:
        full_message += f": {raw_message[:200].replace(chr(10), ' ')}"

    raise exc_class(full_message, provider=provider_name, hint=hint)
