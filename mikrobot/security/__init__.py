"""Security helpers: secret redaction for logs, tool output and error replies."""

from mikrobot.security.redact import redact_api_key, redact_phone, redact_secrets, sanitize_error

__all__ = ["redact_api_key", "redact_phone", "redact_secrets", "sanitize_error"]
