"""Best-effort secret redaction.

Used to scrub tool output before it is fed back to the LLM and to sanitize
error text before it is sent to a chat channel. It will not catch every
possible secret format.
"""

from __future__ import annotations

import re

REDACTED = "[REDACTED]"

# Groups: key name, separator, value.
_KEY_VALUE_RE = re.compile(
    r"(?i)\b([A-Za-z0-9_]*?(?:api[_-]?key|token|secret|password|auth))\b(\s*[:=]\s*|\s+)([^\s\"']+)"
)
_BEARER_RE = re.compile(r"(?i)\bBearer\s+[A-Za-z0-9\-_.~+/]+=*")
_OPENAI_KEY_RE = re.compile(r"\bsk-(?:proj-)?[A-Za-z0-9_\-]{20,}")
_GROQ_KEY_RE = re.compile(r"\bgsk_[A-Za-z0-9]{20,}")
_DIGIT_RE = re.compile(r"\d")


def redact_secrets(text: str) -> str:
    """Replace key/value secrets, bearer tokens and known API key formats."""
    if not text:
        return text
    out = _KEY_VALUE_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", text)
    out = _BEARER_RE.sub(f"Bearer {REDACTED}", out)
    out = _OPENAI_KEY_RE.sub(REDACTED, out)
    return _GROQ_KEY_RE.sub(REDACTED, out)


def redact_api_key(key: str) -> str:
    """Keep the first and last four characters of a key for debugging."""
    if not key:
        return ""
    if len(key) <= 8:
        return REDACTED
    return f"{key[:4]}...{key[-4:]}"


def redact_phone(phone: str) -> str:
    """Mask a phone number down to its last four digits."""
    if not phone:
        return ""
    digits = _DIGIT_RE.findall(phone)
    if len(digits) < 4:
        return REDACTED
    return "***-***-" + "".join(digits[-4:])


def sanitize_error(exc: BaseException | None) -> str:
    """Render an exception as a single line with secrets removed."""
    if exc is None:
        return ""
    text = str(exc) or type(exc).__name__
    return redact_secrets(" ".join(text.split()))
