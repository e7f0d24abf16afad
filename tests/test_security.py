"""Tests for secret redaction helpers."""

from __future__ import annotations

import pytest

from mikrobot.security import redact_api_key, redact_phone, redact_secrets, sanitize_error


@pytest.mark.parametrize(
    ("text", "contains", "not_contains"),
    [
        ('{"apiKey": "sk-1234567890abcdefghij"}', "[REDACTED]", "sk-1234567890"),
        ("Authorization: Bearer abc123xyz789", "Bearer [REDACTED]", "abc123xyz789"),
        ("password=secretpass123", "password=[REDACTED]", "secretpass123"),
        (
            "OPENAI_API_KEY=sk-proj-abcdefghijklmnopqrstuvwxyz",
            "OPENAI_API_KEY=[REDACTED]",
            "sk-proj-abcdef",
        ),
        ("token: ghp_abcdef123", "token: [REDACTED]", "ghp_abcdef123"),
        ("groq key gsk_ABCDEFGHIJKLMNOPQRSTUV", "[REDACTED]", "gsk_ABCDEF"),
    ],
)
def test_redact_secrets(text: str, contains: str, not_contains: str):
    result = redact_secrets(text)
    assert contains in result
    assert not_contains not in result


def test_plain_text_untouched():
    text = "This is a normal log message"
    assert redact_secrets(text) == text
    assert redact_secrets("") == ""


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        ("sk-1234567890abcdefghij", "sk-1...ghij"),
        ("abc", "[REDACTED]"),
        ("12345678", "[REDACTED]"),
        ("", ""),
    ],
)
def test_redact_api_key(key: str, expected: str):
    assert redact_api_key(key) == expected


@pytest.mark.parametrize(
    ("phone", "expected"),
    [
        ("+1-555-123-4567", "***-***-4567"),
        ("123", "[REDACTED]"),
        ("", ""),
    ],
)
def test_redact_phone(phone: str, expected: str):
    assert redact_phone(phone) == expected


def test_sanitize_error_redacts_and_flattens():
    exc = RuntimeError("API error:\napiKey=sk-1234567890abcdef")
    result = sanitize_error(exc)
    assert "sk-1234567890" not in result
    assert "[REDACTED]" in result
    assert "\n" not in result


def test_sanitize_error_edge_cases():
    assert sanitize_error(None) == ""
    assert sanitize_error(ValueError()) == "ValueError"
