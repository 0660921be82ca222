"""Redaction helpers for credential-like values in logs and responses."""

from __future__ import annotations


def mask_secret(value: str) -> str:
    """Mask all but the last 4 characters of a secret."""
    if len(value) <= 4:
        return "****"
    return "*" * (len(value) - 4) + value[-4:]


def redact_signature(value: str) -> str:
    """Keep a 12-char prefix and 10-char suffix of long signatures."""
    if len(value) > 24:
        return f"{value[:12]}...{value[-10:]}"
    return value


def redact_api_key(value: str) -> str:
    """Keep a 5-char prefix and 3-char suffix of an API key."""
    if len(value) <= 8:
        return f"{value[:2]}..."
    return f"{value[:5]}...{value[-3:]}"
