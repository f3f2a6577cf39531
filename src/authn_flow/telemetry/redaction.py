"""Helpers that keep secrets out of log records.

- redact_params: Replace confidential authenticator params with a marker
- hash_sensitive_id: Correlatable hash for flow ids and codes
- sanitize_for_logging: Escape control characters in user-supplied strings
"""

from __future__ import annotations

__all__ = [
    "REDACTED",
    "hash_sensitive_id",
    "redact_params",
    "sanitize_for_logging",
]

import hashlib
from collections.abc import Iterable, Mapping

REDACTED = "[REDACTED]"


def sanitize_for_logging(value: str) -> str:
    """Sanitize string values for safe JSONL logging.

    Prevents log injection by escaping newlines and control characters.

    Args:
        value: String value to sanitize (e.g., a username).

    Returns:
        str: Sanitized string safe for JSONL logging.

    Example:
        >>> sanitize_for_logging("alice\\nFAKE ENTRY")
        'alice\\\\nFAKE ENTRY'
    """
    if not isinstance(value, str):
        return str(value)

    return value.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")


def hash_sensitive_id(value: str | None, prefix_length: int = 8) -> str:
    """Hash a sensitive ID for logging while preserving some identifiability.

    Args:
        value: The sensitive ID to hash (flow id, authorization code).
        prefix_length: Number of hex characters to keep.

    Returns:
        str: Hashed value in format "sha256:<prefix>".
    """
    if not value:
        return "sha256:empty"

    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return f"sha256:{digest[:prefix_length]}"


def redact_params(params: Mapping[str, str], confidential: Iterable[str]) -> dict[str, str]:
    """Copy a param map with confidential values replaced.

    Non-confidential values are sanitized; the input map is not modified.

    Args:
        params: Authenticator params (e.g. {"username": ..., "password": ...}).
        confidential: Names whose values must never be logged.

    Returns:
        dict: Loggable copy of params.

    Example:
        >>> redact_params({"username": "u", "password": "p"}, {"password"})
        {'username': 'u', 'password': '[REDACTED]'}
    """
    hidden = set(confidential)
    return {
        key: REDACTED if key in hidden else sanitize_for_logging(value) for key, value in params.items()
    }
