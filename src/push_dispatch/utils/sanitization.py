"""Secret sanitization utilities for logging and error messages.

This module provides utilities to sanitize sensitive information (provider
API keys, bearer tokens, credential-bearing URLs) from strings and
structured data before logging or surfacing them in device outcomes.

Examples:
    >>> sanitize_url("https://push.example.com/v1/messages?key=abc123")
    'https://push.example.com/v1/messages?key=<REDACTED>'

    >>> sanitize_url("Authorization: Bearer abc.def.ghi")
    'Authorization: Bearer <REDACTED>'

    >>> sanitize_value({"api_key": "s3cr3t", "count": 42})
    {'api_key': '<REDACTED>', 'count': 42}
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import TypeIs

# Redaction marker for sanitized values
REDACTED = "<REDACTED>"

# Bearer tokens in Authorization headers or error text
_BEARER_PATTERN = re.compile(
    r"(\bBearer\s+)([A-Za-z0-9._~+/=-]+)",
    re.IGNORECASE,
)

# API key headers echoed back in error text, e.g. "X-Appwrite-Key: standard_abc"
_KEY_HEADER_PATTERN = re.compile(
    r"(\bx-[a-z0-9-]*key['\"]?\s*[:=]\s*['\"]?)([^\s,'\"}]+)",
    re.IGNORECASE,
)

# Pattern for URLs with tokens in path segments
_GENERIC_TOKEN_IN_PATH = re.compile(
    r"(/(?:token|api[-_]?key|key|auth|secret|bearer)[=/])([^/?#\s]+)",
    re.IGNORECASE,
)

# Pattern for URLs with tokens in query parameters
_GENERIC_TOKEN_IN_QUERY = re.compile(
    r"([?&](?:token|api[-_]?key|key|auth|secret|bearer)=)([^&#\s]+)",
    re.IGNORECASE,
)

# Sensitive field name patterns (case-insensitive)
_SENSITIVE_FIELD_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in [
        r".*token.*",
        r".*api[-_]?key.*",
        r".*secret.*",
        r".*password.*",
        r".*credential.*",
        r".*authorization.*",
        r".*bearer.*",
        r"^x-.*-key$",
    ]
]


def is_sensitive_field(field_name: str) -> bool:
    """Check if a field name indicates sensitive data.

    Args:
        field_name: The field name to check (e.g., "api_key", "X-Appwrite-Key")

    Returns:
        True if the field name matches sensitive patterns

    Examples:
        >>> is_sensitive_field("api_key")
        True
        >>> is_sensitive_field("device_id")
        False
    """
    return any(pattern.match(field_name) for pattern in _SENSITIVE_FIELD_PATTERNS)


def sanitize_url(url: str) -> str:
    """Sanitize secrets from URLs and free text while preserving structure.

    Args:
        url: The URL (or error text) to sanitize

    Returns:
        Sanitized text with secret values replaced by REDACTED marker
    """
    if not url or not isinstance(url, str):  # pyright: ignore[reportUnnecessaryIsInstance]
        return url

    sanitized = _BEARER_PATTERN.sub(rf"\1{REDACTED}", url)
    sanitized = _KEY_HEADER_PATTERN.sub(rf"\1{REDACTED}", sanitized)
    sanitized = _GENERIC_TOKEN_IN_PATH.sub(rf"\1{REDACTED}", sanitized)
    sanitized = _GENERIC_TOKEN_IN_QUERY.sub(rf"\1{REDACTED}", sanitized)

    return sanitized


def _is_primitive(value: object) -> TypeIs[str | int | float | bool | None]:
    return isinstance(value, (str, int, float, bool, type(None)))


def _is_mapping(value: object) -> TypeIs[Mapping[str, object]]:
    return isinstance(value, Mapping)


def _is_sequence(value: object) -> TypeIs[Sequence[object]]:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def sanitize_value(
    value: object,
    *,
    field_name: str | None = None,
) -> object:
    """Recursively sanitize sensitive values from structured data.

    Values are redacted when their field name looks sensitive; strings are
    scrubbed for secret-bearing patterns; mappings and sequences are walked.

    Args:
        value: The value to sanitize (can be any type)
        field_name: Optional field name for context-aware sanitization

    Returns:
        Sanitized value with secrets replaced by REDACTED marker
    """
    if field_name and is_sensitive_field(field_name):
        return REDACTED

    if _is_primitive(value):
        if type(value) is str:
            return sanitize_url(value)
        return value

    if _is_mapping(value):
        sanitized_dict: dict[str, object] = {
            key: sanitize_value(val, field_name=str(key)) for key, val in value.items()
        }
        return sanitized_dict

    if _is_sequence(value):
        sanitized_items: list[object] = [sanitize_value(item) for item in value]
        if isinstance(value, tuple):
            return tuple(sanitized_items)
        return sanitized_items

    # Unknown objects are rendered and scrubbed as text
    return sanitize_url(str(value))


def sanitize_exception(exc: BaseException) -> str:
    """Sanitize exception messages to remove sensitive information.

    Args:
        exc: The exception to sanitize

    Returns:
        Sanitized "Type: message" string safe for logging

    Examples:
        >>> sanitize_exception(ValueError("GET /v1/push?key=abc123 failed"))
        'ValueError: GET /v1/push?key=<REDACTED> failed'
    """
    exc_type = type(exc).__name__
    sanitized_message = sanitize_url(str(exc))
    return f"{exc_type}: {sanitized_message}"


def sanitize_args(args: tuple[object, ...]) -> tuple[object, ...]:
    """Sanitize a tuple of logging arguments."""
    return tuple(sanitize_value(arg) for arg in args)


def sanitize_mapping(
    data: Mapping[str, object],
) -> dict[str, object]:
    """Sanitize a mapping (e.g., logging extra dict) for safe output."""
    return {key: sanitize_value(val, field_name=key) for key, val in data.items()}
