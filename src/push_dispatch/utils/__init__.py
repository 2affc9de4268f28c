"""Shared utilities: logging setup, secret sanitization and the HTTP client."""

from push_dispatch.utils.http_client import AIOHTTPClient
from push_dispatch.utils.logging import (
    CorrelationIDFilter,
    SecretRedactingFilter,
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    log_with_context,
    set_correlation_id,
)
from push_dispatch.utils.sanitization import (
    REDACTED,
    is_sensitive_field,
    sanitize_args,
    sanitize_exception,
    sanitize_mapping,
    sanitize_url,
    sanitize_value,
)

__all__ = [
    # HTTP
    "AIOHTTPClient",
    # Logging
    "CorrelationIDFilter",
    "SecretRedactingFilter",
    "clear_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "get_logger",
    "log_with_context",
    "set_correlation_id",
    # Sanitization
    "REDACTED",
    "is_sensitive_field",
    "sanitize_args",
    "sanitize_exception",
    "sanitize_mapping",
    "sanitize_url",
    "sanitize_value",
]
