"""Logging setup with correlation IDs and secret redaction.

One inbound event fans out into many concurrent device tasks. Every task
inherits the event's correlation ID through a ContextVar, so background
delivery logs written after the early response can still be tied back to
the request that caused them.
"""

import contextvars
import logging
import logging.handlers
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Final, override

from push_dispatch.utils.sanitization import sanitize_args, sanitize_mapping, sanitize_value

# Inherited by asyncio tasks created while it is set
correlation_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)

DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s"

SYSLOG_LOG_FORMAT: Final[str] = (
    "push-dispatch[%(process)d]: %(levelname)s - [%(correlation_id)s] - %(name)s - %(message)s"
)

DEFAULT_SYSLOG_ADDRESS: Final[str] = "/dev/log"

# LogRecord attributes that are never treated as caller supplied extras
_STANDARD_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "correlation_id",
    }
)


class CorrelationIDFilter(logging.Filter):
    """Attach the current correlation ID to every record.

    Records logged outside any dispatch carry ``"N/A"`` so the format
    string never fails.
    """

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        correlation_id = correlation_id_var.get()
        record.correlation_id = correlation_id if correlation_id is not None else "N/A"
        return True


class SecretRedactingFilter(logging.Filter):
    """Redact provider credentials from log records.

    The message text, positional ``%`` arguments and every ``extra`` field
    are passed through the sanitization helpers. Fields whose name looks
    sensitive (``api_key``, ``authorization``...) are replaced wholesale.

    Examples:
        >>> logger.info("POST %s", "https://push.example.com/v1?key=abc")
        # Logged as: "POST https://push.example.com/v1?key=<REDACTED>"
    """

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            sanitized_msg = sanitize_value(record.msg)
            if isinstance(sanitized_msg, str):
                record.msg = sanitized_msg

        if record.args and isinstance(record.args, tuple):
            record.args = sanitize_args(record.args)
        elif record.args and isinstance(record.args, Mapping):
            # logger.info("%(url)s", {"url": ...}) stores the dict itself as args
            record.args = sanitize_mapping(record.args)

        for attr_name in list(record.__dict__.keys()):
            if attr_name in _STANDARD_RECORD_ATTRS or attr_name.startswith("_"):
                continue
            attr_value: object = getattr(record, attr_name)  # pyright: ignore[reportAny]
            setattr(record, attr_name, sanitize_value(attr_value, field_name=attr_name))

        return True


def configure_logging(
    *,
    log_level: str = "INFO",
    enable_syslog: bool = False,
    syslog_address: str = DEFAULT_SYSLOG_ADDRESS,
    enable_console: bool = True,
) -> None:
    """Configure root logging handlers.

    Replaces any existing root handlers. Both handlers share one
    correlation filter and one redaction filter. When the syslog address
    is not a unix socket a warning is printed to stderr and console logging
    continues on its own.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        enable_syslog: Also log to the local syslog daemon
        syslog_address: Syslog socket address
        enable_console: Log to stderr
    """
    root_logger = logging.getLogger()
    level = getattr(logging, log_level.upper(), logging.INFO)  # pyright: ignore[reportAny]
    root_logger.setLevel(level)  # pyright: ignore[reportAny]
    root_logger.handlers.clear()

    correlation_filter = CorrelationIDFilter()
    secret_filter = SecretRedactingFilter()

    # SysLogHandler ignores connection errors on unix sockets, so check the path first
    if enable_syslog and not Path(syslog_address).is_socket():
        print(
            f"Warning: Could not connect to syslog at {syslog_address}: not a unix socket",
            file=sys.stderr,
        )
    elif enable_syslog:
        syslog_handler = logging.handlers.SysLogHandler(
            address=syslog_address,
            facility=logging.handlers.SysLogHandler.LOG_DAEMON,
        )
        syslog_handler.setFormatter(logging.Formatter(SYSLOG_LOG_FORMAT))
        syslog_handler.addFilter(correlation_filter)
        syslog_handler.addFilter(secret_filter)
        root_logger.addHandler(syslog_handler)

    if enable_console:
        # stdout carries the JSON response, so logs go to stderr
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        console_handler.addFilter(correlation_filter)
        console_handler.addFilter(secret_filter)
        root_logger.addHandler(console_handler)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (pass ``__name__``)."""
    return logging.getLogger(name)


def set_correlation_id(correlation_id: str) -> contextvars.Token[str | None]:
    """Set the correlation ID for the current context.

    Returns:
        Token that can be handed to ``correlation_id_var.reset``
    """
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def clear_correlation_id() -> None:
    _ = correlation_id_var.set(None)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    *,
    extra: Mapping[str, object] | None = None,
) -> None:
    """Log a message with structured context fields.

    The current correlation ID is merged into ``extra`` so handlers without
    the correlation filter (e.g. pytest's ``caplog``) still see it.

    Example:
        >>> log_with_context(
        ...     logger,
        ...     logging.INFO,
        ...     "Push delivered",
        ...     extra={"device_id": "pixel-7", "duration_ms": 41.2},
        ... )
    """
    context = dict(extra) if extra else {}

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    logger.log(level, message, extra=context)
