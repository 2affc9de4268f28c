"""Bounded retries with exponential backoff and provider error classification.

Classification looks at structured fields first: the HTTP-style status code
and the provider's symbolic reason. Free-text matching on the message is a
fallback for errors that carry neither.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Final

from push_dispatch.core.errors import DeliveryError, ErrorClassification, ProviderError
from push_dispatch.types.models import ErrorKind
from push_dispatch.utils.logging import log_with_context
from push_dispatch.utils.sanitization import sanitize_url

__all__ = [
    "GONE_REASONS",
    "GONE_STATUS_CODES",
    "MISSING_MESSAGE_ID_REASON",
    "PERMANENT_REASONS",
    "PERMANENT_STATUS_CODES",
    "RetryPolicy",
    "classify_error",
    "describe_error",
]

logger = logging.getLogger(__name__)

type Classifier = Callable[[BaseException], ErrorClassification]
type Sleeper = Callable[[float], Awaitable[None]]

# Status codes meaning the routing handle no longer exists
GONE_STATUS_CODES: Final[frozenset[int]] = frozenset({404, 410})

# Status codes that will fail the same way on every attempt
PERMANENT_STATUS_CODES: Final[frozenset[int]] = frozenset({400, 401, 403}) | GONE_STATUS_CODES

# Provider reasons (lowercased) meaning the routing handle no longer exists
GONE_REASONS: Final[frozenset[str]] = frozenset(
    {
        "user_not_found",
        "target_not_found",
        "device_not_found",
        "registration-token-not-registered",
        "invalid-registration-token",
        "messaging/registration-token-not-registered",
        "messaging/invalid-registration-token",
        "unregistered",
        "baddevicetoken",
    }
)

# The provider accepted the push but its reply lacked a message id; resending would duplicate it
MISSING_MESSAGE_ID_REASON: Final[str] = "missing_message_id"

# Provider reasons (lowercased) for invalid requests and auth failures
PERMANENT_REASONS: Final[frozenset[str]] = (
    frozenset(
        {
            MISSING_MESSAGE_ID_REASON,
            "general_argument_invalid",
            "general_unauthorized_scope",
            "general_access_forbidden",
            "user_unauthorized",
            "invalid-argument",
            "messaging/invalid-argument",
            "invalid_request",
            "mismatched-credential",
            "third-party-auth-error",
            "unauthorized",
            "forbidden",
        }
    )
    | GONE_REASONS
)

# Last-resort message markers for target-gone errors without codes
_GONE_MESSAGE_MARKERS: Final[tuple[str, ...]] = (
    "could not be found",
    "not registered",
)

_PERMANENT: Final[ErrorClassification] = ErrorClassification(ErrorKind.PERMANENT)
_GONE: Final[ErrorClassification] = ErrorClassification(ErrorKind.PERMANENT, target_gone=True)
_RETRYABLE: Final[ErrorClassification] = ErrorClassification(ErrorKind.RETRYABLE)


def classify_error(exc: BaseException) -> ErrorClassification:
    """Decide whether a failed provider call is worth retrying.

    A 404/410 only means "target gone" when the provider sent no reason.
    An unrecognised reason on those codes (a wrong endpoint, say) is
    permanent but never triggers device cleanup. A 2xx status means the
    provider accepted the push, so it is never retried.

    Examples:
        >>> classify_error(ProviderError("gone", status_code=404)).target_gone
        True
        >>> classify_error(ProviderError("no route", status_code=404, reason="general_route_not_found")).target_gone
        False
        >>> classify_error(ProviderError("busy", status_code=503)).kind
        <ErrorKind.RETRYABLE: 'retryable'>
        >>> classify_error(TimeoutError()).kind
        <ErrorKind.RETRYABLE: 'retryable'>
    """
    status_code: int | None = None
    reason: str | None = None
    if isinstance(exc, ProviderError):
        status_code = exc.status_code
        reason = (exc.reason or "").strip().lower() or None

    if reason in GONE_REASONS:
        return _GONE
    if reason in PERMANENT_REASONS:
        return _PERMANENT

    if status_code is not None:
        if 200 <= status_code < 300:
            return _PERMANENT
        if status_code in GONE_STATUS_CODES:
            return _PERMANENT if reason else _GONE
        if status_code in PERMANENT_STATUS_CODES:
            return _PERMANENT
        return _RETRYABLE

    message = describe_error(exc).lower()
    if reason is None and any(marker in message for marker in _GONE_MESSAGE_MARKERS):
        return _GONE
    return _RETRYABLE


def describe_error(exc: BaseException) -> str:
    """Sanitized one-line description of a provider failure."""
    text = exc.message if isinstance(exc, ProviderError) else str(exc)
    if not text:
        return type(exc).__name__
    return sanitize_url(text)


class RetryPolicy:
    """Retry a provider call with exponential backoff.

    The delay before retry ``n`` (0-based) is ``initial_delay * 2**n``,
    capped at ``max_delay`` and spread by ``jitter_percent`` in either
    direction. Permanent errors stop retrying at once.

    Example:
        >>> policy = RetryPolicy(max_retries=2, initial_delay_seconds=0.05, max_delay_seconds=2.0)
        >>> receipt = await policy.execute(lambda: provider.send_push(user_id, payload))
    """

    def __init__(
        self,
        *,
        max_retries: int,
        initial_delay_seconds: float,
        max_delay_seconds: float,
        jitter_percent: float = 0.0,
        classifier: Classifier = classify_error,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if max_retries < 0:
            msg = f"max_retries must be >= 0, got {max_retries}"
            raise ValueError(msg)
        if initial_delay_seconds < 0 or max_delay_seconds < initial_delay_seconds:
            msg = (
                "retry delays must satisfy 0 <= initial_delay_seconds <= max_delay_seconds, "
                f"got {initial_delay_seconds} and {max_delay_seconds}"
            )
            raise ValueError(msg)
        if not 0 <= jitter_percent <= 100:
            msg = f"jitter_percent must be within [0, 100], got {jitter_percent}"
            raise ValueError(msg)

        self._max_retries: int = max_retries
        self._initial_delay: float = initial_delay_seconds
        self._max_delay: float = max_delay_seconds
        self._jitter_percent: float = jitter_percent
        self._classifier: Classifier = classifier
        self._sleep: Sleeper = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def backoff_delay(self, retry_index: int) -> float:
        """Delay in seconds before retry ``retry_index`` (0-based)."""
        base_delay = min(self._initial_delay * (2**retry_index), self._max_delay)
        if self._jitter_percent:
            spread = self._jitter_percent / 100.0
            base_delay *= 1.0 + random.uniform(-spread, spread)
        return min(max(base_delay, 0.0), self._max_delay)

    async def execute[T](
        self,
        call: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
    ) -> T:
        """Run ``call`` until it succeeds, fails permanently, or retries run out.

        Args:
            call: Zero-argument coroutine factory, invoked once per attempt
            max_retries: Per-call override of the configured retry count

        Returns:
            The first successful result

        Raises:
            DeliveryError: Tagged with the classification of the last error
                and chained to it
        """
        retry_limit = self._max_retries if max_retries is None else max_retries
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except Exception as exc:
                classification = self._classifier(exc)
                message = describe_error(exc)

                if classification.is_permanent or attempt > retry_limit:
                    raise DeliveryError(classification, attempts=attempt, message=message) from exc

                delay = self.backoff_delay(attempt - 1)
                log_with_context(
                    logger,
                    logging.WARNING,
                    "Provider call failed, retrying",
                    extra={
                        "attempt": attempt,
                        "max_attempts": retry_limit + 1,
                        "delay_seconds": round(delay, 4),
                        "error_kind": classification.kind.value,
                        "error_message": message,
                    },
                )
                await self._sleep(delay)
