"""Error taxonomy for the dispatch engine.

Per-device failures are absorbed into ``DeviceOutcome`` values by the send
worker. Only resolution failures (the device set cannot be loaded) and
invalid inbound events reach the caller as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass

from push_dispatch.types.models import ErrorKind

__all__ = [
    "DeliveryError",
    "ErrorClassification",
    "InvalidEventError",
    "ProviderError",
    "PushDispatchError",
    "RecipientNotFoundError",
    "RegistryUnreachableError",
    "ResolutionError",
]


@dataclass(slots=True, frozen=True)
class ErrorClassification:
    """Retry decision for one provider error.

    ``target_gone`` marks the permanent subset meaning the routing handle no
    longer exists, which triggers device auto-cleanup.
    """

    kind: ErrorKind
    target_gone: bool = False

    @property
    def is_permanent(self) -> bool:
        return self.kind is ErrorKind.PERMANENT


class PushDispatchError(Exception):
    """Base exception for all push-dispatch errors."""


class ProviderError(PushDispatchError):
    """Raw failure reported by the push provider.

    Args:
        message: Provider supplied description
        status_code: HTTP-style numeric code, if the provider sent one
        reason: Symbolic error type from the provider taxonomy
            (e.g. ``user_not_found``, ``registration-token-not-registered``)
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.status_code: int | None = status_code
        self.reason: str | None = reason

    def __repr__(self) -> str:
        return f"ProviderError({self.message!r}, status_code={self.status_code!r}, reason={self.reason!r})"


class DeliveryError(PushDispatchError):
    """Terminal provider failure tagged with its classification.

    Raised by ``RetryPolicy.execute`` once retrying stops, chained to the
    last raw error so callers can branch on ``classification`` without
    inspecting provider-specific error shapes.
    """

    def __init__(
        self,
        classification: ErrorClassification,
        *,
        attempts: int,
        message: str,
    ) -> None:
        super().__init__(message)
        self.classification: ErrorClassification = classification
        self.attempts: int = attempts
        self.message: str = message

    @property
    def kind(self) -> ErrorKind:
        return self.classification.kind

    @property
    def target_gone(self) -> bool:
        return self.classification.target_gone


class ResolutionError(PushDispatchError):
    """Raised when a recipient's device set cannot be resolved."""

    def __init__(self, message: str, *, recipient_id: str) -> None:
        super().__init__(message)
        self.recipient_id: str = recipient_id


class RecipientNotFoundError(ResolutionError):
    """The registry has no record of the recipient."""

    def __init__(self, recipient_id: str) -> None:
        super().__init__(f"Recipient not found: {recipient_id}", recipient_id=recipient_id)


class RegistryUnreachableError(ResolutionError):
    """The registry lookup failed for infrastructure reasons."""

    kind: ErrorKind = ErrorKind.REGISTRY_UNREACHABLE


class InvalidEventError(PushDispatchError):
    """The inbound trigger payload is missing required fields or malformed."""

    def __init__(self, message: str, *, fields: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.fields: tuple[str, ...] = fields
