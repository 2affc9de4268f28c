"""Type definitions and protocols for push-dispatch.

This package provides:
- Data models (immutable dataclasses and the inbound event model)
- Protocol definitions (collaborator interfaces)
- Type aliases (PEP 695 syntax)
"""

from push_dispatch.types.aliases import (
    DeviceMap,
    DispatchResult,
    OutcomeListener,
)
from push_dispatch.types.models import (
    Completed,
    Delivering,
    Device,
    DeviceOutcome,
    ErrorKind,
    NotificationEvent,
    NotificationPayload,
    Response,
    SendReceipt,
)
from push_dispatch.types.protocols import (
    DeviceRegistry,
    HTTPClient,
    IdentityDirectory,
    NotificationProvider,
)

__all__ = [
    # Type aliases
    "DeviceMap",
    "DispatchResult",
    "OutcomeListener",
    # Data models
    "Completed",
    "Delivering",
    "Device",
    "DeviceOutcome",
    "ErrorKind",
    "NotificationEvent",
    "NotificationPayload",
    "Response",
    "SendReceipt",
    # Protocols
    "DeviceRegistry",
    "HTTPClient",
    "IdentityDirectory",
    "NotificationProvider",
]
