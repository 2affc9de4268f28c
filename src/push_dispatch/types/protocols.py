"""Protocol definitions for collaborator interfaces.

This module defines structural subtyping protocols for the systems the
dispatch engine talks to without owning them: the device registry, the
identity directory used for sender names, the push provider and the HTTP
client used by concrete providers.
"""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from push_dispatch.types.aliases import DeviceMap
from push_dispatch.types.models import (
    NotificationPayload,
    Response,
    SendReceipt,
)


@runtime_checkable
class DeviceRegistry(Protocol):
    """Protocol for lookup and removal of a recipient's registered devices."""

    async def get_devices(self, recipient_id: str) -> DeviceMap:
        """Return the recipient's devices keyed by device id.

        Args:
            recipient_id: Identity of the notification recipient

        Returns:
            Mapping of device id to device record (possibly empty)

        Raises:
            RecipientNotFoundError: If the recipient is unknown
        """
        ...

    async def delete_device(self, recipient_id: str, device_id: str) -> None:
        """Remove one device record.

        Deleting a device that no longer exists is a no-op, never an error.

        Args:
            recipient_id: Identity of the device owner
            device_id: Device to remove
        """
        ...


@runtime_checkable
class IdentityDirectory(Protocol):
    """Protocol for resolving user display names."""

    async def get_display_name(self, user_id: str) -> str | None:
        """Return a human-readable name for the user, or None if unknown."""
        ...


@runtime_checkable
class NotificationProvider(Protocol):
    """Protocol for the push-delivery API.

    Implementations raise ``ProviderError`` carrying the provider's status
    code and symbolic reason so failures can be classified without parsing
    free-text messages.
    """

    async def send_push(self, provider_user_id: str, payload: NotificationPayload) -> SendReceipt:
        """Deliver one push to the device addressed by the routing handle.

        Args:
            provider_user_id: Opaque routing handle of the target device
            payload: Notification content shared by all devices of the event

        Returns:
            Receipt holding the provider-assigned message id
        """
        ...


class HTTPClient(Protocol):
    """Protocol for HTTP client operations used by REST providers."""

    async def post(
        self,
        url: str,
        payload: Mapping[str, object],
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float,
    ) -> Response:
        """Send HTTP POST request with timeout.

        Args:
            url: Target URL for the POST request
            payload: Request body data
            headers: Extra request headers
            timeout: Request timeout in seconds (keyword-only)

        Returns:
            HTTP response with status, body, and headers
        """
        ...
