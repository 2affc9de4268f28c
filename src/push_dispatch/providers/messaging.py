"""REST messaging API push provider.

Sends one push per call through the provider's ``messages/push`` endpoint,
addressed to a single provider user (the device's routing handle). Error
replies are mapped to ``ProviderError`` with the HTTP status and the
provider's symbolic error ``type`` so the retry policy can classify them
without parsing messages.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final

from push_dispatch.core.config import ProviderConfig
from push_dispatch.core.errors import ProviderError
from push_dispatch.core.retry import MISSING_MESSAGE_ID_REASON
from push_dispatch.types import HTTPClient, NotificationPayload, Response, SendReceipt

__all__ = ["MessagingAPIProvider"]

PUSH_PATH: Final[str] = "/messaging/messages/push"
UNIQUE_ID: Final[str] = "unique()"


@dataclass(slots=True)
class MessagingAPIProvider:
    """Push provider implementing the ``NotificationProvider`` protocol.

    Attributes:
        config: Endpoint, project and API key of the messaging service
        http_client: Shared HTTP client (injected dependency)
        request_timeout: Transport-level timeout for one request in seconds
    """

    config: ProviderConfig
    http_client: HTTPClient
    request_timeout: float = 8.0
    _logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            msg = "request_timeout must be positive"
            raise ValueError(msg)
        self._logger = logging.getLogger(__name__)

    @property
    def url(self) -> str:
        return f"{self.config.endpoint}{PUSH_PATH}"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Appwrite-Project": self.config.project_id,
            "X-Appwrite-Key": self.config.api_key,
        }

    @staticmethod
    def build_body(provider_user_id: str, payload: NotificationPayload) -> dict[str, object]:
        return {
            "messageId": UNIQUE_ID,
            "title": payload.title,
            "body": payload.body,
            "users": [provider_user_id],
            "data": dict(payload.data),
            "draft": False,
        }

    async def send_push(self, provider_user_id: str, payload: NotificationPayload) -> SendReceipt:
        """Create and send one push message.

        Raises:
            ProviderError: If the service rejects the message or replies
                without a message id
            TimeoutError: If the request exceeds ``request_timeout``
        """
        response = await self.http_client.post(
            self.url,
            self.build_body(provider_user_id, payload),
            headers=self._headers(),
            timeout=self.request_timeout,
        )

        if not 200 <= response.status < 300:
            raise _error_from_response(response)

        message_id = response.body.get("$id")
        if not isinstance(message_id, str) or not message_id:
            msg = "Messaging API accepted the push but returned no message id"
            raise ProviderError(msg, status_code=response.status, reason=MISSING_MESSAGE_ID_REASON)

        self._logger.debug("Push accepted by messaging API (message_id=%s)", message_id)
        return SendReceipt(message_id=message_id)


def _error_from_response(response: Response) -> ProviderError:
    body: Mapping[str, object] = response.body
    message = body.get("message")
    reason = body.get("type")
    return ProviderError(
        message if isinstance(message, str) and message else f"Messaging API returned HTTP {response.status}",
        status_code=response.status,
        reason=reason if isinstance(reason, str) and reason else None,
    )
