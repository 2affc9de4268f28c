"""Entry point for one inbound "new message" event."""

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from uuid import uuid4

from pydantic import ValidationError

from push_dispatch.core.config import FormattingConfig
from push_dispatch.core.coordinator import DispatchCoordinator
from push_dispatch.core.errors import InvalidEventError
from push_dispatch.core.formatter import build_payload
from push_dispatch.types import DispatchResult, IdentityDirectory, NotificationEvent
from push_dispatch.utils.logging import correlation_id_var, get_logger, log_with_context, set_correlation_id
from push_dispatch.utils.sanitization import sanitize_exception

__all__ = ["NotificationService", "parse_event"]

type CorrelationIDFactory = Callable[[], str]
type NowFactory = Callable[[], datetime]


def parse_event(raw: object) -> NotificationEvent:
    """Validate a decoded JSON trigger body.

    Raises:
        InvalidEventError: If the body is not an object or lacks
            ``recipientId`` / ``chatId``
    """
    if not isinstance(raw, Mapping):
        msg = f"Notification event must be a JSON object, got {type(raw).__name__}"
        raise InvalidEventError(msg)

    try:
        return NotificationEvent.model_validate(raw)
    except ValidationError as e:
        fields = tuple(".".join(str(loc) for loc in err["loc"]) for err in e.errors())
        msg = f"Invalid notification event, check fields: {', '.join(fields)}"
        raise InvalidEventError(msg, fields=fields) from e


class NotificationService:
    """Turn a validated event into a dispatch.

    Resolves the sender's display name, renders the payload once and hands
    it to the coordinator. Each call runs under its own correlation ID,
    which the coordinator's device tasks inherit.
    """

    def __init__(
        self,
        coordinator: DispatchCoordinator,
        directory: IdentityDirectory | None,
        *,
        formatting: FormattingConfig,
        correlation_id_factory: CorrelationIDFactory | None = None,
        now: NowFactory | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        self._coordinator: DispatchCoordinator = coordinator
        self._directory: IdentityDirectory | None = directory
        self._formatting: FormattingConfig = formatting
        self._correlation_id_factory: CorrelationIDFactory = correlation_id_factory or (lambda: uuid4().hex)
        self._now: NowFactory | None = now
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def handle(self, event: NotificationEvent) -> DispatchResult:
        """Dispatch a notification for ``event``.

        Raises:
            RecipientNotFoundError: If the recipient is unknown
            RegistryUnreachableError: If the device registry cannot be read
        """
        token = set_correlation_id(self._correlation_id_factory())
        try:
            log_with_context(
                self._logger,
                logging.INFO,
                "Handling notification event",
                extra={
                    "recipient_id": event.recipient_id,
                    "chat_id": event.chat_id,
                    "message_type": event.type,
                    "target_device_id": event.target_device_id,
                },
            )
            sender_name = await self._resolve_sender_name(event.sender_id)
            payload = build_payload(
                event,
                sender_name,
                config=self._formatting,
                now=self._now() if self._now else None,
            )
            return await self._coordinator.dispatch(
                event.recipient_id,
                payload,
                target_device_id=event.target_device_id,
            )
        finally:
            correlation_id_var.reset(token)

    async def _resolve_sender_name(self, sender_id: str | None) -> str:
        default = self._formatting.default_sender_name
        if not sender_id or self._directory is None:
            return default

        try:
            name = await self._directory.get_display_name(sender_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_with_context(
                self._logger,
                logging.WARNING,
                "Sender lookup failed, using default name",
                extra={"sender_id": sender_id, "error_message": sanitize_exception(exc)},
            )
            return default
        return name or default
