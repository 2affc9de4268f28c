"""Provider that records pushes in the log instead of sending them."""

from __future__ import annotations

import logging
from itertools import count

from push_dispatch.types import NotificationPayload, SendReceipt
from push_dispatch.utils.logging import get_logger, log_with_context

__all__ = ["DryRunProvider"]


class DryRunProvider:
    """``NotificationProvider`` with no network I/O.

    Every call succeeds with a synthetic ``dry-run-<n>`` message id. The
    rest of the pipeline (rate limiting, concurrency, early response) runs
    unchanged, which makes dry-run useful for exercising a configuration.
    """

    def __init__(self, logger_obj: logging.Logger | None = None) -> None:
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        self._counter: count[int] = count(1)
        self.sent: list[tuple[str, NotificationPayload]] = []

    async def send_push(self, provider_user_id: str, payload: NotificationPayload) -> SendReceipt:
        message_id = f"dry-run-{next(self._counter)}"
        self.sent.append((provider_user_id, payload))
        log_with_context(
            self._logger,
            logging.INFO,
            "Dry-run push recorded",
            extra={
                "provider_user_id": provider_user_id,
                "provider_message_id": message_id,
                "notification_payload": payload.to_dict(),
            },
        )
        return SendReceipt(message_id=message_id)
