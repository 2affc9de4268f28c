"""Delivery of one notification to one device."""

from __future__ import annotations

import asyncio
import logging
import time

from push_dispatch.core.errors import DeliveryError
from push_dispatch.core.executor import BoundedExecutor
from push_dispatch.core.rate_limiter import TokenBucket
from push_dispatch.core.retry import RetryPolicy
from push_dispatch.types import (
    Device,
    DeviceOutcome,
    DeviceRegistry,
    ErrorKind,
    NotificationPayload,
    NotificationProvider,
    SendReceipt,
)
from push_dispatch.utils.logging import get_logger, log_with_context
from push_dispatch.utils.sanitization import sanitize_exception

__all__ = ["DeviceSendWorker"]

MISSING_ROUTE_MESSAGE = "Device has no provider routing handle"


class DeviceSendWorker:
    """Send one payload to one device and report the outcome.

    ``send`` never raises except for cancellation: every failure, including
    unexpected ones, is folded into the returned ``DeviceOutcome``. One
    executor slot is held for the whole delivery, retries and backoff sleeps
    included. Each attempt takes its own rate-limit token and is bounded by
    ``provider_timeout_seconds``.
    """

    def __init__(
        self,
        provider: NotificationProvider,
        registry: DeviceRegistry,
        *,
        rate_limiter: TokenBucket,
        executor: BoundedExecutor,
        retry_policy: RetryPolicy,
        provider_timeout_seconds: float,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if provider_timeout_seconds <= 0:
            msg = "provider_timeout_seconds must be greater than zero"
            raise ValueError(msg)

        self._provider: NotificationProvider = provider
        self._registry: DeviceRegistry = registry
        self._rate_limiter: TokenBucket = rate_limiter
        self._executor: BoundedExecutor = executor
        self._retry_policy: RetryPolicy = retry_policy
        self._provider_timeout_seconds: float = provider_timeout_seconds
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def send(
        self,
        recipient_id: str,
        device: Device,
        payload: NotificationPayload,
    ) -> DeviceOutcome:
        start = time.perf_counter()

        provider_user_id = device.provider_user_id
        if not provider_user_id:
            log_with_context(
                self._logger,
                logging.WARNING,
                "Skipping device without provider routing handle",
                extra={"recipient_id": recipient_id, "device_id": device.device_id},
            )
            return DeviceOutcome(
                device_id=device.device_id,
                display_name=device.display_name,
                success=False,
                duration_ms=_elapsed_ms(start),
                error_kind=ErrorKind.MISSING_ROUTE,
                error_message=MISSING_ROUTE_MESSAGE,
            )

        try:
            receipt = await self._executor.run(self._deliver, provider_user_id, payload)
        except asyncio.CancelledError:
            raise
        except DeliveryError as exc:
            return await self._handle_delivery_error(recipient_id, device, exc, start)
        except Exception as exc:
            duration_ms = _elapsed_ms(start)
            error_message = sanitize_exception(exc)
            log_with_context(
                self._logger,
                logging.ERROR,
                "Unexpected error while sending push",
                extra={
                    "recipient_id": recipient_id,
                    "device_id": device.device_id,
                    "duration_ms": duration_ms,
                    "error_message": error_message,
                },
            )
            return DeviceOutcome(
                device_id=device.device_id,
                display_name=device.display_name,
                success=False,
                duration_ms=duration_ms,
                error_kind=ErrorKind.INTERNAL,
                error_message=error_message,
            )

        duration_ms = _elapsed_ms(start)
        log_with_context(
            self._logger,
            logging.INFO,
            "Push delivered",
            extra={
                "recipient_id": recipient_id,
                "device_id": device.device_id,
                "provider_message_id": receipt.message_id,
                "duration_ms": duration_ms,
            },
        )
        return DeviceOutcome(
            device_id=device.device_id,
            display_name=device.display_name,
            success=True,
            duration_ms=duration_ms,
            provider_message_id=receipt.message_id,
        )

    async def _deliver(self, provider_user_id: str, payload: NotificationPayload) -> SendReceipt:
        return await self._retry_policy.execute(lambda: self._attempt(provider_user_id, payload))

    async def _attempt(self, provider_user_id: str, payload: NotificationPayload) -> SendReceipt:
        await self._rate_limiter.acquire()
        async with asyncio.timeout(self._provider_timeout_seconds):
            return await self._provider.send_push(provider_user_id, payload)

    async def _handle_delivery_error(
        self,
        recipient_id: str,
        device: Device,
        exc: DeliveryError,
        start: float,
    ) -> DeviceOutcome:
        auto_cleaned = False
        if exc.target_gone:
            await self._cleanup(recipient_id, device.device_id)
            auto_cleaned = True

        duration_ms = _elapsed_ms(start)
        log_with_context(
            self._logger,
            logging.WARNING,
            "Push delivery failed",
            extra={
                "recipient_id": recipient_id,
                "device_id": device.device_id,
                "attempts": exc.attempts,
                "error_kind": exc.kind.value,
                "error_message": exc.message,
                "auto_cleaned": auto_cleaned,
                "duration_ms": duration_ms,
            },
        )
        return DeviceOutcome(
            device_id=device.device_id,
            display_name=device.display_name,
            success=False,
            duration_ms=duration_ms,
            error_kind=exc.kind,
            error_message=exc.message,
            auto_cleaned=auto_cleaned,
        )

    async def _cleanup(self, recipient_id: str, device_id: str) -> None:
        """Remove a device the provider no longer knows about (best effort)."""
        try:
            await self._registry.delete_device(recipient_id, device_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_with_context(
                self._logger,
                logging.ERROR,
                "Failed to remove unregistered device",
                extra={
                    "recipient_id": recipient_id,
                    "device_id": device_id,
                    "error_message": sanitize_exception(exc),
                },
            )
            return

        log_with_context(
            self._logger,
            logging.INFO,
            "Removed unregistered device",
            extra={"recipient_id": recipient_id, "device_id": device_id},
        )


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000.0, 3)
