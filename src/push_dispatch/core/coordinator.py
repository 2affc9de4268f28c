"""Fan-out of one notification to all of a recipient's devices.

The coordinator resolves the device set, starts one task per device and
races them against the early-response deadline. Whatever is still running
when the deadline passes keeps going in the background; the caller gets a
``Delivering`` acknowledgement and a watcher task logs the final summary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Coroutine, Mapping, Sequence
from enum import StrEnum
from types import TracebackType
from typing import Self

from push_dispatch.core.errors import RegistryUnreachableError, ResolutionError
from push_dispatch.core.worker import DeviceSendWorker
from push_dispatch.types import (
    Completed,
    Delivering,
    Device,
    DeviceOutcome,
    DeviceRegistry,
    DispatchResult,
    ErrorKind,
    NotificationPayload,
    OutcomeListener,
)
from push_dispatch.utils.logging import get_logger, log_with_context
from push_dispatch.utils.sanitization import sanitize_exception

__all__ = ["DispatchCoordinator", "DispatchState"]


class DispatchState(StrEnum):
    """Lifecycle of a single dispatch invocation.

    States are logged per call with the recipient id. The coordinator is
    shared by concurrent dispatches, so it keeps no per-dispatch state.
    """

    RESOLVING = "resolving"
    FANNING_OUT = "fanning_out"
    EARLY_RETURNED = "early_returned"
    COMPLETED = "completed"


class DispatchCoordinator:
    """Deliver a payload to every device of a recipient within a latency bound.

    Device tasks are held in a set owned by the coordinator so they are
    neither garbage collected nor leaked: ``drain`` waits for them and
    ``shutdown`` cancels whatever outlives the grace period. Using the
    coordinator as an async context manager runs ``shutdown`` on exit.

    Example:
        >>> async with DispatchCoordinator(registry, worker, early_response_threshold_seconds=0.3) as coordinator:
        ...     result = await coordinator.dispatch("user-1", payload)
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        worker: DeviceSendWorker,
        *,
        early_response_threshold_seconds: float,
        outcome_listener: OutcomeListener | None = None,
        shutdown_grace_seconds: float = 10.0,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if early_response_threshold_seconds <= 0:
            msg = "early_response_threshold_seconds must be greater than zero"
            raise ValueError(msg)

        self._registry: DeviceRegistry = registry
        self._worker: DeviceSendWorker = worker
        self._threshold_seconds: float = early_response_threshold_seconds
        self._outcome_listener: OutcomeListener | None = outcome_listener
        self._shutdown_grace_seconds: float = shutdown_grace_seconds
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        self._background: set[asyncio.Task[object]] = set()

    @property
    def background_task_count(self) -> int:
        """Device and watcher tasks that have not finished yet."""
        return len(self._background)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        _ = await self.shutdown(self._shutdown_grace_seconds)

    async def dispatch(
        self,
        recipient_id: str,
        payload: NotificationPayload,
        *,
        target_device_id: str | None = None,
    ) -> DispatchResult:
        """Deliver ``payload`` to the recipient's devices.

        Args:
            recipient_id: Identity of the notification recipient
            payload: Content shared by every device
            target_device_id: Deliver to this device only, if registered

        Returns:
            ``Completed`` when every device finished before the deadline,
            otherwise ``Delivering``

        Raises:
            RecipientNotFoundError: If the registry does not know the recipient
            RegistryUnreachableError: If the registry lookup fails otherwise
        """
        started = time.perf_counter()
        self._transition(DispatchState.RESOLVING, recipient_id)
        devices = await self._resolve(recipient_id, target_device_id)

        if not devices:
            log_with_context(
                self._logger,
                logging.INFO,
                "No devices registered for recipient",
                extra={"recipient_id": recipient_id, "target_device_id": target_device_id},
            )
            self._transition(DispatchState.COMPLETED, recipient_id)
            return Completed(total=0, succeeded=0, failed=0)

        self._transition(DispatchState.FANNING_OUT, recipient_id, device_count=len(devices))
        tasks = [
            self._spawn(
                self._send_one(recipient_id, device, payload),
                name=f"push-dispatch:{recipient_id}:{device.device_id}",
            )
            for device in devices
        ]

        _, pending = await asyncio.wait(tasks, timeout=self._threshold_seconds)

        if not pending:
            result = Completed.from_outcomes(task.result() for task in tasks)
            self._log_summary("Dispatch completed", recipient_id, result, started)
            self._transition(DispatchState.COMPLETED, recipient_id)
            return result

        _ = self._spawn(
            self._watch(recipient_id, tasks, started),
            name=f"push-dispatch:{recipient_id}:watcher",
        )
        log_with_context(
            self._logger,
            logging.INFO,
            "Early response deadline reached, continuing in background",
            extra={
                "recipient_id": recipient_id,
                "device_count": len(tasks),
                "pending_count": len(pending),
                "threshold_ms": self._threshold_seconds * 1000.0,
            },
        )
        self._transition(DispatchState.EARLY_RETURNED, recipient_id)
        return Delivering(device_count=len(tasks))

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for background work to finish.

        Returns:
            True if nothing is left running, False if the timeout expired
        """
        try:
            async with asyncio.timeout(timeout):
                while self._background:
                    _ = await asyncio.wait(set(self._background))
        except TimeoutError:
            return False
        return True

    async def shutdown(self, grace_seconds: float) -> int:
        """Drain for up to ``grace_seconds``, then cancel what is left.

        Returns:
            Number of tasks that had to be cancelled
        """
        if await self.drain(grace_seconds):
            return 0

        remaining = list(self._background)
        for task in remaining:
            _ = task.cancel()
        _ = await asyncio.gather(*remaining, return_exceptions=True)

        log_with_context(
            self._logger,
            logging.WARNING,
            "Cancelled background deliveries at shutdown",
            extra={"cancelled_count": len(remaining), "grace_seconds": grace_seconds},
        )
        return len(remaining)

    async def _resolve(self, recipient_id: str, target_device_id: str | None) -> Sequence[Device]:
        try:
            devices: Mapping[str, Device] = await self._registry.get_devices(recipient_id)
        except ResolutionError:
            raise
        except Exception as exc:
            message = f"Device registry lookup failed: {sanitize_exception(exc)}"
            log_with_context(
                self._logger,
                logging.ERROR,
                message,
                extra={"recipient_id": recipient_id, "error_kind": RegistryUnreachableError.kind.value},
            )
            raise RegistryUnreachableError(message, recipient_id=recipient_id) from exc

        if target_device_id is None:
            return list(devices.values())

        device = devices.get(target_device_id)
        if device is None:
            log_with_context(
                self._logger,
                logging.WARNING,
                "Target device is not registered for recipient",
                extra={"recipient_id": recipient_id, "target_device_id": target_device_id},
            )
            return []
        return [device]

    def _spawn[T](self, coro: Coroutine[object, object, T], *, name: str) -> asyncio.Task[T]:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)  # pyright: ignore[reportArgumentType]
        task.add_done_callback(self._background.discard)  # pyright: ignore[reportArgumentType]
        return task

    async def _send_one(
        self,
        recipient_id: str,
        device: Device,
        payload: NotificationPayload,
    ) -> DeviceOutcome:
        try:
            outcome = await self._worker.send(recipient_id, device, payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            outcome = DeviceOutcome(
                device_id=device.device_id,
                display_name=device.display_name,
                success=False,
                duration_ms=0.0,
                error_kind=ErrorKind.INTERNAL,
                error_message=sanitize_exception(exc),
            )
        self._notify(outcome)
        return outcome

    def _notify(self, outcome: DeviceOutcome) -> None:
        if self._outcome_listener is None:
            return
        try:
            self._outcome_listener(outcome)
        except Exception as exc:
            log_with_context(
                self._logger,
                logging.ERROR,
                "Outcome listener raised",
                extra={"device_id": outcome.device_id, "error_message": sanitize_exception(exc)},
            )

    async def _watch(
        self,
        recipient_id: str,
        tasks: Sequence[asyncio.Task[DeviceOutcome]],
        started: float,
    ) -> Completed:
        results = await asyncio.gather(*tasks, return_exceptions=True)
        outcomes = [result for result in results if isinstance(result, DeviceOutcome)]
        summary = Completed.from_outcomes(outcomes)
        self._log_summary(
            "Background delivery finished",
            recipient_id,
            summary,
            started,
            cancelled_count=len(results) - len(outcomes),
        )
        return summary

    def _log_summary(
        self,
        message: str,
        recipient_id: str,
        result: Completed,
        started: float,
        *,
        cancelled_count: int = 0,
    ) -> None:
        extra: dict[str, object] = {
            "recipient_id": recipient_id,
            "total": result.total,
            "succeeded": result.succeeded,
            "failed": result.failed,
            "auto_cleaned": sum(1 for outcome in result.outcomes if outcome.auto_cleaned),
            "duration_ms": round((time.perf_counter() - started) * 1000.0, 3),
        }
        if cancelled_count:
            extra["cancelled_count"] = cancelled_count
        log_with_context(self._logger, logging.INFO, message, extra=extra)

    def _transition(self, state: DispatchState, recipient_id: str, **fields: object) -> None:
        log_with_context(
            self._logger,
            logging.DEBUG,
            f"Dispatch state: {state.value}",
            extra={"recipient_id": recipient_id, "dispatch_state": state.value, **fields},
        )
