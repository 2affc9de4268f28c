"""Wiring of the process-wide dispatch components."""

from __future__ import annotations

from dataclasses import dataclass
from types import TracebackType
from typing import Self

from push_dispatch.core.config import DispatchConfig, MainConfig
from push_dispatch.core.coordinator import DispatchCoordinator
from push_dispatch.core.executor import BoundedExecutor
from push_dispatch.core.rate_limiter import TokenBucket
from push_dispatch.core.retry import RetryPolicy
from push_dispatch.core.service import NotificationService
from push_dispatch.core.worker import DeviceSendWorker
from push_dispatch.types import DeviceRegistry, IdentityDirectory, NotificationProvider, OutcomeListener

__all__ = ["DispatchEngine"]


@dataclass(slots=True, frozen=True)
class DispatchEngine:
    """One rate limiter, one executor and the components that share them.

    Build a single engine per process; every dispatch must go through the
    same ``TokenBucket`` and ``BoundedExecutor`` for the global limits to
    hold.
    """

    config: DispatchConfig
    rate_limiter: TokenBucket
    executor: BoundedExecutor
    retry_policy: RetryPolicy
    worker: DeviceSendWorker
    coordinator: DispatchCoordinator
    service: NotificationService

    @classmethod
    def from_config(
        cls,
        config: MainConfig,
        *,
        provider: NotificationProvider,
        registry: DeviceRegistry,
        directory: IdentityDirectory | None = None,
        outcome_listener: OutcomeListener | None = None,
    ) -> Self:
        dispatch = config.dispatch
        rate_limiter = TokenBucket(
            capacity=dispatch.effective_burst_capacity,
            refill_rate_per_second=dispatch.rate_limit_per_second,
        )
        executor = BoundedExecutor(dispatch.max_concurrent_sends)
        retry_policy = RetryPolicy(
            max_retries=dispatch.max_retries,
            initial_delay_seconds=dispatch.initial_retry_delay_seconds,
            max_delay_seconds=dispatch.max_retry_delay_seconds,
            jitter_percent=dispatch.retry_jitter_percent,
        )
        worker = DeviceSendWorker(
            provider,
            registry,
            rate_limiter=rate_limiter,
            executor=executor,
            retry_policy=retry_policy,
            provider_timeout_seconds=dispatch.provider_timeout_seconds,
        )
        coordinator = DispatchCoordinator(
            registry,
            worker,
            early_response_threshold_seconds=dispatch.early_response_threshold_seconds,
            outcome_listener=outcome_listener,
            shutdown_grace_seconds=dispatch.shutdown_grace_seconds,
        )
        service = NotificationService(coordinator, directory, formatting=config.formatting)
        return cls(
            config=dispatch,
            rate_limiter=rate_limiter,
            executor=executor,
            retry_policy=retry_policy,
            worker=worker,
            coordinator=coordinator,
            service=service,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        _ = await self.coordinator.shutdown(self.config.shutdown_grace_seconds)
