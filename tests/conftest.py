"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from push_dispatch.core.executor import BoundedExecutor
from push_dispatch.core.rate_limiter import TokenBucket
from push_dispatch.core.retry import RetryPolicy
from push_dispatch.core.worker import DeviceSendWorker
from push_dispatch.types import Device, NotificationPayload, NotificationProvider
from push_dispatch.utils.logging import clear_correlation_id
from tests.fixtures.fakes import FakeRegistry, WorkerFactory, no_sleep


@pytest.fixture(autouse=True)
def reset_correlation_id() -> Iterator[None]:
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def payload() -> NotificationPayload:
    return NotificationPayload(
        title="Alice",
        body="Hello there",
        data={"type": "chat_message", "chatId": "chat-1"},
    )


@pytest.fixture
def device() -> Device:
    return Device(device_id="pixel-7", provider_user_id="pu-1", display_name="Pixel 7")


@pytest.fixture
def fast_retry_policy() -> RetryPolicy:
    """Two retries with no real waiting."""
    return RetryPolicy(
        max_retries=2,
        initial_delay_seconds=0.05,
        max_delay_seconds=2.0,
        sleep=no_sleep,
    )


@pytest.fixture
def make_worker(fast_retry_policy: RetryPolicy) -> WorkerFactory:
    """Build a worker with generous limits around the given collaborators."""

    def factory(
        provider: NotificationProvider,
        registry: FakeRegistry,
        *,
        retry_policy: RetryPolicy | None = None,
        executor: BoundedExecutor | None = None,
        rate_limiter: TokenBucket | None = None,
        provider_timeout_seconds: float = 1.0,
    ) -> DeviceSendWorker:
        return DeviceSendWorker(
            provider,
            registry,
            rate_limiter=rate_limiter or TokenBucket(capacity=1000, refill_rate_per_second=1000),
            executor=executor or BoundedExecutor(100),
            retry_policy=retry_policy or fast_retry_policy,
            provider_timeout_seconds=provider_timeout_seconds,
        )

    return factory
