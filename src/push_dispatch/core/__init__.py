"""Dispatch engine: rate limiting, concurrency, retries, fan-out and wiring."""

from push_dispatch.core.config import (
    ApplicationConfig,
    ConfigurationError,
    DispatchConfig,
    EnvironmentVariableError,
    FormattingConfig,
    MainConfig,
    ProviderConfig,
    load_main_config,
)
from push_dispatch.core.coordinator import DispatchCoordinator, DispatchState
from push_dispatch.core.engine import DispatchEngine
from push_dispatch.core.errors import (
    DeliveryError,
    ErrorClassification,
    InvalidEventError,
    ProviderError,
    PushDispatchError,
    RecipientNotFoundError,
    RegistryUnreachableError,
    ResolutionError,
)
from push_dispatch.core.executor import BoundedExecutor
from push_dispatch.core.rate_limiter import TokenBucket
from push_dispatch.core.responses import result_to_dict
from push_dispatch.core.retry import RetryPolicy, classify_error
from push_dispatch.core.service import NotificationService, parse_event
from push_dispatch.core.worker import DeviceSendWorker

__all__ = [
    # Configuration
    "ApplicationConfig",
    "ConfigurationError",
    "DispatchConfig",
    "EnvironmentVariableError",
    "FormattingConfig",
    "MainConfig",
    "ProviderConfig",
    "load_main_config",
    # Engine components
    "BoundedExecutor",
    "DeviceSendWorker",
    "DispatchCoordinator",
    "DispatchEngine",
    "DispatchState",
    "NotificationService",
    "RetryPolicy",
    "TokenBucket",
    "classify_error",
    "parse_event",
    "result_to_dict",
    # Errors
    "DeliveryError",
    "ErrorClassification",
    "InvalidEventError",
    "ProviderError",
    "PushDispatchError",
    "RecipientNotFoundError",
    "RegistryUnreachableError",
    "ResolutionError",
]
