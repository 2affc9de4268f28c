"""Push provider implementations."""

from push_dispatch.providers.dry_run import DryRunProvider
from push_dispatch.providers.messaging import MessagingAPIProvider

__all__ = ["DryRunProvider", "MessagingAPIProvider"]
