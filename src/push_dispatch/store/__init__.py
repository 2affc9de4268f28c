"""User document storage implementing the registry and directory protocols."""

from push_dispatch.store.documents import parse_devices, raw_device_entries
from push_dispatch.store.memory import InMemoryUserStore

__all__ = ["InMemoryUserStore", "parse_devices", "raw_device_entries"]
