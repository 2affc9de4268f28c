"""Type aliases using PEP 695 syntax."""

from collections.abc import Callable, Mapping

from push_dispatch.types.models import Completed, Delivering, Device, DeviceOutcome

# Exactly one of these is returned per coordinator invocation
type DispatchResult = Delivering | Completed

# Registry view of one recipient, keyed by device id
type DeviceMap = Mapping[str, Device]

# Observer notified once per produced device outcome
type OutcomeListener = Callable[[DeviceOutcome], None]
