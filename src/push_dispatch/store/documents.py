"""Parsing of user profile documents written by the chat clients.

Device maps have been written in two shapes over time: a nested
``devices`` object, and flattened ``devices.<id>`` keys left behind by
field-path updates. Routing handles likewise appear as ``providerUserId``
or the legacy ``appwriteUserId``.
"""

import logging
from collections.abc import Mapping
from typing import Final

from push_dispatch.types import Device

logger = logging.getLogger(__name__)

DEVICES_FIELD: Final[str] = "devices"
FLATTENED_PREFIX: Final[str] = f"{DEVICES_FIELD}."
DEFAULT_DEVICE_NAME: Final[str] = "Unknown"

_ROUTING_FIELDS: Final[tuple[str, ...]] = ("providerUserId", "appwriteUserId")
_NAME_FIELDS: Final[tuple[str, ...]] = ("deviceName", "displayName")


def _first_text(entry: Mapping[str, object], fields: tuple[str, ...]) -> str | None:
    for name in fields:
        value = entry.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def raw_device_entries(document: Mapping[str, object]) -> dict[str, object]:
    """Return the raw device map, falling back to flattened keys."""
    nested = document.get(DEVICES_FIELD)
    if isinstance(nested, Mapping) and nested:
        return {str(key): value for key, value in nested.items()}  # pyright: ignore[reportUnknownVariableType]

    return {
        key.removeprefix(FLATTENED_PREFIX): value
        for key, value in document.items()
        if key.startswith(FLATTENED_PREFIX) and len(key) > len(FLATTENED_PREFIX)
    }


def parse_devices(document: Mapping[str, object]) -> dict[str, Device]:
    """Build ``Device`` records from a user document.

    Entries that are not objects are skipped with a warning. A missing
    routing handle is kept as ``None`` so the worker can report it.

    Examples:
        >>> parse_devices({"devices.p7": {"appwriteUserId": "u1", "deviceName": "Pixel"}})
        {'p7': Device(device_id='p7', provider_user_id='u1', display_name='Pixel')}
    """
    devices: dict[str, Device] = {}
    for device_id, entry in raw_device_entries(document).items():
        if not isinstance(entry, Mapping):
            logger.warning("Ignoring malformed device entry (device_id=%s)", device_id)
            continue
        devices[device_id] = Device(
            device_id=device_id,
            provider_user_id=_first_text(entry, _ROUTING_FIELDS),  # pyright: ignore[reportUnknownArgumentType]
            display_name=_first_text(entry, _NAME_FIELDS) or DEFAULT_DEVICE_NAME,  # pyright: ignore[reportUnknownArgumentType]
        )
    return devices
