"""In-memory user store backing the device registry and identity directory."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Self

import yaml

from push_dispatch.core.config import ConfigurationError
from push_dispatch.core.errors import RecipientNotFoundError
from push_dispatch.core.formatter import resolve_display_name
from push_dispatch.store.documents import DEVICES_FIELD, FLATTENED_PREFIX, parse_devices
from push_dispatch.types import Device

__all__ = ["InMemoryUserStore"]

logger = logging.getLogger(__name__)


class InMemoryUserStore:
    """User documents keyed by user id.

    Implements both ``DeviceRegistry`` and ``IdentityDirectory``. Documents
    keep the client-written shape (see ``store.documents``), so a YAML seed
    file can be a straight export of production records.
    """

    def __init__(self, documents: Mapping[str, Mapping[str, object]] | None = None) -> None:
        self._users: dict[str, dict[str, object]] = {
            str(user_id): copy.deepcopy(dict(document)) for user_id, document in (documents or {}).items()
        }
        self._lock: asyncio.Lock = asyncio.Lock()

    @classmethod
    def from_yaml(cls, path: Path) -> Self:
        """Load user documents from a ``users:`` mapping in a YAML file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or has
                the wrong shape
        """
        try:
            with path.open("r") as f:
                raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
        except FileNotFoundError as e:
            msg = f"User store file not found: {path}\nPass an existing file with --store."
            raise ConfigurationError(msg) from e
        except yaml.YAMLError as e:
            msg = f"Failed to parse user store YAML: {path}\nYAML parsing error: {e}"
            raise ConfigurationError(msg) from e
        except OSError as e:
            msg = f"Failed to read user store file: {path}\nError: {e}\nPlease check file permissions."
            raise ConfigurationError(msg) from e

        users = raw_data.get("users") if isinstance(raw_data, dict) else None  # pyright: ignore[reportUnknownMemberType]
        if users is None:
            users = {}
        if not isinstance(users, dict) or not all(isinstance(doc, dict) for doc in users.values()):  # pyright: ignore[reportUnknownVariableType, reportUnknownMemberType]
            msg = (
                f"Invalid user store format: {path}\n"
                f"Expected a 'users' mapping of user id to document."
            )
            raise ConfigurationError(msg)

        store = cls(users)  # pyright: ignore[reportUnknownArgumentType]
        logger.info("Loaded %d user document(s) from %s", len(store), path)
        return store

    def __len__(self) -> int:
        return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._users

    async def upsert_user(self, user_id: str, document: Mapping[str, object]) -> None:
        async with self._lock:
            self._users[user_id] = copy.deepcopy(dict(document))

    async def get_devices(self, recipient_id: str) -> Mapping[str, Device]:
        async with self._lock:
            document = self._users.get(recipient_id)
            if document is None:
                raise RecipientNotFoundError(recipient_id)
            return parse_devices(document)

    async def delete_device(self, recipient_id: str, device_id: str) -> None:
        """Remove a device in both document shapes; unknown ids are ignored."""
        async with self._lock:
            document = self._users.get(recipient_id)
            if document is None:
                return

            removed = document.pop(f"{FLATTENED_PREFIX}{device_id}", None) is not None
            nested = document.get(DEVICES_FIELD)
            if isinstance(nested, dict) and device_id in nested:
                del nested[device_id]
                removed = True

        if removed:
            logger.debug("Deleted device %s of %s", device_id, recipient_id)

    async def get_display_name(self, user_id: str) -> str | None:
        async with self._lock:
            return resolve_display_name(self._users.get(user_id))
