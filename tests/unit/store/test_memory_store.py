"""Tests for the in-memory user store."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from push_dispatch.core.config import ConfigurationError
from push_dispatch.core.errors import RecipientNotFoundError
from push_dispatch.store import InMemoryUserStore
from push_dispatch.types import DeviceRegistry, IdentityDirectory

SEED_YAML = """
users:
  user-1:
    fullName: Alice Liddell
    email: alice@example.com
  user-2:
    username: bob
    devices:
      pixel:
        providerUserId: pu-1
        deviceName: Pixel 7
    devices.legacy:
      appwriteUserId: pu-legacy
"""


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore(
        {
            "user-2": {
                "username": "bob",
                "devices": {"pixel": {"providerUserId": "pu-1"}, "ipad": {"providerUserId": "pu-2"}},
                "devices.watch": {"providerUserId": "pu-3"},
            },
        }
    )


async def test_get_devices(store: InMemoryUserStore) -> None:
    devices = await store.get_devices("user-2")
    assert sorted(devices) == ["ipad", "pixel"]


async def test_unknown_recipient_raises(store: InMemoryUserStore) -> None:
    with pytest.raises(RecipientNotFoundError):
        _ = await store.get_devices("ghost")


async def test_delete_from_nested_map(store: InMemoryUserStore) -> None:
    await store.delete_device("user-2", "pixel")
    assert sorted(await store.get_devices("user-2")) == ["ipad"]


async def test_delete_flattened_key(store: InMemoryUserStore) -> None:
    await store.delete_device("user-2", "pixel")
    await store.delete_device("user-2", "ipad")

    # with the nested map empty, the flattened entry becomes visible and deletable
    assert sorted(await store.get_devices("user-2")) == ["watch"]
    await store.delete_device("user-2", "watch")
    assert await store.get_devices("user-2") == {}


async def test_delete_is_idempotent(store: InMemoryUserStore) -> None:
    await store.delete_device("user-2", "pixel")
    await store.delete_device("user-2", "pixel")
    await store.delete_device("user-2", "never-existed")
    await store.delete_device("ghost", "pixel")

    assert sorted(await store.get_devices("user-2")) == ["ipad"]


async def test_concurrent_deletes_of_same_device() -> None:
    store = InMemoryUserStore({"u": {"devices": {"a": {"providerUserId": "x"}, "b": {"providerUserId": "y"}}}})

    _ = await asyncio.gather(*(store.delete_device("u", "a") for _ in range(5)))

    assert list(await store.get_devices("u")) == ["b"]


async def test_seed_documents_are_copied() -> None:
    document: dict[str, object] = {"devices": {"a": {"providerUserId": "x"}}}
    store = InMemoryUserStore({"u": document})

    await store.delete_device("u", "a")

    assert document == {"devices": {"a": {"providerUserId": "x"}}}


async def test_display_name(store: InMemoryUserStore) -> None:
    await store.upsert_user("user-1", {"email": "carol@example.com"})

    assert await store.get_display_name("user-1") == "carol"
    assert await store.get_display_name("user-2") == "bob"
    assert await store.get_display_name("ghost") is None


def test_membership_and_length(store: InMemoryUserStore) -> None:
    assert "user-2" in store
    assert "ghost" not in store
    assert len(store) == 1


class TestFromYaml:
    async def test_loads_users(self, tmp_path: Path) -> None:
        path = tmp_path / "users.yaml"
        _ = path.write_text(SEED_YAML)

        store = InMemoryUserStore.from_yaml(path)

        assert len(store) == 2
        assert await store.get_display_name("user-1") == "Alice Liddell"
        devices = await store.get_devices("user-2")
        assert devices["pixel"].display_name == "Pixel 7"
        assert "legacy" not in devices

    def test_empty_file_gives_empty_store(self, tmp_path: Path) -> None:
        path = tmp_path / "users.yaml"
        _ = path.write_text("")

        assert len(InMemoryUserStore.from_yaml(path)) == 0

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="--store"):
            _ = InMemoryUserStore.from_yaml(tmp_path / "absent.yaml")

    @pytest.mark.parametrize("content", ["users: [a, b]\n", "users:\n  u1: just-a-string\n", "users: {"])
    def test_malformed_files(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "users.yaml"
        _ = path.write_text(content)

        with pytest.raises(ConfigurationError):
            _ = InMemoryUserStore.from_yaml(path)


def test_satisfies_registry_and_directory_protocols(store: InMemoryUserStore) -> None:
    assert isinstance(store, DeviceRegistry)
    assert isinstance(store, IdentityDirectory)
