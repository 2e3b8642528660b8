from __future__ import annotations

import json

import pytest

from core.config import StorageConfig
from core.session import SessionIdentity, load_session, parse_identity
from services.cache import MemoryStorage, build_storage


def test_parse_identity_accepts_json_and_mappings() -> None:
    assert parse_identity('{"_id": "u1", "role": "Moderator"}') == SessionIdentity(id="u1", role="moderator")
    assert parse_identity({"id": 7, "role": "admin"}) == SessionIdentity(id="7", role="admin")


def test_parse_identity_rejects_garbage(caplog) -> None:
    assert parse_identity(None) is None
    assert parse_identity("{not json") is None
    assert parse_identity(["u1"]) is None
    assert parse_identity({"role": "admin"}) is None
    assert "Failed to parse stored user" in caplog.text


def test_unknown_role_grants_nothing() -> None:
    identity = parse_identity({"_id": "u1", "role": "superuser"})
    assert identity is not None
    assert identity.is_admin is False
    assert identity.is_moderator is False


@pytest.mark.asyncio
async def test_memory_storage_is_namespaced() -> None:
    storage = MemoryStorage(namespace="desk:", initial={"token": "abc", "user": None})

    assert await storage.get("token") == "abc"
    assert await storage.get("user") is None
    await storage.set("user", "someone")
    assert await storage.get("user") == "someone"
    await storage.delete("user")
    assert await storage.get("user") is None
    await storage.close()
    assert await storage.get("token") is None


@pytest.mark.asyncio
async def test_load_session_reads_token_and_user_once() -> None:
    storage = build_storage(
        StorageConfig(backend="memory"),
        seed={"token": "  abc  ", "user": json.dumps({"_id": "u-owner", "role": "user"})},
    )

    session = await load_session(storage)
    await storage.set("user", json.dumps({"_id": "u-owner", "role": "admin"}))

    assert session.token == "abc"
    assert session.is_authenticated is True
    assert session.identity == SessionIdentity(id="u-owner", role="user")


@pytest.mark.asyncio
async def test_empty_storage_gives_anonymous_session() -> None:
    session = await load_session(MemoryStorage())
    assert session.token is None
    assert session.identity is None
    assert session.is_authenticated is False
