from __future__ import annotations

import asyncio
from typing import Any, Protocol

import redis.asyncio as redis

from core.config import StorageConfig


class StorageBackend(Protocol):
    async def get(self, key: str) -> Any: ...
    async def set(self, key: str, value: Any) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def close(self) -> None: ...


class MemoryStorage(StorageBackend):
    """Process-wide key/value storage, the client-side equivalent of a browser store."""

    def __init__(self, namespace: str = "", initial: dict[str, Any] | None = None) -> None:
        self._namespace = namespace
        self._store: dict[str, Any] = {}
        self._lock = asyncio.Lock()
        for key, value in (initial or {}).items():
            if value is not None:
                self._store[self._key(key)] = value

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def get(self, key: str) -> Any:
        async with self._lock:
            return self._store.get(self._key(key))

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            self._store[self._key(key)] = value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(self._key(key), None)

    async def close(self) -> None:
        self._store.clear()


class RedisStorage(StorageBackend):
    def __init__(self, url: str, namespace: str = "") -> None:
        self._namespace = namespace
        self._client = redis.from_url(url, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def get(self, key: str) -> Any:
        return await self._client.get(self._key(key))

    async def set(self, key: str, value: Any) -> None:
        await self._client.set(self._key(key), value)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._key(key))

    async def close(self) -> None:
        await self._client.aclose()


def build_storage(config: StorageConfig, seed: dict[str, Any] | None = None) -> StorageBackend:
    if config.backend == "redis":
        return RedisStorage(config.url, namespace=config.namespace)
    return MemoryStorage(namespace=config.namespace, initial=seed)
