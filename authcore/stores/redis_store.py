"""Redis implementation of EphemeralStore (redis.asyncio)."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import TypeVar

import redis.asyncio as aioredis
from redis.exceptions import ReadOnlyError, RedisError, ResponseError

from authcore.core.errors import AuthCoreError, StorageRejected, StorageUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# GET + DEL in one server-side step, for servers older than 6.2 (no GETDEL)
_GETDEL_SCRIPT = """
local value = redis.call('GET', KEYS[1])
if value then
    redis.call('DEL', KEYS[1])
end
return value
"""


def _glob_escape(prefix: str) -> str:
    """Escape SCAN MATCH metacharacters so the prefix matches literally."""
    return "".join("\\" + ch if ch in "*?[]\\" else ch for ch in prefix)


class RedisEphemeralStore:
    """Thin wrapper over an async Redis client; expiry is eager (server-side)."""

    def __init__(self, client: aioredis.Redis):
        self.client = client
        self._getdel_fallback = client.register_script(_GETDEL_SCRIPT)
        self._native_getdel = True

    @classmethod
    def from_url(cls, redis_url: str, *, socket_timeout: float = 5.0) -> "RedisEphemeralStore":
        client = aioredis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    @staticmethod
    def _translate(e: RedisError, op: str) -> AuthCoreError:
        # a read-only replica after failover is transient; other command errors are not
        if isinstance(e, ResponseError) and not isinstance(e, ReadOnlyError):
            logger.error("Ephemeral store: Redis rejected %s: %s", op, e)
            return StorageRejected(f"Redis {op} rejected: {e}")
        logger.warning("Ephemeral store: Redis error in %s: %s", op, type(e).__name__)
        return StorageUnavailable(f"Redis {op} failed")

    async def _run(self, awaitable: Awaitable[T], op: str) -> T:
        try:
            return await awaitable
        except RedisError as e:
            raise self._translate(e, op) from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        await self._run(self.client.set(key, value, ex=ttl_seconds), "set")

    async def get(self, key: str) -> str | None:
        return await self._run(self.client.get(key), "get")

    async def getdel(self, key: str) -> str | None:
        if self._native_getdel:
            try:
                return await self.client.getdel(key)
            except ResponseError as e:
                if "unknown command" not in str(e).lower():
                    raise self._translate(e, "getdel") from e
                logger.info("Redis server lacks GETDEL, using Lua fallback")
                self._native_getdel = False
            except RedisError as e:
                raise self._translate(e, "getdel") from e
        return await self._run(self._getdel_fallback(keys=[key]), "getdel")

    async def ttl(self, key: str) -> int:
        return int(await self._run(self.client.ttl(key), "ttl"))

    async def scan_keys(self, prefix: str) -> list[str]:
        async def collect() -> list[str]:
            return [key async for key in self.client.scan_iter(match=f"{_glob_escape(prefix)}*", count=500)]

        return await self._run(collect(), "scan")

    async def purge_expired(self, prefix: str) -> int:
        """Redis evicts lapsed keys itself; there is never anything left to purge."""
        return 0

    async def aclose(self) -> None:
        await self.client.aclose()
