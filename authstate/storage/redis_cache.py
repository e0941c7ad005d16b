from __future__ import annotations

from typing import Dict, Mapping, Optional

import redis.asyncio as aioredis
from redis import Redis


class RedisCache:
    """Thin Redis wrapper exposing the state-cache primitives.

    Values are stored as strings (``decode_responses=True``). Errors from the
    client are not caught here; the resolvers decide how to degrade.
    """

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity before enabling dependent features."""

        # Use a short-lived synchronous client to avoid binding the async client to a
        # temporary event loop during startup checks.
        sync_client = Redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
        )
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.client.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def hgetall(self, key: str) -> Optional[Dict[str, str]]:
        data = await self.client.hgetall(key)
        # HGETALL on a missing key yields an empty mapping
        return data or None

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None:
        await self.client.hset(key, mapping=dict(mapping))

    async def expire(self, key: str, ttl_seconds: int) -> None:
        await self.client.expire(key, ttl_seconds)

    async def hset_with_ttl(
        self, key: str, mapping: Mapping[str, str], ttl_seconds: int
    ) -> None:
        """Write a hash and its TTL in one MULTI/EXEC so no untimed entry is visible."""
        pipe = self.client.pipeline(transaction=True)
        pipe.hset(key, mapping=dict(mapping))
        pipe.expire(key, ttl_seconds)
        await pipe.execute()

    async def close(self) -> None:
        await self.client.aclose()


class SyncRedisCache:
    """Synchronous Redis wrapper for use in tests.

    Uses a synchronous Redis client internally to avoid event loop binding
    issues in pytest, but exposes async methods so they can be awaited
    uniformly like RedisCache.
    """

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity."""
        self.client.ping()

    async def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.client.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        self.client.delete(key)

    async def hgetall(self, key: str) -> Optional[Dict[str, str]]:
        return self.client.hgetall(key) or None

    async def hset(self, key: str, mapping: Mapping[str, str]) -> None:
        self.client.hset(key, mapping=dict(mapping))

    async def expire(self, key: str, ttl_seconds: int) -> None:
        self.client.expire(key, ttl_seconds)

    async def hset_with_ttl(
        self, key: str, mapping: Mapping[str, str], ttl_seconds: int
    ) -> None:
        pipe = self.client.pipeline(transaction=True)
        pipe.hset(key, mapping=dict(mapping))
        pipe.expire(key, ttl_seconds)
        pipe.execute()

    async def close(self) -> None:
        self.client.close()
