# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Redis caching layer implementing the datastore cache contract."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import redis.asyncio as redis
from attrs import field, frozen
from beartype import beartype

from .config import Settings

__all__ = [
    "CacheConfig",
    "RedisCache",
]

if TYPE_CHECKING:
    from redis.asyncio import Redis as RedisType
else:
    RedisType = redis.Redis


@frozen
class CacheConfig:
    """Immutable cache configuration."""

    url: str = field()
    namespace: str = field(default="tenantstore")
    default_ttl: timedelta | None = field(default=None)
    max_connections: int = field(default=10)


class RedisCache:
    """Namespaced Redis cache with async support.

    Values are stored as raw bytes so the string and bytes accessors share
    one keyspace. ``flush_db`` only removes keys under this namespace.
    """

    def __init__(
        self,
        redis_client: RedisType,
        *,
        namespace: str = "tenantstore",
        default_ttl: timedelta | None = None,
    ) -> None:
        self._redis = redis_client
        self._namespace = namespace
        self._default_ttl = default_ttl

    @classmethod
    def from_config(cls, config: CacheConfig) -> RedisCache:
        client = redis.from_url(
            config.url,
            max_connections=config.max_connections,
            decode_responses=False,
        )
        return cls(client, namespace=config.namespace, default_ttl=config.default_ttl)

    @classmethod
    def from_settings(cls, settings: Settings) -> RedisCache:
        if not settings.redis_url:
            raise ValueError("REDIS_URL is not configured")
        return cls.from_config(
            CacheConfig(url=settings.redis_url, namespace=settings.cache_namespace)
        )

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    @beartype
    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        """Set a string value with optional TTL."""
        await self.set_bytes(key, value.encode("utf-8"), ttl)

    @beartype
    async def get(self, key: str) -> str | None:
        """Get a string value, ``None`` on miss."""
        value = await self.get_bytes(key)
        return None if value is None else value.decode("utf-8")

    @beartype
    async def set_bytes(self, key: str, value: bytes, ttl: timedelta | None = None) -> None:
        """Set a bytes value with optional TTL."""
        ttl = ttl if ttl is not None else self._default_ttl
        if ttl is None:
            await self._redis.set(self._key(key), value)
        else:
            await self._redis.set(self._key(key), value, px=max(1, int(ttl.total_seconds() * 1000)))

    @beartype
    async def get_bytes(self, key: str) -> bytes | None:
        """Get a bytes value, ``None`` on miss."""
        value = await self._redis.get(self._key(key))
        if value is None:
            return None
        return value if isinstance(value, bytes) else str(value).encode("utf-8")

    @beartype
    async def expire(self, key: str, ttl: timedelta | None = None) -> None:
        """Expire a key after ``ttl``, or immediately when no TTL is given."""
        if ttl is None or ttl.total_seconds() <= 0:
            await self._redis.delete(self._key(key))
            return
        await self._redis.pexpire(self._key(key), max(1, int(ttl.total_seconds() * 1000)))

    @beartype
    async def delete(self, key: str) -> None:
        """Delete key from cache."""
        await self._redis.delete(self._key(key))

    @beartype
    async def flush_db(self) -> None:
        """Remove every key in this cache's namespace."""
        keys = [key async for key in self._redis.scan_iter(match=self._key("*"))]
        if keys:
            await self._redis.delete(*keys)

    @beartype
    async def health_check(self) -> bool:
        """Perform cache health check."""
        try:
            await self._redis.ping()
            return True
        except (redis.RedisError, OSError):
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        await self._redis.aclose()
