# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Process-wide datastore aggregating the pool and its collaborators.

Everything reachable from a :class:`Datastore` is safe to share across
concurrent requests: the pool does its own locking and the helpers hold no
per-request state.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from datetime import timedelta
from typing import Any

import asyncpg
from beartype import beartype

from .core.errors import DatastoreNotInitializedError
from .core.interfaces import Cache, FileStorage, Publisher, SettingsProvider, StructuredSink
from .core.result_types import Err, Ok, Result
from .db.bootstrap import DatastoreConfig, bootstrap
from .db.logging_bridge import DatabaseLogBridge
from .db.paging import PagedData, PagedQuery
from .db.query import QueryRunner

logger = logging.getLogger(__name__)


class Datastore:
    """Pool, cache, settings, file storage and publisher behind one handle."""

    def __init__(
        self,
        pool: asyncpg.Pool,
        *,
        query: QueryRunner | None = None,
        settings: SettingsProvider | None = None,
        cache: Cache | None = None,
        file_storage: FileStorage | None = None,
        publisher: Publisher | None = None,
        bridge: DatabaseLogBridge | None = None,
        migrations: Result[list[str], str] | None = None,
    ) -> None:
        self.pool = pool
        self.query = query or QueryRunner(pool)
        self.settings = settings
        self.cache = cache
        self.file_storage = file_storage
        self.publisher = publisher
        self.bridge = bridge
        self.migrations = migrations
        self.key: bytes | None = None
        self._closed = False

    @classmethod
    def simple(cls, pool: asyncpg.Pool) -> "Datastore":
        """Wrap an existing pool without bootstrapping anything."""
        return cls(pool)

    @classmethod
    async def create(
        cls,
        settings: SettingsProvider,
        cache: Cache | None = None,
        file_storage: FileStorage | None = None,
        publisher: Publisher | None = None,
        *,
        config: DatastoreConfig | None = None,
        sink: StructuredSink | None = None,
    ) -> "Datastore":
        """Bootstrap the pool and assemble the datastore around it."""
        booted = await bootstrap(settings, cache, config=config, sink=sink)
        return cls(
            booted.pool,
            query=booted.query,
            settings=settings,
            cache=cache,
            file_storage=file_storage,
            publisher=publisher,
            bridge=booted.bridge,
            migrations=booted.migrations,
        )

    @property
    def is_closed(self) -> bool:
        return self._closed

    # Query helpers

    async def select(self, sql: str, *args: Any) -> list[asyncpg.Record]:
        return await self.query.select(sql, *args)

    async def one(self, sql: str, *args: Any) -> asyncpg.Record:
        return await self.query.one(sql, *args)

    async def scalar(self, sql: str, *args: Any) -> Any:
        return await self.query.scalar(sql, *args)

    async def execute(self, sql: str, *args: Any) -> str:
        return await self.query.execute(sql, *args)

    async def select_for_site(self, site_ulid: str, sql: str, *args: Any) -> list[asyncpg.Record]:
        return await self.query.select_for_site(site_ulid, sql, *args)

    async def select_cached(
        self, key: str, ttl: timedelta, sql: str, *args: Any
    ) -> list[dict[str, Any]]:
        return await self.query.select_cached(key, ttl, sql, *args)

    async def paged(
        self, query: PagedQuery, select_sql: str, count_sql: str, *args: Any
    ) -> PagedData:
        return await self.query.paged(query, select_sql, count_sql, *args)

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Create a database transaction context."""
        async with self.query.transaction() as conn:
            yield conn

    # Collaborators

    @beartype
    async def publish(
        self, site_ulid: str, entity: str, message_type: str, ids: list[str]
    ) -> None:
        """Forward a change notification to the configured publisher."""
        if self.publisher is None:
            raise RuntimeError("No publisher configured")
        await self.publisher.publish(site_ulid, entity, message_type, ids)

    @beartype
    def set_key(self, key: bytes) -> None:
        """Store the application encryption key."""
        self.key = key

    def turn_off_logging(self) -> None:
        """Stop forwarding SQL log events for this datastore."""
        if self.bridge is not None:
            self.bridge.enabled = False

    def turn_on_logging(self) -> None:
        """Resume forwarding SQL log events for this datastore."""
        if self.bridge is not None:
            self.bridge.enabled = True

    @beartype
    async def health_check(self) -> Result[bool, str]:
        """Round-trip ``SELECT 1`` through the pool."""
        if self._closed:
            return Err("Datastore is closed")
        try:
            value = await self.pool.fetchval("SELECT 1")
        except (OSError, TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            return Err(f"Health check failed: {exc}")
        if value != 1:
            return Err("Health check query failed")
        return Ok(True)

    async def cleanup(self) -> None:
        """Close the pool. Safe to call more than once; only the first call closes."""
        if self._closed:
            return
        self._closed = True
        logger.info("Cleanup")
        await self.pool.close()


# Global datastore instance
_datastore: Datastore | None = None
_datastore_lock = asyncio.Lock()


@beartype
async def init_datastore(
    settings: SettingsProvider,
    cache: Cache | None = None,
    file_storage: FileStorage | None = None,
    publisher: Publisher | None = None,
    *,
    config: DatastoreConfig | None = None,
) -> Datastore:
    """Bootstrap the process-wide datastore, once.

    Concurrent callers wait for the first bootstrap and share its result.
    """
    global _datastore
    async with _datastore_lock:
        if _datastore is None:
            _datastore = await Datastore.create(
                settings, cache, file_storage, publisher, config=config
            )
    return _datastore


@beartype
def get_datastore() -> Datastore:
    """Get the process-wide datastore."""
    if _datastore is None:
        raise DatastoreNotInitializedError("Datastore not initialized. Call init_datastore() first.")
    return _datastore


@beartype
async def close_datastore() -> None:
    """Close and forget the process-wide datastore."""
    global _datastore
    if _datastore is not None:
        await _datastore.cleanup()
        _datastore = None
