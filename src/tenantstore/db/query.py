# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Query helpers over the shared pool."""

import contextlib
import json
import logging
from collections.abc import AsyncIterator
from datetime import timedelta
from typing import Any

import asyncpg
from beartype import beartype

from ..core.errors import RecordNotFoundError, UnscopedQueryError
from ..core.interfaces import Cache
from .paging import PagedData, PagedQuery
from .predicates import SITE_ULID_PLACEHOLDER, append_site_ulid

logger = logging.getLogger(__name__)


class QueryRunner:
    """Thin convenience layer over an ``asyncpg.Pool``.

    The runner never closes the pool. In strict mode it refuses SQL that
    still contains the ``$SITEULID`` placeholder, which catches fragments
    that skipped :func:`~tenantstore.db.predicates.append_site_ulid`.
    """

    def __init__(self, pool: asyncpg.Pool, *, strict: bool = False) -> None:
        self._pool = pool
        self.strict = strict
        self._cache: Cache | None = None

    @property
    def pool(self) -> asyncpg.Pool:
        return self._pool

    @property
    def cache(self) -> Cache | None:
        return self._cache

    @beartype
    def set_cache(self, cache: Cache | None) -> None:
        """Register (or clear) the cache used by :meth:`select_cached`."""
        self._cache = cache

    def _check(self, sql: str) -> None:
        if self.strict and SITE_ULID_PLACEHOLDER in sql:
            raise UnscopedQueryError(sql)

    async def select(self, sql: str, *args: Any) -> list[asyncpg.Record]:
        """Execute a query and fetch all rows."""
        self._check(sql)
        return await self._pool.fetch(sql, *args)

    async def one(self, sql: str, *args: Any) -> asyncpg.Record:
        """Execute a query and fetch exactly one row."""
        self._check(sql)
        row = await self._pool.fetchrow(sql, *args)
        if row is None:
            raise RecordNotFoundError(f"no rows in result set for: {sql}")
        return row

    @beartype
    async def scalar(self, sql: str, *args: Any) -> Any:
        """Execute a query and fetch the first column of the first row."""
        self._check(sql)
        return await self._pool.fetchval(sql, *args)

    @beartype
    async def execute(self, sql: str, *args: Any) -> str:
        """Execute a statement and return its status tag."""
        self._check(sql)
        return await self._pool.execute(sql, *args)

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Hold one connection inside a transaction for the block."""
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def select_for_site(self, site_ulid: str, sql: str, *args: Any) -> list[asyncpg.Record]:
        """Scope ``sql`` to one tenant via its ``$SITEULID`` placeholder and fetch."""
        scoped, bound = append_site_ulid(site_ulid, sql, *args)
        return await self.select(scoped, *bound)

    @beartype
    async def select_cached(
        self, key: str, ttl: timedelta, sql: str, *args: Any
    ) -> list[dict[str, Any]]:
        """Fetch rows as dicts, served from the cache when an entry exists.

        Rows always pass through the JSON encoding, so a miss and a later hit
        return the same values: datetimes, UUIDs and decimals come back as
        strings either way.
        """
        if self._cache is not None:
            cached = await self._cache.get_bytes(key)
            if cached is not None:
                return json.loads(cached)

        rows = [dict(row) for row in await self.select(sql, *args)]
        payload = json.dumps(rows, default=str).encode("utf-8")
        if self._cache is not None:
            await self._cache.set_bytes(key, payload, ttl)
        return json.loads(payload)

    @beartype
    async def paged(
        self, query: PagedQuery, select_sql: str, count_sql: str, *args: Any
    ) -> PagedData:
        """Run a count query and one page of a select query.

        ``select_sql`` must not carry its own ORDER BY / LIMIT / OFFSET; they
        are appended from ``query`` with bound parameters after ``args``.
        """
        total = await self.scalar(count_sql, *args)
        position = len(args)
        page_sql = (
            f"{select_sql} {query.order_by()} "
            f"LIMIT ${position + 1} OFFSET ${position + 2}"
        )
        rows = await self.select(page_sql, *args, query.limit, query.offset)
        return query.result([dict(row) for row in rows], int(total or 0))
