# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Connection bootstrap: from DATABASE_URL to a live, logged, pooled handle.

The sequence is linear::

    parse connection string -> resolve host -> open pool -> verify live
        -> configure pool -> maybe migrate -> ready

Only the liveness check loops. Parse failures and an exhausted liveness
ceiling raise :class:`~tenantstore.core.errors.FatalBootstrapError`, which ends
the process unless the caller catches it. Call :func:`bootstrap` once at
startup; it blocks until the database answers or the retry ceiling passes,
and it takes no cancellation token.
"""

import asyncio
import json
import logging
import random
import time
from collections.abc import Awaitable, Callable, Iterator
from typing import Any

import asyncpg
from attrs import field, frozen
from beartype import beartype

from ..core.errors import (
    ConnectionStringError,
    DatabaseUnavailableError,
    FatalBootstrapError,
)
from ..core.interfaces import Cache, SettingsProvider, StructuredSink
from ..core.result_types import Result
from .connection import ConnectionSpec, parse_connection_string, resolve_host
from .logging_bridge import DatabaseLogBridge
from .migrations import run_migrations
from .query import QueryRunner

logger = logging.getLogger(__name__)

# ClientConfigurationError is an InterfaceError but never transient; it is
# caught before this tuple is consulted.
_RETRYABLE = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
)


@frozen
class PoolLimits:
    """Fixed pool sizing that protects the database from connection storms.

    ``max_open`` is a hard cap. ``max_idle`` is the number of connections
    opened at startup, not a cap on idle ones: the pool keeps no minimum, so
    any connection, warmed or not, is closed after sitting idle for
    ``idle_lifetime`` seconds.
    """

    max_idle: int = field(default=4)
    max_open: int = field(default=16)
    idle_lifetime: float = field(default=300.0)
    connect_timeout: float = field(default=10.0)
    command_timeout: float = field(default=60.0)

    def __attrs_post_init__(self) -> None:
        if not 0 <= self.max_idle <= self.max_open:
            raise ValueError(
                f"max_idle ({self.max_idle}) must be between 0 and max_open ({self.max_open})"
            )


@frozen
class RetryPolicy:
    """Exponential backoff for the liveness check.

    Defaults: 0.5s initial interval growing 1.5x per attempt, capped at 60s
    per wait with +/-50% jitter, giving up once 15 minutes have passed.
    """

    initial_interval: float = field(default=0.5)
    multiplier: float = field(default=1.5)
    max_interval: float = field(default=60.0)
    max_elapsed: float = field(default=900.0)
    randomization: float = field(default=0.5)
    ping_timeout: float = field(default=5.0)

    def intervals(self) -> Iterator[float]:
        """Yield successive wait times, without regard to the ceiling."""
        interval = self.initial_interval
        while True:
            spread = interval * self.randomization
            yield max(0.0, interval + random.uniform(-spread, spread))
            interval = min(interval * self.multiplier, self.max_interval)


@frozen
class DatastoreConfig:
    """Construction-time switches threaded into the bridge and query layer."""

    sql_logging: bool = field(default=True)
    log_arguments: bool = field(default=True)
    strict: bool | None = field(default=None)
    run_migrations: bool = field(default=True)
    migrations_dir: str | None = field(default=None)
    pool: PoolLimits = field(factory=PoolLimits)
    retry: RetryPolicy = field(factory=RetryPolicy)


@frozen
class Bootstrapped:
    """Everything bootstrap hands to the facade."""

    pool: asyncpg.Pool = field()
    query: QueryRunner = field()
    bridge: DatabaseLogBridge = field()
    migrations: Result[list[str], str] | None = field(default=None)


@beartype
async def open_pool(
    spec: ConnectionSpec, bridge: DatabaseLogBridge, limits: PoolLimits
) -> asyncpg.Pool:
    """Create the pool lazily with the log bridge wired into every connection.

    ``min_size=0`` means no connection is attempted here; the liveness check
    makes the first one.

    Query loggers survive a connection going back to the pool, server message
    listeners do not: releasing a connection resets it and drops them, so the
    listener is attached again on every acquire.
    """

    async def init_connection(conn: asyncpg.Connection) -> None:
        conn.add_query_logger(bridge.on_query)
        for codec in ("json", "jsonb"):
            await conn.set_type_codec(
                codec,
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )

    async def setup_connection(conn: Any) -> None:
        conn.add_log_listener(bridge.on_server_message)

    return await asyncpg.create_pool(
        host=spec.host,
        port=spec.port,
        user=spec.username or None,
        password=spec.password or None,
        database=spec.database or None,
        ssl=spec.sslmode,
        min_size=0,
        max_size=limits.max_open,
        max_inactive_connection_lifetime=limits.idle_lifetime,
        timeout=limits.connect_timeout,
        command_timeout=limits.command_timeout,
        init=init_connection,
        setup=setup_connection,
    )


@beartype
async def verify_live(
    pool: asyncpg.Pool,
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """Ping until the database answers, backing off exponentially.

    Returns:
        The number of attempts it took.

    Raises:
        ConnectionStringError: The driver rejected the connection parameters;
            retrying cannot fix that.
        DatabaseUnavailableError: ``policy.max_elapsed`` seconds passed
            without a successful ping.
    """
    started = time.monotonic()
    attempts = 0
    for interval in policy.intervals():
        attempts += 1
        try:
            await pool.fetchval("SELECT 1", timeout=policy.ping_timeout)
            return attempts
        except asyncpg.exceptions.ClientConfigurationError as exc:
            raise ConnectionStringError(f"Fatal database configuration error: {exc}") from exc
        except _RETRYABLE as exc:
            elapsed = time.monotonic() - started
            if elapsed + interval > policy.max_elapsed:
                logger.error(
                    "Database unreachable after %d attempts over %.1fs: %s",
                    attempts,
                    elapsed,
                    exc,
                )
                raise DatabaseUnavailableError(
                    f"Database did not answer within {policy.max_elapsed:.0f}s: {exc}",
                    attempts=attempts,
                    last_error=exc,
                ) from exc
            logger.warning(
                "Database ping failed (attempt %d), retrying in %.2fs: %s",
                attempts,
                interval,
                exc,
            )
            await sleep(interval)
    raise AssertionError("unreachable")


@beartype
async def configure_pool(pool: asyncpg.Pool, limits: PoolLimits) -> int:
    """Open up to ``max_idle`` connections so the idle set is ready for traffic.

    Warming is best-effort; failures leave the pool to grow on demand.
    Returns the number of connections warmed.
    """
    if limits.max_idle == 0:
        return 0

    connections: list[asyncpg.Connection] = []

    async def warm_one() -> None:
        connections.append(await pool.acquire(timeout=limits.connect_timeout))

    try:
        results = await asyncio.gather(
            *(warm_one() for _ in range(limits.max_idle)), return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning("Pool warm-up connection failed: %s", result)
    finally:
        await asyncio.gather(
            *(pool.release(conn) for conn in connections), return_exceptions=True
        )

    logger.info(
        "Pool configured (idle=%d/%d, max_open=%d)",
        len(connections),
        limits.max_idle,
        limits.max_open,
    )
    return len(connections)


@beartype
async def bootstrap(
    settings: SettingsProvider,
    cache: Cache | None = None,
    *,
    config: DatastoreConfig | None = None,
    sink: StructuredSink | None = None,
) -> Bootstrapped:
    """Bring up the shared pool described by ``DATABASE_URL``.

    Args:
        settings: Source of ``DATABASE_URL`` and ``GCLOUD_SQL_INSTANCE``.
        cache: Optional cache registered with the query layer.
        config: Logging, strictness, pool and retry switches.
        sink: Destination for database log events (defaults to stdlib logging).

    Raises:
        ConnectionStringError: DATABASE_URL cannot be used.
        DatabaseUnavailableError: The database never answered.
    """
    config = config or DatastoreConfig()

    spec = resolve_host(parse_connection_string(settings.get("DATABASE_URL")), settings)
    if not spec.password:
        logger.error("no database password")
    logger.info(
        "Connecting to database db=%s user=%s host=%s",
        spec.database,
        spec.username,
        spec.host,
    )

    bridge = DatabaseLogBridge(
        sink, enabled=config.sql_logging, log_arguments=config.log_arguments
    )
    pool = await open_pool(spec, bridge, config.pool)
    try:
        attempts = await verify_live(pool, config.retry)
    except FatalBootstrapError:
        await pool.close()
        raise
    logger.info("Database running (answered after %d attempt(s))", attempts)

    await configure_pool(pool, config.pool)

    migrations = None
    if config.run_migrations and settings.is_production():
        directory = config.migrations_dir or settings.get("MIGRATIONS_DIR") or "migrations"
        migrations = await run_migrations(spec, directory, bridge=bridge)
        if migrations.is_err():
            logger.error("Migration failed: %s", migrations.err_value)

    strict = config.strict if config.strict is not None else settings.is_development()
    query = QueryRunner(pool, strict=strict)
    if cache is not None:
        query.set_cache(cache)

    return Bootstrapped(pool=pool, query=query, bridge=bridge, migrations=migrations)
