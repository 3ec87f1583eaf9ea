"""Alembic environment for the datastore schema.

The bootstrap passes the resolved connection URL through
``config.attributes["connection_url"]``; running ``alembic`` by hand falls
back to ``DATABASE_URL``.
"""

import asyncio
import os
from typing import Any

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context
from tenantstore.core.config import get_settings
from tenantstore.db.connection import parse_connection_string, resolve_host

config = context.config
target_metadata = None


def connection_url() -> Any:
    url = config.attributes.get("connection_url")
    if url is not None:
        return url
    settings = get_settings()
    database_url = settings.database_url or os.environ.get("DATABASE_URL", "")
    return resolve_host(parse_connection_string(database_url), settings).sqlalchemy_url()


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    context.configure(
        url=connection_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Any) -> None:
    """Execute migrations using provided connection."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations in 'online' mode with async engine."""
    connectable = create_async_engine(connection_url(), poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
