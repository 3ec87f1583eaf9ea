# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""FastAPI lifespan wiring for the process-wide datastore."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .core.cache import RedisCache
from .core.config import get_settings
from .datastore import close_datastore, init_datastore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the datastore on startup and close it on shutdown.

    A Redis cache is attached when ``REDIS_URL`` is configured.
    """
    settings = get_settings()
    logger.info("Starting datastore in %s mode", settings.app_env)

    cache = RedisCache.from_settings(settings) if settings.redis_url else None
    app.state.datastore = await init_datastore(settings, cache)
    try:
        yield
    finally:
        await close_datastore()
        if cache is not None:
            await cache.close()
        logger.info("Datastore closed")
