# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Redis pub/sub publisher for per-tenant change notifications."""

import json
import logging

import redis.asyncio as redis
from beartype import beartype

logger = logging.getLogger(__name__)


class RedisPublisher:
    """Publish entity change envelopes on ``<namespace>:<site_ulid>`` channels.

    Websocket gateways subscribe to their tenant's channel and forward the
    envelope to connected clients.
    """

    def __init__(self, redis_client: redis.Redis, *, namespace: str = "tenantstore") -> None:
        self._redis = redis_client
        self._namespace = namespace

    @beartype
    def channel(self, site_ulid: str) -> str:
        return f"{self._namespace}:{site_ulid}"

    @beartype
    async def publish(
        self, site_ulid: str, entity: str, message_type: str, ids: list[str]
    ) -> None:
        """Publish a change notification to the tenant's channel."""
        if not site_ulid:
            raise ValueError("site_ulid is required to publish")

        envelope = json.dumps(
            {"entity": entity, "type": message_type, "ids": ids},
            separators=(",", ":"),
        )
        receivers = await self._redis.publish(self.channel(site_ulid), envelope)
        logger.debug(
            "Published %s %s for %d ids to %d receivers",
            entity,
            message_type,
            len(ids),
            receivers,
        )
