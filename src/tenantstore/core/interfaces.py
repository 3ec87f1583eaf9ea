# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Contracts for the collaborators the datastore consumes.

Nothing in here is implemented by the core itself; concrete adapters live in
:mod:`tenantstore.core.cache` and :mod:`tenantstore.core.publisher`, and
applications may supply their own.
"""

from collections.abc import Mapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any, BinaryIO, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..db.logging_bridge import LogEvent


@runtime_checkable
class SettingsProvider(Protocol):
    """Key-based settings lookup."""

    def get(self, key: str) -> str: ...

    def get_duration(self, key: str) -> timedelta: ...

    def get_bool(self, key: str) -> bool: ...

    def is_production(self) -> bool: ...

    def is_development(self) -> bool: ...


@runtime_checkable
class Cache(Protocol):
    """String and bytes cache with optional TTL."""

    async def set(self, key: str, value: str, ttl: timedelta | None = None) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def expire(self, key: str, ttl: timedelta | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def get_bytes(self, key: str) -> bytes | None: ...

    async def set_bytes(self, key: str, value: bytes, ttl: timedelta | None = None) -> None: ...

    async def flush_db(self) -> None: ...


@runtime_checkable
class FileStorage(Protocol):
    """Blob storage addressed by file identifiers."""

    async def open_file(self, file_identifier: str) -> tuple[bytes, str, str]:
        """Return ``(content, file_id, full_url)``."""
        ...

    def get_url(self, file_identifier: str) -> str: ...

    async def save_file(
        self, file_identifier: str, data: BinaryIO, sanitize_path: bool
    ) -> tuple[str, str]:
        """Store ``data`` and return ``(file_id, full_url)``."""
        ...


@runtime_checkable
class Publisher(Protocol):
    """Fan-out of entity change notifications to a tenant's subscribers."""

    async def publish(
        self, site_ulid: str, entity: str, message_type: str, ids: list[str]
    ) -> None: ...


@runtime_checkable
class StructuredSink(Protocol):
    """Destination for normalised database log events.

    Implementations must return promptly; events are written inline with
    the statement they describe.
    """

    def write(self, event: "LogEvent", context: Mapping[str, Any]) -> None: ...
