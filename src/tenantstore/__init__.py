# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Multi-tenant data access bootstrap."""

from .core.errors import (
    ConnectionStringError,
    DatabaseUnavailableError,
    FatalBootstrapError,
    MissingPlaceholderError,
)
from .datastore import Datastore, close_datastore, get_datastore, init_datastore
from .db.bootstrap import DatastoreConfig, PoolLimits, RetryPolicy, bootstrap
from .db.paging import PagedData, PagedQuery, new_paged_data
from .db.predicates import append_site_ulid
from .db.search import format_search

__version__ = "0.1.0"

__all__ = [
    "ConnectionStringError",
    "DatabaseUnavailableError",
    "Datastore",
    "DatastoreConfig",
    "FatalBootstrapError",
    "MissingPlaceholderError",
    "PagedData",
    "PagedQuery",
    "PoolLimits",
    "RetryPolicy",
    "append_site_ulid",
    "bootstrap",
    "close_datastore",
    "format_search",
    "get_datastore",
    "init_datastore",
    "new_paged_data",
]
