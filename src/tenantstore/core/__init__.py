# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Core infrastructure: settings, collaborator contracts, errors and logging."""

from .config import Settings, get_settings
from .errors import FatalBootstrapError, TenantStoreError
from .interfaces import Cache, FileStorage, Publisher, SettingsProvider

__all__ = [
    "Cache",
    "FatalBootstrapError",
    "FileStorage",
    "Publisher",
    "Settings",
    "SettingsProvider",
    "TenantStoreError",
    "get_settings",
]
