# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Exception hierarchy for the data access layer.

Two families live here. ``TenantStoreError`` subclasses are ordinary,
recoverable errors raised to the caller at request time. ``FatalBootstrapError``
subclasses derive from ``SystemExit``: startup cannot continue without a
database, so if nobody catches them the interpreter exits with status 1.
"""


class TenantStoreError(Exception):
    """Base class for recoverable data access errors."""


class MissingPlaceholderError(TenantStoreError, ValueError):
    """A SQL fragment has neither a tenant placeholder nor a tenant predicate."""

    def __init__(self, clause: str, placeholder: str = "$SITEULID") -> None:
        self.clause = clause
        self.placeholder = placeholder
        super().__init__(f"No {placeholder} placeholder defined in {clause}")


class UnscopedQueryError(TenantStoreError):
    """Strict mode refused SQL that still carries an unresolved placeholder."""

    def __init__(self, sql: str) -> None:
        self.sql = sql
        super().__init__(f"Refusing to execute unscoped query: {sql}")


class RecordNotFoundError(TenantStoreError, LookupError):
    """A single-row query returned no rows."""


class DatastoreNotInitializedError(TenantStoreError, RuntimeError):
    """The process-wide datastore was used before ``init_datastore``."""


class FatalBootstrapError(SystemExit):
    """Startup failure with no recovery path."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class ConnectionStringError(FatalBootstrapError):
    """DATABASE_URL is missing, malformed or points nowhere."""


class DatabaseUnavailableError(FatalBootstrapError):
    """The liveness check ran past its retry ceiling."""

    def __init__(self, message: str, attempts: int, last_error: BaseException | None = None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(message)
