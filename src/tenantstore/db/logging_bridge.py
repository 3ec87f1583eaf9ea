# TenantStore - Multi-tenant Data Access Bootstrap
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Bridge from driver log events to one four-level severity model.

asyncpg hands us three differently shaped streams: per-statement query
records, PostgreSQL server messages (``NOTICE``, ``WARNING``...) and, during
migrations, standard library log records from Alembic and SQLAlchemy. Each
source has its own severity vocabulary. This module maps every one of them
onto :class:`Severity`, normalises the attached fields and forwards the
result synchronously to a :class:`~tenantstore.core.interfaces.StructuredSink`.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Iterator, Mapping
from contextvars import ContextVar
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Final

from attrs import field, frozen
from beartype import beartype

from ..core.interfaces import StructuredSink
from ..core.logging_utils import TRACE

__all__: Final = [
    "BridgeHandler",
    "DatabaseLogBridge",
    "LogEvent",
    "LoggerSink",
    "PostgresSeverity",
    "Severity",
    "bind_log_context",
    "build_event",
    "from_postgres",
    "from_query",
    "from_stdlib",
]

SQL_LOGGER_NAME: Final = "tenantstore.sql"

_log_context: ContextVar[Mapping[str, Any]] = ContextVar(
    "tenantstore_log_context", default=MappingProxyType({})
)


class Severity(IntEnum):
    """Normalised database log severity."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    ERROR = 3

    @property
    def logging_level(self) -> int:
        return _STDLIB_LEVELS[self]


_STDLIB_LEVELS: Final = {
    Severity.TRACE: TRACE,
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.ERROR: logging.ERROR,
}


class PostgresSeverity(str, Enum):
    """Severity names PostgreSQL attaches to server messages."""

    DEBUG5 = "DEBUG5"
    DEBUG4 = "DEBUG4"
    DEBUG3 = "DEBUG3"
    DEBUG2 = "DEBUG2"
    DEBUG1 = "DEBUG1"
    DEBUG = "DEBUG"
    LOG = "LOG"
    INFO = "INFO"
    NOTICE = "NOTICE"
    WARNING = "WARNING"
    ERROR = "ERROR"
    FATAL = "FATAL"
    PANIC = "PANIC"


_POSTGRES_LEVELS: Final = {
    PostgresSeverity.DEBUG5: Severity.TRACE,
    PostgresSeverity.DEBUG4: Severity.TRACE,
    PostgresSeverity.DEBUG3: Severity.TRACE,
    PostgresSeverity.DEBUG2: Severity.TRACE,
    PostgresSeverity.DEBUG1: Severity.TRACE,
    PostgresSeverity.DEBUG: Severity.DEBUG,
    PostgresSeverity.LOG: Severity.DEBUG,
    PostgresSeverity.INFO: Severity.INFO,
    PostgresSeverity.NOTICE: Severity.INFO,
    PostgresSeverity.WARNING: Severity.ERROR,
    PostgresSeverity.ERROR: Severity.ERROR,
    PostgresSeverity.FATAL: Severity.ERROR,
    PostgresSeverity.PANIC: Severity.ERROR,
}

_STDLIB_TO_SEVERITY: Final = {
    TRACE: Severity.TRACE,
    logging.DEBUG: Severity.DEBUG,
    logging.INFO: Severity.INFO,
    logging.WARNING: Severity.ERROR,
    logging.ERROR: Severity.ERROR,
    logging.CRITICAL: Severity.ERROR,
}


def from_postgres(value: object) -> Severity:
    """Map a PostgreSQL message severity; anything unrecognised is DEBUG."""
    try:
        return _POSTGRES_LEVELS[PostgresSeverity(str(value).strip().upper())]
    except ValueError:
        return Severity.DEBUG


def from_stdlib(value: object) -> Severity:
    """Map a ``logging`` level number; anything unrecognised is DEBUG."""
    if isinstance(value, bool) or not isinstance(value, int):
        return Severity.DEBUG
    return _STDLIB_TO_SEVERITY.get(value, Severity.DEBUG)


def from_query(exception: BaseException | None) -> Severity:
    """Map an asyncpg query record outcome."""
    return Severity.ERROR if exception is not None else Severity.INFO


def _flatten(sql: str) -> str:
    return sql.replace("\n", " ").replace("\t", " ")


@frozen
class LogEvent:
    """One normalised database log record."""

    severity: Severity = field()
    message: str = field()
    fields: tuple[tuple[str, Any], ...] = field(factory=tuple)
    sql: str | None = field(default=None)

    def as_dict(self) -> dict[str, Any]:
        return dict(self.fields)


@beartype
def build_event(
    severity: Severity, message: str, data: Mapping[str, Any] | None = None
) -> LogEvent:
    """Normalise driver fields into a :class:`LogEvent`.

    ``time`` is dropped because the sink stamps its own; ``sql`` values lose
    newlines and tabs; the message is appended as a trailing ``sql`` field.
    """
    pairs: list[tuple[str, Any]] = []
    raw_sql: str | None = None
    for key, value in (data or {}).items():
        if key == "time":
            continue
        if key == "sql" and isinstance(value, str):
            raw_sql = value
            value = _flatten(value)
        pairs.append((key, value))

    pairs.append(("sql", _flatten(message)))
    return LogEvent(severity=severity, message=message, fields=tuple(pairs), sql=raw_sql)


@contextlib.contextmanager
def bind_log_context(**fields: Any) -> Iterator[Mapping[str, Any]]:
    """Attach fields (request id, tenant...) to database events in this context."""
    merged = MappingProxyType({**_log_context.get(), **fields})
    token = _log_context.set(merged)
    try:
        yield merged
    finally:
        _log_context.reset(token)


def current_log_context() -> Mapping[str, Any]:
    return _log_context.get()


class LoggerSink:
    """Structured sink writing to a standard library logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(SQL_LOGGER_NAME)

    def write(self, event: LogEvent, context: Mapping[str, Any]) -> None:
        level = event.severity.logging_level
        if not self._logger.isEnabledFor(level):
            return
        rendered = " ".join(f"{key}={value}" for key, value in (*context.items(), *event.fields))
        self._logger.log(
            level,
            "DB %s",
            rendered,
            extra={"db_fields": event.as_dict(), "db_context": dict(context)},
        )


class DatabaseLogBridge:
    """Adapter installed on every pooled connection.

    The bound methods are registered with asyncpg as query loggers and log
    listeners; nothing is buffered, each callback writes straight through.
    """

    def __init__(
        self,
        sink: StructuredSink | None = None,
        *,
        enabled: bool = True,
        log_arguments: bool = True,
    ) -> None:
        self.sink = sink or LoggerSink()
        self.enabled = enabled
        self.log_arguments = log_arguments

    @beartype
    def emit(
        self, severity: Severity, message: str, data: Mapping[str, Any] | None = None
    ) -> LogEvent | None:
        """Normalise and forward one event. Returns it, or ``None`` when disabled."""
        if not self.enabled:
            return None
        event = build_event(severity, message, data)
        self.sink.write(event, current_log_context())
        return event

    def on_query(self, record: Any) -> None:
        """asyncpg query logger callback (``Connection.add_query_logger``)."""
        data: dict[str, Any] = {}
        if self.log_arguments and record.args:
            data["args"] = list(record.args)
        if record.elapsed is not None:
            data["duration"] = round(record.elapsed * 1000, 3)
        if record.conn_addr:
            data["conn"] = record.conn_addr
        if record.exception is not None:
            data["error"] = str(record.exception)
        self.emit(from_query(record.exception), record.query, data)

    def on_server_message(self, connection: Any, message: Any) -> None:
        """asyncpg log listener callback (``Connection.add_log_listener``)."""
        severity = getattr(message, "severity_en", None) or getattr(message, "severity", None)
        data = {
            key: value
            for key in ("sqlstate", "detail", "hint")
            if (value := getattr(message, key, None))
        }
        self.emit(from_postgres(severity), str(getattr(message, "message", message)), data)


class BridgeHandler(logging.Handler):
    """Feed standard library records (Alembic, SQLAlchemy) through the bridge."""

    def __init__(self, bridge: DatabaseLogBridge, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.bridge = bridge

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.bridge.emit(
                from_stdlib(record.levelno), record.getMessage(), {"logger": record.name}
            )
        except Exception:
            self.handleError(record)
