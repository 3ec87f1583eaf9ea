"""Tests for the database log bridge."""

import logging
from types import SimpleNamespace
from typing import Any

import pytest

from tenantstore.core.logging_utils import TRACE
from tenantstore.db.logging_bridge import (
    BridgeHandler,
    DatabaseLogBridge,
    LoggerSink,
    Severity,
    bind_log_context,
    build_event,
    current_log_context,
    from_postgres,
    from_query,
    from_stdlib,
)


def make_query_record(**overrides: Any) -> SimpleNamespace:
    """Create a stand-in for asyncpg's LoggedQuery."""
    values: dict[str, Any] = {
        "query": "SELECT *\n\tFROM jobs WHERE site_ulid = $1",
        "args": ("S1",),
        "timeout": None,
        "elapsed": 0.0042,
        "exception": None,
        "conn_addr": ("10.0.0.5", 5432),
        "conn_params": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.unit
class TestSeverityMapping:
    """Every source vocabulary lands on exactly one severity."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("DEBUG5", Severity.TRACE),
            ("DEBUG1", Severity.TRACE),
            ("DEBUG", Severity.DEBUG),
            ("LOG", Severity.DEBUG),
            ("INFO", Severity.INFO),
            ("NOTICE", Severity.INFO),
            ("WARNING", Severity.ERROR),
            ("ERROR", Severity.ERROR),
            ("FATAL", Severity.ERROR),
            ("PANIC", Severity.ERROR),
            ("notice", Severity.INFO),
            ("SOMETHING", Severity.DEBUG),
            (None, Severity.DEBUG),
        ],
    )
    def test_from_postgres(self, value: object, expected: Severity) -> None:
        assert from_postgres(value) is expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (TRACE, Severity.TRACE),
            (logging.DEBUG, Severity.DEBUG),
            (logging.INFO, Severity.INFO),
            (logging.WARNING, Severity.ERROR),
            (logging.ERROR, Severity.ERROR),
            (logging.CRITICAL, Severity.ERROR),
            (15, Severity.DEBUG),
            ("INFO", Severity.DEBUG),
            (True, Severity.DEBUG),
        ],
    )
    def test_from_stdlib(self, value: object, expected: Severity) -> None:
        assert from_stdlib(value) is expected

    def test_from_query(self) -> None:
        assert from_query(None) is Severity.INFO
        assert from_query(RuntimeError("boom")) is Severity.ERROR

    def test_logging_levels(self) -> None:
        assert Severity.TRACE.logging_level == TRACE
        assert Severity.DEBUG.logging_level == logging.DEBUG
        assert Severity.INFO.logging_level == logging.INFO
        assert Severity.ERROR.logging_level == logging.ERROR


@pytest.mark.unit
class TestBuildEvent:
    """Test field normalisation."""

    def test_time_is_dropped(self) -> None:
        event = build_event(Severity.INFO, "Query", {"time": "2024-01-01", "rows": 3})

        assert "time" not in event.as_dict()
        assert event.as_dict()["rows"] == 3

    def test_sql_field_is_flattened_and_raw_text_kept(self) -> None:
        event = build_event(Severity.INFO, "Query", {"sql": "SELECT 1\n\tFROM t"})

        assert event.sql == "SELECT 1\n\tFROM t"
        assert event.fields[0] == ("sql", "SELECT 1  FROM t")

    def test_message_is_appended_as_trailing_sql_field(self) -> None:
        event = build_event(Severity.DEBUG, "SELECT 1\nFROM t", {"duration": 1.5})

        assert event.fields == (("duration", 1.5), ("sql", "SELECT 1 FROM t"))
        assert event.message == "SELECT 1\nFROM t"

    def test_no_data(self) -> None:
        event = build_event(Severity.TRACE, "ping")

        assert event.fields == (("sql", "ping"),)
        assert event.sql is None


@pytest.mark.unit
class TestDatabaseLogBridge:
    """Test driver callbacks feeding the sink."""

    def test_successful_query_is_info(self, recording_sink: Any) -> None:
        bridge = DatabaseLogBridge(recording_sink)

        bridge.on_query(make_query_record())

        event = recording_sink.last
        fields = event.as_dict()
        assert event.severity is Severity.INFO
        assert fields["args"] == ["S1"]
        assert fields["duration"] == 4.2
        assert fields["conn"] == ("10.0.0.5", 5432)
        assert fields["sql"] == "SELECT *  FROM jobs WHERE site_ulid = $1"
        assert "error" not in fields

    def test_failed_query_is_error(self, recording_sink: Any) -> None:
        bridge = DatabaseLogBridge(recording_sink)

        bridge.on_query(make_query_record(exception=RuntimeError("relation missing")))

        assert recording_sink.last.severity is Severity.ERROR
        assert recording_sink.last.as_dict()["error"] == "relation missing"

    def test_arguments_can_be_withheld(self, recording_sink: Any) -> None:
        bridge = DatabaseLogBridge(recording_sink, log_arguments=False)

        bridge.on_query(make_query_record())

        assert "args" not in recording_sink.last.as_dict()

    def test_server_message(self, recording_sink: Any) -> None:
        bridge = DatabaseLogBridge(recording_sink)
        message = SimpleNamespace(
            severity="WARNUNG",
            severity_en="WARNING",
            message="table is almost full",
            sqlstate="01000",
            detail=None,
            hint="vacuum it",
        )

        bridge.on_server_message(object(), message)

        event = recording_sink.last
        assert event.severity is Severity.ERROR
        assert event.message == "table is almost full"
        assert event.as_dict() == {
            "sqlstate": "01000",
            "hint": "vacuum it",
            "sql": "table is almost full",
        }

    def test_server_message_without_english_severity(self, recording_sink: Any) -> None:
        bridge = DatabaseLogBridge(recording_sink)

        bridge.on_server_message(object(), SimpleNamespace(severity="NOTICE", message="hi"))

        assert recording_sink.last.severity is Severity.INFO

    def test_disabled_bridge_emits_nothing(self, recording_sink: Any) -> None:
        bridge = DatabaseLogBridge(recording_sink, enabled=False)

        assert bridge.emit(Severity.ERROR, "boom") is None
        bridge.on_query(make_query_record())

        assert recording_sink.events == []

    def test_bound_context_reaches_sink(self, recording_sink: Any) -> None:
        bridge = DatabaseLogBridge(recording_sink)

        with bind_log_context(request_id="req-1"):
            with bind_log_context(site_ulid="S1"):
                bridge.emit(Severity.INFO, "SELECT 1")
            bridge.emit(Severity.INFO, "SELECT 2")

        assert recording_sink.events[0][1] == {"request_id": "req-1", "site_ulid": "S1"}
        assert recording_sink.events[1][1] == {"request_id": "req-1"}
        assert dict(current_log_context()) == {}


@pytest.mark.unit
class TestLoggerSink:
    """Test the standard library sink."""

    def test_writes_rendered_fields(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("tenantstore.sql.test_sink")
        sink = LoggerSink(logger)
        event = build_event(Severity.INFO, "SELECT 1", {"duration": 0.5})

        with caplog.at_level(logging.DEBUG, logger=logger.name):
            sink.write(event, {"request_id": "req-1"})

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.getMessage() == "DB request_id=req-1 duration=0.5 sql=SELECT 1"
        assert record.db_fields == {"duration": 0.5, "sql": "SELECT 1"}
        assert record.db_context == {"request_id": "req-1"}

    def test_disabled_level_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("tenantstore.sql.test_trace")
        sink = LoggerSink(logger)

        with caplog.at_level(logging.DEBUG, logger=logger.name):
            sink.write(build_event(Severity.TRACE, "SELECT 1"), {})

        assert not [r for r in caplog.records if r.name == logger.name]


@pytest.mark.unit
def test_bridge_handler_forwards_stdlib_records(recording_sink: Any) -> None:
    """Alembic-style log records arrive with their mapped severity."""
    logger = logging.getLogger("tenantstore.tests.bridge_handler")
    logger.setLevel(logging.DEBUG)
    handler = BridgeHandler(DatabaseLogBridge(recording_sink))
    logger.addHandler(handler)
    try:
        logger.info("Running upgrade %s", "abc123")
        logger.warning("Revision is out of date")
    finally:
        logger.removeHandler(handler)

    first, second = (event for event, _ in recording_sink.events)
    assert first.severity is Severity.INFO
    assert first.message == "Running upgrade abc123"
    assert first.as_dict()["logger"] == logger.name
    assert second.severity is Severity.ERROR
