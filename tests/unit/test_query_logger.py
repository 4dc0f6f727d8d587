# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the query/health-check observer."""

from __future__ import annotations

import logging

import pytest

from unidb.core.config import Settings
from unidb.core.constants import LogEventType, LogLevelFilter
from unidb.core.exceptions import QueryError
from unidb.models.results import HealthCheckResult
from unidb.query_logger import QueryLogEntry, QueryLogger


def _entry(kind: LogEventType = LogEventType.QUERY, duration: float = 1.0, **kw) -> QueryLogEntry:
    return QueryLogEntry(type=kind, operation=kind.value, sql="SELECT 1", duration=duration, **kw)


class TestFiltering:
    def test_all_records_everything(self) -> None:
        ql = QueryLogger()
        ql.log(_entry())
        ql.log(_entry(LogEventType.EXECUTE))
        ql.log(_entry(LogEventType.ERROR, error="boom"))
        assert [e.type for e in ql.get_logs()] == [
            LogEventType.QUERY,
            LogEventType.EXECUTE,
            LogEventType.ERROR,
        ]

    def test_error_level_keeps_only_failures(self) -> None:
        ql = QueryLogger(level="error")
        ql.log(_entry(duration=5000))
        ql.log(_entry(LogEventType.ERROR, error="boom"))
        assert [e.type for e in ql.get_logs()] == [LogEventType.ERROR]

    def test_slow_level(self) -> None:
        ql = QueryLogger(level=LogLevelFilter.SLOW, slow_threshold_ms=100)
        ql.log(_entry(duration=10))
        ql.log(_entry(duration=100))
        ql.log(_entry(LogEventType.ERROR, duration=1, error="boom"))
        assert [e.duration for e in ql.get_logs()] == [100, 1]

    def test_disabled_drops_everything(self) -> None:
        ql = QueryLogger(enabled=False)
        ql.log(_entry(LogEventType.ERROR))
        ql.log_health_check(HealthCheckResult(healthy=True))
        assert ql.get_logs() == []
        assert ql.get_health_checks() == []

    def test_invalid_level(self) -> None:
        with pytest.raises(ValueError):
            QueryLogger(level="verbose")


class TestBuffer:
    def test_bounded(self) -> None:
        ql = QueryLogger(max_logs=3)
        for i in range(5):
            ql.log(_entry(duration=float(i)))
        assert [e.duration for e in ql.get_logs()] == [2.0, 3.0, 4.0]

    def test_limit_returns_most_recent(self) -> None:
        ql = QueryLogger()
        for i in range(4):
            ql.log(_entry(duration=float(i)))
        assert [e.duration for e in ql.get_logs(limit=2)] == [2.0, 3.0]

    def test_clear(self) -> None:
        ql = QueryLogger()
        ql.log(_entry())
        ql.log_health_check(HealthCheckResult(healthy=True), connection="main")
        ql.clear()
        assert ql.get_logs() == []
        assert ql.get_health_checks() == []

    def test_entry_to_dict(self) -> None:
        data = _entry(params=[1], connection="main").to_dict()
        assert data["type"] == "query"
        assert data["params"] == [1]
        assert data["connection"] == "main"
        assert "timestamp" in data


class TestForwarding:
    def test_levels(self, caplog: pytest.LogCaptureFixture) -> None:
        ql = QueryLogger(slow_threshold_ms=50)
        with caplog.at_level(logging.DEBUG, logger="unidb.query"):
            ql.log(_entry(duration=1))
            ql.log(_entry(duration=80))
            ql.log(_entry(LogEventType.ERROR, error="boom"))
        levels = [r.levelno for r in caplog.records if r.name == "unidb.query"]
        assert levels == [logging.DEBUG, logging.WARNING, logging.ERROR]

    def test_debug_promotes_to_info(self, caplog: pytest.LogCaptureFixture) -> None:
        ql = QueryLogger(debug=True)
        with caplog.at_level(logging.DEBUG, logger="unidb.query"):
            ql.log(_entry())
        assert caplog.records[-1].levelno == logging.INFO

    def test_failed_health_check_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        ql = QueryLogger()
        with caplog.at_level(logging.DEBUG, logger="unidb.query"):
            ql.log_health_check(HealthCheckResult(healthy=False, error="down"), connection="x")
        assert ql.get_health_checks()[0][0] == "x"
        assert caplog.records[-1].levelno == logging.WARNING
        assert "down" in caplog.records[-1].getMessage()


def test_from_settings() -> None:
    settings = Settings(
        _env_file=None,
        query_log_level="SLOW",
        slow_query_threshold_ms=250,
        query_log_max=7,
    )
    ql = QueryLogger.from_settings(settings)
    assert ql.level is LogLevelFilter.SLOW
    assert ql.slow_threshold_ms == 250
    for _ in range(10):
        ql.log(_entry(duration=300))
    assert len(ql.get_logs()) == 7


# ---------------------------------------------------------------------------
# Adapter integration
# ---------------------------------------------------------------------------


class TestAdapterReporting:
    async def test_statements_are_reported(self, sqlite_adapter) -> None:
        ql = QueryLogger()
        sqlite_adapter.set_query_logger(ql)
        await sqlite_adapter.execute("INSERT INTO users (name) VALUES (?)", ("ann",))
        await sqlite_adapter.query("SELECT * FROM users")
        logs = ql.get_logs()
        assert [e.type for e in logs] == [LogEventType.EXECUTE, LogEventType.QUERY]
        assert logs[0].params == ("ann",)
        assert sqlite_adapter.get_query_logger() is ql

    async def test_failures_are_reported(self, sqlite_adapter) -> None:
        ql = QueryLogger(level="error")
        sqlite_adapter.set_query_logger(ql)
        with pytest.raises(QueryError):
            await sqlite_adapter.query("SELECT * FROM missing_table")
        (entry,) = ql.get_logs()
        assert entry.type is LogEventType.ERROR
        assert "missing_table" in entry.error

    async def test_health_check_is_recorded(self, sqlite_adapter) -> None:
        ql = QueryLogger()
        sqlite_adapter.set_query_logger(ql)
        await sqlite_adapter.health_check()
        (_, result) = ql.get_health_checks()[0]
        assert result.healthy

    async def test_broken_observer_does_not_break_adapter(self, sqlite_adapter) -> None:
        class Broken(QueryLogger):
            def log(self, entry: QueryLogEntry) -> None:
                raise RuntimeError("observer down")

            def log_health_check(self, result, connection=None) -> None:
                raise RuntimeError("observer down")

        sqlite_adapter.set_query_logger(Broken())
        await sqlite_adapter.execute("INSERT INTO users (name) VALUES (?)", ("bo",))
        assert await sqlite_adapter.query("SELECT name FROM users") == [{"name": "bo"}]
        assert (await sqlite_adapter.health_check()).healthy
