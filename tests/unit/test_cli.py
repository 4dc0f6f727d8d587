# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the unidb command-line interface."""

from __future__ import annotations

import asyncio

from typer.testing import CliRunner

from unidb import __version__
from unidb.adapters.sqlite import SQLiteAdapter
from unidb.cli.app import app
from unidb.migrations import Migration, MigrationRunner

runner = CliRunner()


def _sqlite_env(path) -> dict[str, str]:
    return {
        "UNIDB_DB_ADAPTER": "sqlite",
        "UNIDB_DB_FILENAME": str(path),
        "UNIDB_CONNECT_MAX_RETRIES": "0",
        "UNIDB_LOG_LEVEL": "WARNING",
    }


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"unidb v{__version__}" in result.output


def test_check_healthy(tmp_path) -> None:
    result = runner.invoke(app, ["check"], env=_sqlite_env(tmp_path / "app.db"))
    assert result.exit_code == 0, result.output
    assert "Connection Check" in result.output
    assert "sql-sqlite" in result.output
    assert "yes" in result.output


def test_check_adapter_override(tmp_path) -> None:
    env = _sqlite_env(tmp_path / "app.db")
    env["UNIDB_DB_ADAPTER"] = "postgres"
    result = runner.invoke(app, ["check", "--adapter", "sqlite3"], env=env)
    assert result.exit_code == 0, result.output
    assert "sql-sqlite" in result.output


def test_check_connection_failure(tmp_path) -> None:
    result = runner.invoke(
        app, ["check"], env=_sqlite_env(tmp_path / "missing" / "dir" / "app.db")
    )
    assert result.exit_code == 1
    assert "Connection failed" in result.output


def test_db_info_redacts_password() -> None:
    env = {
        "UNIDB_DB_ADAPTER": "postgresql",
        "UNIDB_DB_HOST": "db.internal",
        "UNIDB_DB_NAME": "app",
        "UNIDB_DB_PASSWORD": "hunter2",
    }
    result = runner.invoke(app, ["db", "info"], env=env)
    assert result.exit_code == 0, result.output
    assert "sql-postgres" in result.output
    assert "db.internal" in result.output
    assert "[REDACTED]" in result.output
    assert "hunter2" not in result.output


def test_db_history_empty(tmp_path) -> None:
    result = runner.invoke(app, ["db", "history"], env=_sqlite_env(tmp_path / "app.db"))
    assert result.exit_code == 0, result.output
    assert "No migrations have been applied." in result.output


def test_db_history_lists_applied(tmp_path) -> None:
    path = tmp_path / "app.db"

    async def apply() -> None:
        adapter = SQLiteAdapter()
        await adapter.connect({"type": "sqlite", "connection": {"filename": str(path)}})

        async def up(db) -> None:
            await db.execute("CREATE TABLE notes (id INTEGER PRIMARY KEY)")

        await MigrationRunner(adapter, [Migration("001_notes", up)]).migrate()
        await adapter.close()

    asyncio.run(apply())

    result = runner.invoke(app, ["db", "history"], env=_sqlite_env(path))
    assert result.exit_code == 0, result.output
    assert "Migration History" in result.output
    assert "001_notes" in result.output
