# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the PostgreSQL adapter with a fake asyncpg pool."""

from __future__ import annotations

from typing import Any

import pytest

import unidb.adapters.postgres as pg_mod
from unidb.adapters.postgres import PostgresAdapter, parse_status
from unidb.core.exceptions import (
    DatabaseConnectionError,
    ErrorCode,
    NotConnectedError,
    QueryError,
    TransactionError,
)

PG_CONFIG = {
    "type": "postgresql",
    "connection": {"host": "db", "database": "app", "user": "svc", "password": "pw"},
    "pool": {"min": 1, "max": 5, "max_retries": 0, "retry_delay": 0},
}

# ---------------------------------------------------------------------------
# Fake driver
# ---------------------------------------------------------------------------


class FakeConnection:
    def __init__(self, pool: FakePool, ident: int) -> None:
        self.pool = pool
        self.ident = ident

    async def execute(self, sql: str, *args: Any) -> str:
        self.pool.record(self, sql, args)
        return self.pool.status_for(sql)

    async def fetch(self, sql: str, *args: Any) -> list[dict]:
        self.pool.record(self, sql, args)
        return list(self.pool.rows)

    async def prepare(self, sql: str) -> FakePreparedStatement:
        return FakePreparedStatement(self, sql)


class FakePreparedStatement:
    def __init__(self, conn: FakeConnection, sql: str) -> None:
        self.conn = conn
        self.sql = sql
        self.returning = "RETURNING" in sql.upper()

    async def fetch(self, *args: Any) -> list[dict]:
        self.conn.pool.record(self.conn, self.sql, args)
        return list(self.conn.pool.rows) if self.returning else []

    def get_statusmsg(self) -> str:
        return self.conn.pool.status_for(self.sql)

    def get_attributes(self) -> tuple:
        return ("id",) if self.returning else ()


class FakePool:
    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.calls: list[tuple[int, str, tuple]] = []
        self.rows: list[dict] = []
        self.fail: dict[str, Exception] = {}
        self.size = 2
        self.checked_out = 0
        self.closed = False
        self.terminated = False
        self._next_ident = 0

    async def acquire(self) -> FakeConnection:
        self._next_ident += 1
        self.checked_out += 1
        return FakeConnection(self, self._next_ident)

    async def release(self, conn: FakeConnection) -> None:
        self.checked_out -= 1

    def get_size(self) -> int:
        return self.size

    def get_idle_size(self) -> int:
        return self.size - self.checked_out

    async def close(self) -> None:
        self.closed = True

    def terminate(self) -> None:
        self.terminated = True

    def record(self, conn: FakeConnection, sql: str, args: tuple) -> None:
        self.calls.append((conn.ident, sql, args))
        for prefix, exc in self.fail.items():
            if sql.startswith(prefix):
                raise exc

    def status_for(self, sql: str) -> str:
        verb = sql.split()[0].upper()
        return {"INSERT": "INSERT 0 1", "UPDATE": "UPDATE 3", "DELETE": "DELETE 0"}.get(verb, verb)

    @property
    def statements(self) -> list[str]:
        return [sql for _, sql, _ in self.calls]


class FakeAsyncpg:
    def __init__(self) -> None:
        self.pools: list[FakePool] = []
        self.failures = 0
        self.attempts = 0

    async def create_pool(self, **kwargs: Any) -> FakePool:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OSError("connection refused")
        pool = FakePool(**kwargs)
        self.pools.append(pool)
        return pool


@pytest.fixture
def fake_asyncpg(monkeypatch: pytest.MonkeyPatch) -> FakeAsyncpg:
    fake = FakeAsyncpg()
    monkeypatch.setattr(pg_mod, "asyncpg", fake)
    monkeypatch.setattr(pg_mod, "HAS_ASYNCPG", True)
    return fake


@pytest.fixture
async def pg(fake_asyncpg: FakeAsyncpg):
    adapter = PostgresAdapter()
    await adapter.connect(PG_CONFIG)
    yield adapter
    await adapter.close()


@pytest.fixture
def pool(pg: PostgresAdapter, fake_asyncpg: FakeAsyncpg) -> FakePool:
    return fake_asyncpg.pools[-1]


class Boom(Exception):
    pass


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class TestConnect:
    async def test_pool_arguments(self, pg: PostgresAdapter, pool: FakePool) -> None:
        assert pool.kwargs == {
            "host": "db",
            "port": 5432,
            "user": "svc",
            "password": "pw",
            "database": "app",
            "min_size": 1,
            "max_size": 5,
            "max_inactive_connection_lifetime": 30.0,
            "timeout": 5.0,
        }
        assert pg.get_database() is pool

    async def test_retries(self, fake_asyncpg: FakeAsyncpg) -> None:
        fake_asyncpg.failures = 2
        adapter = PostgresAdapter()
        await adapter.connect({**PG_CONFIG, "pool": {"max_retries": 2, "retry_delay": 0}})
        assert fake_asyncpg.attempts == 3
        assert adapter.is_connected()
        await adapter.close()

    async def test_gives_up(self, fake_asyncpg: FakeAsyncpg) -> None:
        fake_asyncpg.failures = 10
        adapter = PostgresAdapter()
        with pytest.raises(DatabaseConnectionError) as exc_info:
            await adapter.connect({**PG_CONFIG, "pool": {"max_retries": 1, "retry_delay": 0}})
        assert fake_asyncpg.attempts == 2
        assert isinstance(exc_info.value.original_error, OSError)
        assert not adapter.is_connected()

    async def test_missing_fields_skip_driver(self, fake_asyncpg: FakeAsyncpg) -> None:
        with pytest.raises(DatabaseConnectionError) as exc_info:
            await PostgresAdapter().connect({"type": "postgres", "connection": {"host": "db"}})
        assert exc_info.value.code is ErrorCode.CONFIG_MISSING
        assert fake_asyncpg.attempts == 0

    async def test_driver_not_installed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(pg_mod, "HAS_ASYNCPG", False)
        with pytest.raises(DatabaseConnectionError, match="pip install unidb\\[postgres\\]"):
            PostgresAdapter()

    async def test_close(self, pg: PostgresAdapter, pool: FakePool) -> None:
        await pg.close()
        assert pool.closed
        with pytest.raises(NotConnectedError):
            pg.get_pool_status()


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


class TestStatements:
    async def test_query_rewrites_placeholders(self, pg: PostgresAdapter, pool: FakePool) -> None:
        pool.rows = [{"id": 1, "name": "a"}]
        rows = await pg.query("SELECT * FROM users WHERE id = ? AND name = ?", (1, "a"))
        assert rows == [{"id": 1, "name": "a"}]
        assert pool.calls[-1][1:] == ("SELECT * FROM users WHERE id = $1 AND name = $2", (1, "a"))

    async def test_parameterised_execute_uses_status(self, pg: PostgresAdapter, pool: FakePool) -> None:
        inserted = await pg.execute("INSERT INTO t (x) VALUES (?)", [5])
        updated = await pg.execute("UPDATE t SET x = ?", [6])
        assert inserted.affected_rows == 1
        assert inserted.rows is None
        assert updated.affected_rows == 3

    async def test_unparameterised_script(self, pg: PostgresAdapter, pool: FakePool) -> None:
        result = await pg.execute("CREATE TABLE t (x int); CREATE INDEX i ON t (x)")
        assert result.affected_rows == 0
        assert pool.statements[-1].startswith("CREATE TABLE")

    async def test_returning(self, pg: PostgresAdapter, pool: FakePool) -> None:
        pool.rows = [{"id": 7}]
        result = await pg.execute("INSERT INTO t (x) VALUES (?) RETURNING id", (1,))
        assert result.rows == [{"id": 7}]
        assert result.affected_rows == 1

    async def test_query_error(self, pg: PostgresAdapter, pool: FakePool) -> None:
        cause = ValueError('relation "nope" does not exist')
        pool.fail = {"SELECT": cause}
        with pytest.raises(QueryError) as exc_info:
            await pg.query("SELECT * FROM nope")
        assert exc_info.value.original_error is cause
        assert pool.checked_out == 0

    async def test_health_check(self, pg: PostgresAdapter, pool: FakePool) -> None:
        assert (await pg.health_check()).healthy
        assert pool.statements[-1] == "SELECT 1"


@pytest.mark.parametrize(
    ("status", "expected"),
    [("INSERT 0 3", 3), ("UPDATE 12", 12), ("CREATE TABLE", 0), ("", 0), (None, 0)],
)
def test_parse_status(status: str | None, expected: int) -> None:
    assert parse_status(status) == expected


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestTransactions:
    async def test_statement_order_on_one_connection(self, pg: PostgresAdapter, pool: FakePool) -> None:
        async def inner(tx):
            await tx.execute("DELETE FROM t WHERE x = ?", (1,))

        async def work(tx):
            await tx.execute("INSERT INTO t (x) VALUES (?)", (1,))
            await tx.create_savepoint("sp1")
            await tx.create_savepoint("sp1")
            await tx.rollback_to_savepoint("sp1")
            await tx.transaction(inner)

        await pg.transaction(work)
        assert pool.statements == [
            "BEGIN",
            "INSERT INTO t (x) VALUES ($1)",
            "SAVEPOINT sp_sp1_1",
            "SAVEPOINT sp_sp1_2",
            "ROLLBACK TO SAVEPOINT sp_sp1_2",
            "SAVEPOINT sp_nested_3",
            "DELETE FROM t WHERE x = $1",
            "RELEASE SAVEPOINT sp_nested_3",
            "COMMIT",
        ]
        assert len({ident for ident, _, _ in pool.calls}) == 1
        assert pool.checked_out == 0

    async def test_failure_rolls_back(self, pg: PostgresAdapter, pool: FakePool) -> None:
        async def work(tx):
            await tx.execute("INSERT INTO t (x) VALUES (?)", (1,))
            raise Boom

        with pytest.raises(Boom):
            await pg.transaction(work)
        assert pool.statements == ["BEGIN", "INSERT INTO t (x) VALUES ($1)", "ROLLBACK"]

    async def test_nested_failure_rolls_back_to_savepoint(self, pg: PostgresAdapter, pool: FakePool) -> None:
        async def inner(tx):
            raise Boom

        async def work(tx):
            with pytest.raises(Boom):
                await tx.transaction(inner)

        await pg.transaction(work)
        assert pool.statements == [
            "BEGIN",
            "SAVEPOINT sp_nested_1",
            "ROLLBACK TO SAVEPOINT sp_nested_1",
            "RELEASE SAVEPOINT sp_nested_1",
            "COMMIT",
        ]

    async def test_begin_failure(self, pg: PostgresAdapter, pool: FakePool) -> None:
        pool.fail = {"BEGIN": RuntimeError("too many connections")}
        with pytest.raises(TransactionError) as exc_info:
            await pg.transaction(lambda tx: None)
        assert exc_info.value.code is ErrorCode.TRANSACTION_BEGIN_FAILED
        assert pool.checked_out == 0

    async def test_commit_failure(self, pg: PostgresAdapter, pool: FakePool) -> None:
        cause = RuntimeError("could not serialize access")
        pool.fail = {"COMMIT": cause}
        with pytest.raises(TransactionError) as exc_info:
            await pg.transaction(lambda tx: None)
        assert exc_info.value.code is ErrorCode.TRANSACTION_COMMIT_FAILED
        assert exc_info.value.original_error is cause
        assert pool.statements[-1] == "ROLLBACK"

    async def test_failed_savepoint_is_not_tracked(self, pg: PostgresAdapter, pool: FakePool) -> None:
        pool.fail = {"SAVEPOINT": RuntimeError("out of shared memory")}

        async def work(tx):
            with pytest.raises(TransactionError) as exc_info:
                await tx.create_savepoint("sp")
            assert exc_info.value.code is ErrorCode.SAVEPOINT_FAILED
            assert tx.savepoints == ()

        await pg.transaction(work)

    async def test_pool_status_during_transaction(self, pg: PostgresAdapter, pool: FakePool) -> None:
        before = pg.get_pool_status()
        assert (before.total, before.active, before.idle) == (2, 0, 2)

        async def work(tx):
            during = pg.get_pool_status()
            assert (during.total, during.active, during.idle, during.waiting) == (2, 1, 1, 0)

        await pg.transaction(work)
