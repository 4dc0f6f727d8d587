# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Migration history and a minimal runner.

The history lives in a ``migrations`` table (SQL) or collection (MongoDB)
and is read and written exclusively through the adapter's ``query`` and
``execute`` methods.  Every ``migrate()`` run applies all pending
migrations as one *batch*; ``rollback()`` reverts the most recent batch in
reverse order.  On SQL backends each migration and its history row run in
one transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from unidb.core.constants import MIGRATIONS_TABLE, SQL_DIALECTS, BackendKind
from unidb.core.exceptions import ConfigurationError
from unidb.query.translator import DocumentQuery, quote_identifier

logger = logging.getLogger("unidb.migrations")

MigrationFunc = Callable[[Any], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Migration:
    """A single migration; *up* and *down* receive the adapter (or view)."""

    name: str
    up: MigrationFunc
    down: MigrationFunc | None = None


@dataclass(frozen=True, slots=True)
class MigrationRecord:
    name: str
    batch: int
    executed_at: str


# ---------------------------------------------------------------------------
# History bookkeeping
# ---------------------------------------------------------------------------

_CREATE_HISTORY = {
    "sqlite": """
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    batch INTEGER NOT NULL,
    executed_at TEXT NOT NULL
)
""",
    "postgres": """
CREATE TABLE IF NOT EXISTS {table} (
    id SERIAL PRIMARY KEY,
    name VARCHAR(255) NOT NULL UNIQUE,
    batch INTEGER NOT NULL,
    executed_at VARCHAR(64) NOT NULL
)
""",
    "mysql": """
CREATE TABLE IF NOT EXISTS {table} (
    id INT AUTO_INCREMENT PRIMARY KEY,
    name VARCHAR(255) NOT NULL UNIQUE,
    batch INT NOT NULL,
    executed_at VARCHAR(64) NOT NULL
)
""",
}


class MigrationHistory:
    """Reads and writes the migration history of one adapter."""

    def __init__(self, adapter: Any, table: str = MIGRATIONS_TABLE) -> None:
        self._adapter = adapter
        self._table = table
        self._document = adapter.kind is BackendKind.MONGO
        if not self._document:
            self._quoted = quote_identifier(table, SQL_DIALECTS[adapter.kind])

    async def ensure(self) -> None:
        """Create the history table.  Collections are created on first insert."""
        if self._document:
            return
        ddl = _CREATE_HISTORY[SQL_DIALECTS[self._adapter.kind]].format(table=self._quoted)
        await self._adapter.execute(ddl.strip())

    async def executed(self) -> list[MigrationRecord]:
        """Applied migrations, oldest first."""
        if self._document:
            rows = await self._adapter.query(self._table, DocumentQuery(sort=[("_id", 1)]))
        else:
            rows = await self._adapter.query(
                f"SELECT name, batch, executed_at FROM {self._quoted} ORDER BY id"  # noqa: S608
            )
        return [
            MigrationRecord(name=r["name"], batch=int(r["batch"]), executed_at=str(r["executed_at"]))
            for r in rows
        ]

    async def record(self, name: str, batch: int) -> None:
        executed_at = datetime.now(UTC).isoformat()
        if self._document:
            await self._adapter.execute(
                f"insert {self._table}",
                {"name": name, "batch": batch, "executed_at": executed_at},
            )
            return
        await self._adapter.execute(
            f"INSERT INTO {self._quoted} (name, batch, executed_at) VALUES (?, ?, ?)",  # noqa: S608
            (name, batch, executed_at),
        )

    async def remove(self, name: str) -> None:
        if self._document:
            await self._adapter.execute(f"delete {self._table}", {"filter": {"name": name}})
            return
        await self._adapter.execute(
            f"DELETE FROM {self._quoted} WHERE name = ?", (name,)  # noqa: S608
        )

    async def last_batch(self) -> int:
        """Highest batch number, or 0 when nothing has run."""
        if self._document:
            rows = await self._adapter.query(
                self._table, DocumentQuery(sort=[("batch", -1)], limit=1)
            )
        else:
            rows = await self._adapter.query(
                f"SELECT MAX(batch) AS batch FROM {self._quoted}"  # noqa: S608
            )
        if not rows or rows[0].get("batch") is None:
            return 0
        return int(rows[0]["batch"])

    async def next_batch(self) -> int:
        return await self.last_batch() + 1


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class MigrationRunner:
    """Applies and reverts registered migrations in registration order.

    Args:
        adapter: A connected adapter.
        migrations: Initial migrations; more can be added with
            :meth:`add` or the :meth:`register` decorator.
        table: History table/collection name.
        use_transactions: Run each migration in a transaction.  Defaults
            to ``True`` on SQL backends and ``False`` on MongoDB, where
            transactions need a replica set.
    """

    def __init__(
        self,
        adapter: Any,
        migrations: Iterable[Migration] = (),
        *,
        table: str = MIGRATIONS_TABLE,
        use_transactions: bool | None = None,
    ) -> None:
        self._adapter = adapter
        self._table = table
        self._history = MigrationHistory(adapter, table)
        self._migrations: dict[str, Migration] = {}
        if use_transactions is None:
            use_transactions = adapter.kind is not BackendKind.MONGO
        self._use_transactions = use_transactions
        for migration in migrations:
            self.add(migration)

    @property
    def history(self) -> MigrationHistory:
        return self._history

    @property
    def migrations(self) -> list[Migration]:
        return list(self._migrations.values())

    def add(self, migration: Migration) -> None:
        if migration.name in self._migrations:
            msg = f"Duplicate migration name: {migration.name!r}"
            raise ConfigurationError(msg)
        self._migrations[migration.name] = migration

    def register(
        self, name: str, *, down: MigrationFunc | None = None
    ) -> Callable[[MigrationFunc], MigrationFunc]:
        """Decorator that registers an ``up`` function under *name*."""

        def decorator(fn: MigrationFunc) -> MigrationFunc:
            self.add(Migration(name=name, up=fn, down=down))
            return fn

        return decorator

    async def pending(self) -> list[Migration]:
        await self._history.ensure()
        done = {r.name for r in await self._history.executed()}
        return [m for m in self._migrations.values() if m.name not in done]

    async def migrate(self) -> list[Migration]:
        """Apply every pending migration as one batch and return them."""
        pending = await self.pending()
        if not pending:
            return []
        batch = await self._history.next_batch()
        for migration in pending:
            await self._apply(migration.up, lambda h, n=migration.name: h.record(n, batch))
            logger.info("Applied migration %s (batch %d)", migration.name, batch)
        return pending

    async def rollback(self) -> list[Migration]:
        """Revert the most recent batch in reverse order and return it."""
        await self._history.ensure()
        records = await self._history.executed()
        if not records:
            return []
        last = max(r.batch for r in records)
        reverted: list[Migration] = []
        for record in reversed([r for r in records if r.batch == last]):
            migration = self._migrations.get(record.name)
            if migration is None or migration.down is None:
                msg = f"Migration {record.name!r} cannot be rolled back: no down step registered"
                raise ConfigurationError(msg)
            await self._apply(migration.down, lambda h, n=record.name: h.remove(n))
            logger.info("Rolled back migration %s (batch %d)", record.name, last)
            reverted.append(migration)
        return reverted

    async def status(self) -> list[tuple[str, MigrationRecord | None]]:
        """Every known migration paired with its history record (``None`` if pending)."""
        await self._history.ensure()
        records = {r.name: r for r in await self._history.executed()}
        names = list(self._migrations)
        names += [n for n in records if n not in self._migrations]
        return [(name, records.get(name)) for name in names]

    async def _apply(
        self,
        step: MigrationFunc,
        bookkeeping: Callable[[MigrationHistory], Awaitable[None]],
    ) -> None:
        if not self._use_transactions:
            await step(self._adapter)
            await bookkeeping(self._history)
            return

        async def run(tx: Any) -> None:
            await step(tx)
            await bookkeeping(MigrationHistory(tx, self._table))

        await self._adapter.transaction(run)
