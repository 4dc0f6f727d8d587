# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""SQLite adapter backed by a single persistent :mod:`aiosqlite` connection.

The connection is opened in autocommit mode (``isolation_level=None``) so
that ``BEGIN``/``SAVEPOINT`` statements are issued explicitly by the
transaction engine.  Calls outside a transaction and whole transactions
are serialized on the connection with an :class:`asyncio.Lock`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Any

import aiosqlite

from unidb.adapters.sql import SqlAdapter
from unidb.core.constants import BackendKind
from unidb.core.exceptions import NotConnectedError
from unidb.models.config import SQLiteConfig
from unidb.models.results import ExecuteResult, PoolStatus

logger = logging.getLogger("unidb.adapters.sqlite")

_INSERTS = re.compile(r"\s*(INSERT|REPLACE)\b", re.IGNORECASE)


class SQLiteAdapter(SqlAdapter):
    kind = BackendKind.SQLITE
    dialect = "sqlite"

    def __init__(self) -> None:
        super().__init__()
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _open(self, cfg: SQLiteConfig) -> None:
        filename = cfg.connection.filename
        options = cfg.options
        if options.readonly and filename != ":memory:":
            target = f"{Path(filename).resolve().as_uri()}?mode=ro"
            db = await aiosqlite.connect(
                target, uri=True, timeout=options.timeout, isolation_level=None
            )
        else:
            db = await aiosqlite.connect(
                filename, timeout=options.timeout, isolation_level=None
            )
        self._db = db
        db.row_factory = aiosqlite.Row
        # Enable foreign key constraint enforcement
        await db.execute("PRAGMA foreign_keys=ON")
        if filename != ":memory:" and not options.readonly:
            # Enable WAL mode for concurrent read performance
            await db.execute("PRAGMA journal_mode=WAL")

    async def _discard(self) -> None:
        db, self._db = self._db, None
        if db is not None:
            try:
                await db.close()
            except Exception:
                logger.debug("Discarding half-open SQLite connection failed", exc_info=True)

    async def _shutdown(self) -> None:
        async with self._lock:
            db, self._db = self._db, None
        if db is not None:
            await db.close()

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    async def _acquire(self) -> aiosqlite.Connection:
        await self._lock.acquire()
        if self._db is None:
            self._lock.release()
            raise NotConnectedError("SQLite connection is closed", connection=self.name)
        return self._db

    async def _release(self, conn: Any) -> None:
        self._lock.release()

    async def _fetch(self, conn: aiosqlite.Connection, sql: str, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        async with conn.execute(sql, args) as cursor:
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    async def _run(self, conn: aiosqlite.Connection, sql: str, args: tuple[Any, ...]) -> ExecuteResult:
        async with conn.execute(sql, args) as cursor:
            rows = await cursor.fetchall() if cursor.description else None
            affected = cursor.rowcount
            last_id = cursor.lastrowid
        return ExecuteResult(
            affected_rows=max(affected, 0),
            rows=[dict(r) for r in rows] if rows is not None else None,
            last_insert_id=last_id if _INSERTS.match(sql) else None,
        )

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def get_pool_status(self) -> PoolStatus:
        self._require_connected()
        return PoolStatus(total=1, active=1, idle=0, waiting=0)

    def get_database(self) -> aiosqlite.Connection | None:
        return self._db
