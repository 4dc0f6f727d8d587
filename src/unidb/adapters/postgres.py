# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""PostgreSQL adapter backed by an :mod:`asyncpg` connection pool.

Install with ``pip install unidb[postgres]``.
"""

from __future__ import annotations

import re
from typing import Any

from unidb.adapters.sql import SqlAdapter
from unidb.core.constants import BackendKind
from unidb.core.exceptions import DatabaseConnectionError, ErrorCode, NotConnectedError
from unidb.models.config import PostgresConfig
from unidb.models.results import ExecuteResult, PoolStatus

try:
    import asyncpg  # type: ignore[import-not-found]

    HAS_ASYNCPG = True
except ImportError:  # pragma: no cover
    HAS_ASYNCPG = False
    asyncpg = None  # type: ignore[assignment]

_RETURNING = re.compile(r"\bRETURNING\b", re.IGNORECASE)


def _require_asyncpg() -> None:
    """Raise a helpful error when asyncpg is not installed."""
    if not HAS_ASYNCPG:
        msg = (
            "PostgreSQL adapter requires the 'asyncpg' package. "
            "Install it with:  pip install unidb[postgres]"
        )
        raise DatabaseConnectionError(msg, code=ErrorCode.CONFIG_MISSING)


def parse_status(status: str | None) -> int:
    """Extract the row count from a command tag such as ``INSERT 0 3``."""
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


class PostgresAdapter(SqlAdapter):
    kind = BackendKind.POSTGRES
    dialect = "postgres"

    def __init__(self) -> None:
        _require_asyncpg()
        super().__init__()
        self._pool: Any = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _open(self, cfg: PostgresConfig) -> None:
        conn = cfg.connection
        self._pool = await asyncpg.create_pool(  # type: ignore[union-attr]
            host=conn.host,
            port=cfg.port,
            user=conn.username,
            password=conn.password,
            database=conn.database,
            min_size=cfg.pool.min,
            max_size=cfg.pool.max,
            max_inactive_connection_lifetime=cfg.pool.idle_timeout,
            timeout=cfg.connect_timeout,
        )

    async def _discard(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.terminate()

    async def _shutdown(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    async def _acquire(self) -> Any:
        if self._pool is None:
            raise NotConnectedError("PostgreSQL pool is closed", connection=self.name)
        return await self._pool.acquire()

    async def _release(self, conn: Any) -> None:
        if self._pool is not None:
            await self._pool.release(conn)

    async def _fetch(self, conn: Any, sql: str, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        rows = await conn.fetch(sql, *args)
        return [dict(r) for r in rows]

    async def _run(self, conn: Any, sql: str, args: tuple[Any, ...]) -> ExecuteResult:
        if not args and not _RETURNING.search(sql):
            # Unparameterised statements may hold several commands (DDL scripts)
            status = await conn.execute(sql)
            return ExecuteResult(affected_rows=parse_status(status))

        stmt = await conn.prepare(sql)
        rows = await stmt.fetch(*args)
        return ExecuteResult(
            affected_rows=parse_status(stmt.get_statusmsg()),
            rows=[dict(r) for r in rows] if stmt.get_attributes() else None,
        )

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def get_pool_status(self) -> PoolStatus:
        self._require_connected()
        total = self._pool.get_size()
        idle = min(self._pool.get_idle_size(), total)
        return PoolStatus(total=total, active=total - idle, idle=idle, waiting=self._waiting)

    def get_database(self) -> Any:
        """Return the underlying :class:`asyncpg.Pool`."""
        return self._pool
