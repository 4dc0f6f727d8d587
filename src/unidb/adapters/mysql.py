# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""MySQL / MariaDB adapter backed by an :mod:`aiomysql` connection pool.

Pool connections run in autocommit mode; transactions are opened
explicitly with ``conn.begin()``.  Install with ``pip install unidb[mysql]``.
"""

from __future__ import annotations

from typing import Any

from unidb.adapters.sql import SqlAdapter
from unidb.core.constants import BackendKind
from unidb.core.exceptions import DatabaseConnectionError, ErrorCode, NotConnectedError
from unidb.models.config import MySQLConfig
from unidb.models.results import ExecuteResult, PoolStatus

try:
    import aiomysql  # type: ignore[import-not-found]

    HAS_AIOMYSQL = True
except ImportError:  # pragma: no cover
    HAS_AIOMYSQL = False
    aiomysql = None  # type: ignore[assignment]


def _require_aiomysql() -> None:
    """Raise a helpful error when aiomysql is not installed."""
    if not HAS_AIOMYSQL:
        msg = (
            "MySQL adapter requires the 'aiomysql' package. "
            "Install it with:  pip install unidb[mysql]"
        )
        raise DatabaseConnectionError(msg, code=ErrorCode.CONFIG_MISSING)


class MySQLAdapter(SqlAdapter):
    kind = BackendKind.MYSQL
    dialect = "mysql"

    def __init__(self) -> None:
        _require_aiomysql()
        super().__init__()
        self._pool: Any = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _open(self, cfg: MySQLConfig) -> None:
        conn = cfg.connection
        self._pool = await aiomysql.create_pool(  # type: ignore[union-attr]
            host=conn.host,
            port=cfg.port,
            user=conn.username or "",
            password=conn.password or "",
            db=conn.database,
            minsize=cfg.pool.min,
            maxsize=cfg.pool.max,
            pool_recycle=int(cfg.pool.idle_timeout),
            connect_timeout=cfg.connect_timeout,
            autocommit=True,
            cursorclass=aiomysql.DictCursor,  # type: ignore[union-attr]
        )

    async def _discard(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.terminate()
            await pool.wait_closed()

    async def _shutdown(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            pool.close()
            await pool.wait_closed()

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    async def _acquire(self) -> Any:
        if self._pool is None:
            raise NotConnectedError("MySQL pool is closed", connection=self.name)
        return await self._pool.acquire()

    async def _release(self, conn: Any) -> None:
        if self._pool is not None:
            self._pool.release(conn)

    async def _fetch(self, conn: Any, sql: str, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        async with conn.cursor() as cur:
            # No args: the driver skips %-formatting entirely
            await cur.execute(sql, args or None)
            rows = await cur.fetchall()
        return [dict(r) for r in rows]

    async def _run(self, conn: Any, sql: str, args: tuple[Any, ...]) -> ExecuteResult:
        async with conn.cursor() as cur:
            await cur.execute(sql, args or None)
            rows = await cur.fetchall() if cur.description else None
            affected = cur.rowcount
            last_id = cur.lastrowid
        return ExecuteResult(
            affected_rows=max(affected, 0),
            rows=[dict(r) for r in rows] if rows is not None else None,
            last_insert_id=last_id or None,
        )

    async def _begin(self, conn: Any) -> None:
        await conn.begin()

    async def _commit(self, conn: Any) -> None:
        await conn.commit()

    async def _rollback(self, conn: Any) -> None:
        await conn.rollback()

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def get_pool_status(self) -> PoolStatus:
        self._require_connected()
        total = self._pool.size
        idle = min(self._pool.freesize, total)
        return PoolStatus(total=total, active=total - idle, idle=idle, waiting=self._waiting)

    def get_database(self) -> Any:
        """Return the underlying :class:`aiomysql.Pool`."""
        return self._pool
