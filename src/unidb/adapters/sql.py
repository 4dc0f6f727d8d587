# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Shared engine for the relational adapters.

:class:`SqlAdapter` implements statement dispatch, placeholder rewriting,
error wrapping and the nested-transaction state machine once; the
PostgreSQL, MySQL and SQLite adapters only supply the driver calls
(acquire/release a connection, fetch rows, run a write, begin/commit/
rollback).

The active transaction scope is tracked per adapter in a
:class:`~contextvars.ContextVar`.  While a scope is open in the current
task, calls made on the root adapter are routed to the scope's connection,
and a nested ``transaction()`` becomes a savepoint::

    async def transfer(tx):
        await tx.execute("UPDATE accounts SET balance = balance - ? WHERE id = ?", (10, 1))
        await tx.transaction(audit)          # SAVEPOINT / RELEASE SAVEPOINT

    await adapter.transaction(transfer)      # BEGIN / COMMIT
"""

from __future__ import annotations

import abc
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextvars import ContextVar
from typing import Any, ClassVar

from unidb.adapters.base import DatabaseAdapter, TransactionCallback, TransactionView, T, invoke
from unidb.adapters.placeholders import rewrite_placeholders
from unidb.adapters.savepoints import SavepointFrame, SavepointStack
from unidb.core.constants import LogEventType
from unidb.core.exceptions import (
    DatabaseError,
    ErrorCode,
    ExecuteError,
    QueryError,
    TransactionError,
)
from unidb.models.results import ExecuteResult

logger = logging.getLogger("unidb.adapters.sql")


def _as_params(params: Any) -> tuple[Any, ...]:
    if params is None:
        return ()
    if isinstance(params, (str, bytes)) or not isinstance(params, Sequence):
        msg = f"SQL parameters must be a sequence, got {type(params).__name__}"
        raise TypeError(msg)
    return tuple(params)


class SqlAdapter(DatabaseAdapter):
    """Relational adapter base.

    Subclasses set ``dialect`` and implement the ``_acquire``/``_release``/
    ``_fetch``/``_run`` driver hooks.  ``_begin``/``_commit``/``_rollback``
    default to plain SQL statements.
    """

    dialect: ClassVar[str]

    def __init__(self) -> None:
        super().__init__()
        self._scope: ContextVar[SqlTransaction | None] = ContextVar(
            f"unidb_scope_{id(self):x}", default=None
        )
        self._waiting = 0

    # ------------------------------------------------------------------
    # Driver hooks
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def _acquire(self) -> Any:
        """Borrow a connection (waiting if none is free)."""

    @abc.abstractmethod
    async def _release(self, conn: Any) -> None:
        """Return a borrowed connection."""

    @abc.abstractmethod
    async def _fetch(self, conn: Any, sql: str, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        """Run a dialect-ready read statement."""

    @abc.abstractmethod
    async def _run(self, conn: Any, sql: str, args: tuple[Any, ...]) -> ExecuteResult:
        """Run a dialect-ready write statement."""

    async def _begin(self, conn: Any) -> None:
        await self._run(conn, "BEGIN", ())

    async def _commit(self, conn: Any) -> None:
        await self._run(conn, "COMMIT", ())

    async def _rollback(self, conn: Any) -> None:
        await self._run(conn, "ROLLBACK", ())

    async def _ping(self) -> None:
        await self.query("SELECT 1")

    # ------------------------------------------------------------------
    # Scope routing
    # ------------------------------------------------------------------

    def _active_scope(self) -> SqlTransaction | None:
        scope = self._scope.get()
        if scope is not None and scope.active:
            return scope
        return None

    @contextlib.asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        self._waiting += 1
        try:
            conn = await self._acquire()
        finally:
            self._waiting -= 1
        try:
            yield conn
        finally:
            await self._release(conn)

    # ------------------------------------------------------------------
    # Statement dispatch
    # ------------------------------------------------------------------

    def _prepare(
        self, statement: str, params: Any, error_cls: type[DatabaseError]
    ) -> tuple[str, tuple[Any, ...]]:
        try:
            args = _as_params(params)
        except TypeError as exc:
            raise error_cls(
                str(exc), code=ErrorCode.PARAMETER_MISMATCH, sql=statement,
                params=params, connection=self.name,
            ) from exc
        rewritten = rewrite_placeholders(
            statement, self.dialect, escape_percent=bool(args)
        )
        if rewritten.count != len(args):
            msg = f"Statement has {rewritten.count} placeholder(s) but {len(args)} parameter(s) were given"
            raise error_cls(
                msg, code=ErrorCode.PARAMETER_MISMATCH, sql=statement,
                params=args, connection=self.name,
            )
        return rewritten.sql, args

    async def _query_on(self, conn: Any, statement: str, params: Any) -> list[dict[str, Any]]:
        sql, args = self._prepare(statement, params, QueryError)
        started = time.perf_counter()
        try:
            rows = await self._fetch(conn, sql, args)
        except Exception as exc:
            self._report(LogEventType.ERROR, "query", statement, args, started, exc)
            raise QueryError(
                str(exc), sql=statement, params=args, connection=self.name, original_error=exc
            ) from exc
        self._report(LogEventType.QUERY, "query", statement, args, started)
        return rows

    async def _execute_on(self, conn: Any, statement: str, params: Any) -> ExecuteResult:
        sql, args = self._prepare(statement, params, ExecuteError)
        started = time.perf_counter()
        try:
            result = await self._run(conn, sql, args)
        except Exception as exc:
            self._report(LogEventType.ERROR, "execute", statement, args, started, exc)
            raise ExecuteError(
                str(exc), sql=statement, params=args, connection=self.name, original_error=exc
            ) from exc
        self._report(LogEventType.EXECUTE, "execute", statement, args, started)
        return result

    async def _control(self, conn: Any, sql: str) -> None:
        """Run a transaction-control statement, wrapping failures."""
        try:
            await self._run(conn, sql, ())
        except Exception as exc:
            raise TransactionError(
                f"{sql} failed: {exc}", code=ErrorCode.SAVEPOINT_FAILED, sql=sql,
                connection=self.name, original_error=exc,
            ) from exc

    async def query(self, statement: str, params: Any = None) -> list[dict[str, Any]]:
        scope = self._active_scope()
        if scope is not None:
            return await scope.query(statement, params)
        self._require_connected()
        async with self._connection() as conn:
            return await self._query_on(conn, statement, params)

    async def execute(self, statement: str, params: Any = None) -> ExecuteResult:
        scope = self._active_scope()
        if scope is not None:
            return await scope.execute(statement, params)
        self._require_connected()
        async with self._connection() as conn:
            return await self._execute_on(conn, statement, params)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def transaction(self, fn: TransactionCallback[T]) -> T:
        scope = self._active_scope()
        if scope is not None:
            return await scope.transaction(fn)
        self._require_connected()
        self._open_transactions += 1
        try:
            return await self._outermost(fn)
        finally:
            self._open_transactions -= 1

    async def _outermost(self, fn: TransactionCallback[T]) -> T:
        async with self._connection() as conn:
            try:
                await self._begin(conn)
            except Exception as exc:
                raise TransactionError(
                    f"Failed to begin transaction: {exc}",
                    code=ErrorCode.TRANSACTION_BEGIN_FAILED,
                    connection=self.name,
                    original_error=exc,
                ) from exc

            tx = SqlTransaction(self, conn)
            token = self._scope.set(tx)
            try:
                result = await invoke(fn, tx)
            except BaseException:
                tx._finish()
                await self._safe_rollback(conn)
                raise
            finally:
                self._scope.reset(token)

            tx._finish()
            try:
                await self._commit(conn)
            except Exception as exc:
                await self._safe_rollback(conn)
                raise TransactionError(
                    f"Failed to commit transaction: {exc}",
                    code=ErrorCode.TRANSACTION_COMMIT_FAILED,
                    connection=self.name,
                    original_error=exc,
                ) from exc
            return result

    async def _safe_rollback(self, conn: Any) -> None:
        try:
            await self._rollback(conn)
        except Exception:
            logger.warning("Rollback failed", exc_info=True, extra={"connection": self.name})

    async def create_savepoint(self, name: str) -> None:
        await self._require_scope().create_savepoint(name)

    async def rollback_to_savepoint(self, name: str) -> None:
        await self._require_scope().rollback_to_savepoint(name)

    async def release_savepoint(self, name: str) -> None:
        await self._require_scope().release_savepoint(name)

    def _require_scope(self) -> SqlTransaction:
        scope = self._active_scope()
        if scope is None:
            raise TransactionError(
                "Savepoints can only be used inside a transaction",
                code=ErrorCode.TRANSACTION_STATE,
                connection=self.name,
            )
        return scope


class SqlTransaction(TransactionView):
    """Transaction-scoped view over one borrowed SQL connection.

    Statements run on that connection in the order they are issued.
    Nested ``transaction()`` calls and manual savepoints share one
    :class:`SavepointStack`.
    """

    def __init__(self, adapter: SqlAdapter, conn: Any) -> None:
        super().__init__(adapter)
        self._adapter: SqlAdapter = adapter
        self._conn = conn
        self._savepoints = SavepointStack()
        self._depth = 1

    @property
    def depth(self) -> int:
        """Nesting level: 1 for the outermost scope."""
        return self._depth

    @property
    def savepoints(self) -> tuple[SavepointFrame, ...]:
        return self._savepoints.frames

    def get_database(self) -> Any:
        return self._conn

    def _finish(self) -> None:
        super()._finish()
        self._savepoints.clear()

    async def query(self, statement: str, params: Any = None) -> list[dict[str, Any]]:
        self._require_active()
        return await self._adapter._query_on(self._conn, statement, params)

    async def execute(self, statement: str, params: Any = None) -> ExecuteResult:
        self._require_active()
        return await self._adapter._execute_on(self._conn, statement, params)

    async def transaction(self, fn: TransactionCallback[T]) -> T:
        self._require_active()
        frame = self._savepoints.push(None)
        try:
            await self._adapter._control(self._conn, f"SAVEPOINT {frame.internal_name}")
        except BaseException:
            self._savepoints.discard(frame)
            raise

        self._depth += 1
        try:
            result = await invoke(fn, self)
        except BaseException:
            await self._undo(frame)
            raise
        finally:
            self._depth -= 1

        if self._savepoints.is_live(frame):
            self._savepoints.release(frame)
            await self._adapter._control(self._conn, f"RELEASE SAVEPOINT {frame.internal_name}")
        return result

    async def _undo(self, frame: SavepointFrame) -> None:
        if not self._active or not self._savepoints.is_live(frame):
            return
        self._savepoints.release(frame)
        try:
            await self._adapter._control(
                self._conn, f"ROLLBACK TO SAVEPOINT {frame.internal_name}"
            )
            await self._adapter._control(self._conn, f"RELEASE SAVEPOINT {frame.internal_name}")
        except TransactionError:
            logger.warning(
                "Rolling back nested transaction failed",
                exc_info=True,
                extra={"connection": self.name},
            )

    async def create_savepoint(self, name: str) -> None:
        self._require_active()
        frame = self._savepoints.push(name)
        try:
            await self._adapter._control(self._conn, f"SAVEPOINT {frame.internal_name}")
        except BaseException:
            self._savepoints.discard(frame)
            raise

    async def rollback_to_savepoint(self, name: str) -> None:
        self._require_active()
        frame = self._savepoints.resolve(name)
        await self._adapter._control(self._conn, f"ROLLBACK TO SAVEPOINT {frame.internal_name}")
        self._savepoints.rollback_to(frame)

    async def release_savepoint(self, name: str) -> None:
        self._require_active()
        frame = self._savepoints.resolve(name)
        await self._adapter._control(self._conn, f"RELEASE SAVEPOINT {frame.internal_name}")
        self._savepoints.release(frame)
