# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Abstract adapter contract shared by every backend.

All four adapters (PostgreSQL, MySQL, SQLite, MongoDB) implement
:class:`DatabaseAdapter`, so the ORM layer, the migration runner and
application code stay backend-agnostic.  Inside a ``transaction()``
callback callers receive a :class:`TransactionView` instead, which offers
the same surface bound to one backend session and refuses ``close()``.
"""

from __future__ import annotations

import abc
import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, ClassVar, TypeVar

from unidb.core.constants import AdapterState, BackendKind, LogEventType
from unidb.core.exceptions import (
    DatabaseConnectionError,
    ErrorCode,
    NotConnectedError,
    TransactionError,
)
from unidb.models.config import parse_config
from unidb.models.results import ExecuteResult, HealthCheckResult, PoolStatus
from unidb.query_logger import QueryLogEntry, QueryLogger

logger = logging.getLogger("unidb.adapters")

T = TypeVar("T")

TransactionCallback = Callable[[Any], Awaitable[T]]


async def invoke(fn: Callable[[Any], Any], view: Any) -> Any:
    """Call a transaction callback, awaiting its result when it is awaitable."""
    result = fn(view)
    if inspect.isawaitable(result):
        result = await result
    return result


class DatabaseAdapter(abc.ABC):
    """Abstract base class for async database adapters.

    Subclasses own one connection, pool or client.  The base class keeps
    the lifecycle state machine (``disconnected → connecting → connected →
    closing → disconnected``), the connect retry loop, health checks and
    query-logger reporting.
    """

    kind: ClassVar[BackendKind]

    def __init__(self) -> None:
        self.name: str | None = None
        self._config: Any = None
        self._state = AdapterState.DISCONNECTED
        self._query_logger: QueryLogger | None = None
        self._last_health_check: datetime | None = None
        self._open_transactions = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> AdapterState:
        return self._state

    @property
    def config(self) -> Any:
        return self._config

    @property
    def last_health_check(self) -> datetime | None:
        return self._last_health_check

    @property
    def open_transactions(self) -> int:
        """Outermost transaction scopes currently open across all tasks."""
        return self._open_transactions

    def is_connected(self) -> bool:
        return self._state is AdapterState.CONNECTED

    def _require_connected(self) -> None:
        if not self.is_connected():
            msg = f"{self.kind.value} adapter is not connected"
            raise NotConnectedError(msg, connection=self.name)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, config: Any) -> None:
        """Open the backend connection or pool described by *config*.

        Connecting again with an equal config is a no-op; a different
        config while connected is rejected.

        Raises:
            DatabaseConnectionError: Wrong backend kind, missing required
                fields, or the backend rejected every attempt.
        """
        try:
            cfg = parse_config(config)
        except Exception as exc:
            raise DatabaseConnectionError(
                str(exc), code=ErrorCode.CONFIG_INVALID, connection=self.name
            ) from exc

        if cfg.kind is not self.kind:
            msg = f"{self.kind.value} adapter cannot connect with a {cfg.kind.value} config"
            raise DatabaseConnectionError(msg, code=ErrorCode.CONFIG_INVALID, connection=self.name)

        if self.is_connected():
            if cfg == self._config:
                return
            msg = "Adapter is already connected with a different configuration; close it first"
            raise DatabaseConnectionError(msg, code=ErrorCode.CONFIG_INVALID, connection=self.name)

        missing = cfg.missing_fields()
        if missing:
            msg = f"Missing required connection fields: {', '.join(missing)}"
            raise DatabaseConnectionError(msg, code=ErrorCode.CONFIG_MISSING, connection=self.name)

        self._state = AdapterState.CONNECTING
        try:
            await self._connect_with_retry(cfg)
        except BaseException:
            self._state = AdapterState.DISCONNECTED
            raise
        self._config = cfg
        self._state = AdapterState.CONNECTED
        logger.info("Connected %s adapter", self.kind.value, extra={"connection": self.name})

    async def _connect_with_retry(self, cfg: Any) -> None:
        attempts = cfg.pool.max_retries + 1
        last_exc: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                await self._open(cfg)
                return
            except Exception as exc:
                last_exc = exc
                await self._discard()
                if attempt < attempts:
                    delay = cfg.pool.retry_delay * attempt
                    logger.warning(
                        "Connect attempt %d/%d for %s failed: %s; retrying in %.2fs",
                        attempt,
                        attempts,
                        self.kind.value,
                        exc,
                        delay,
                        extra={"connection": self.name},
                    )
                    await asyncio.sleep(delay)

        msg = f"Failed to connect to {self.kind.value} after {attempts} attempt(s): {last_exc}"
        raise DatabaseConnectionError(
            msg, connection=self.name, original_error=last_exc
        ) from last_exc

    async def close(self) -> None:
        """Release every backend resource.  A second call is a no-op.

        Driver errors raised while closing are logged, not propagated.
        """
        if self._state is AdapterState.DISCONNECTED:
            return
        self._check_closable()
        self._state = AdapterState.CLOSING
        try:
            await self._shutdown()
        except Exception:
            logger.warning(
                "Error while closing %s adapter", self.kind.value,
                exc_info=True, extra={"connection": self.name},
            )
        finally:
            self._state = AdapterState.DISCONNECTED
            self._config = None
        logger.info("Closed %s adapter", self.kind.value, extra={"connection": self.name})

    def _check_closable(self) -> None:
        """Refuse to close while any task has an outermost transaction open."""
        if self._open_transactions:
            raise TransactionError(
                "Cannot close the adapter while a transaction is in progress",
                code=ErrorCode.TRANSACTION_STATE,
                connection=self.name,
            )

    @abc.abstractmethod
    async def _open(self, cfg: Any) -> None:
        """Establish the backend connection/pool for one attempt."""

    @abc.abstractmethod
    async def _discard(self) -> None:
        """Drop any partial state left by a failed attempt.  Must not raise."""

    @abc.abstractmethod
    async def _shutdown(self) -> None:
        """Close the backend connection/pool."""

    # ------------------------------------------------------------------
    # Statements and transactions
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def query(self, statement: str, params: Any = None) -> list[dict[str, Any]]:
        """Run a read statement and return its rows (``[]`` when none match).

        Raises:
            NotConnectedError: The adapter is not connected.
            QueryError: The backend rejected the statement.
        """

    @abc.abstractmethod
    async def execute(self, statement: str, params: Any = None) -> ExecuteResult:
        """Run a write statement.

        Raises:
            NotConnectedError: The adapter is not connected.
            ExecuteError: The backend rejected the statement.
        """

    @abc.abstractmethod
    async def transaction(self, fn: TransactionCallback[T]) -> T:
        """Run *fn* inside a transaction scope and return its result.

        *fn* receives a transaction-scoped view.  If it raises, the scope
        is rolled back and the original exception is re-raised unchanged.
        """

    @abc.abstractmethod
    async def create_savepoint(self, name: str) -> None: ...

    @abc.abstractmethod
    async def rollback_to_savepoint(self, name: str) -> None: ...

    @abc.abstractmethod
    async def release_savepoint(self, name: str) -> None: ...

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def get_pool_status(self) -> PoolStatus:
        """Live pool occupancy.

        Raises:
            NotConnectedError: The adapter is not connected.
        """

    @abc.abstractmethod
    async def _ping(self) -> None:
        """Issue a trivial round trip to the backend."""

    @abc.abstractmethod
    def get_database(self) -> Any:
        """Return the native pool, connection or database handle."""

    async def health_check(self) -> HealthCheckResult:
        """Probe the backend.  Never raises; failures land in the result."""
        start = time.perf_counter()
        try:
            self._require_connected()
            await self._ping()
            result = HealthCheckResult(
                healthy=True, latency=(time.perf_counter() - start) * 1000
            )
        except Exception as exc:
            result = HealthCheckResult(
                healthy=False,
                latency=(time.perf_counter() - start) * 1000,
                error=str(exc),
            )
        self._last_health_check = result.timestamp
        if self._query_logger is not None:
            try:
                self._query_logger.log_health_check(result, connection=self.name)
            except Exception:
                logger.warning("Query logger failed to record health check", exc_info=True)
        return result

    def set_query_logger(self, query_logger: QueryLogger | None) -> None:
        self._query_logger = query_logger

    def get_query_logger(self) -> QueryLogger | None:
        return self._query_logger

    def _report(
        self,
        event: LogEventType,
        operation: str,
        sql: str,
        params: Any,
        started: float,
        error: BaseException | None = None,
    ) -> None:
        """Send one entry to the attached query logger, if any."""
        if self._query_logger is None:
            return
        entry = QueryLogEntry(
            type=event,
            operation=operation,
            sql=sql,
            params=params,
            duration=(time.perf_counter() - started) * 1000,
            error=str(error) if error is not None else None,
            connection=self.name,
        )
        try:
            self._query_logger.log(entry)
        except Exception:
            logger.warning("Query logger failed to record entry", exc_info=True)


class TransactionView(abc.ABC):
    """Adapter surface bound to one transaction scope.

    Views share the parent's query logger and refuse lifecycle operations.
    Using a view after its scope has finished raises
    :class:`TransactionError`.
    """

    def __init__(self, adapter: DatabaseAdapter) -> None:
        self._adapter = adapter
        self._active = True

    @property
    def kind(self) -> BackendKind:
        return self._adapter.kind

    @property
    def name(self) -> str | None:
        return self._adapter.name

    @property
    def active(self) -> bool:
        return self._active

    def _finish(self) -> None:
        self._active = False

    def _require_active(self) -> None:
        if not self._active:
            raise TransactionError(
                "Transaction scope has already finished",
                code=ErrorCode.TRANSACTION_STATE,
                connection=self.name,
            )

    def is_connected(self) -> bool:
        return self._active and self._adapter.is_connected()

    async def connect(self, config: Any) -> None:
        raise TransactionError(
            "Cannot connect a transaction-scoped adapter",
            code=ErrorCode.TRANSACTION_STATE,
            connection=self.name,
        )

    async def close(self) -> None:
        raise TransactionError(
            "Cannot close connection in transaction adapter",
            code=ErrorCode.TRANSACTION_STATE,
            connection=self.name,
        )

    def get_pool_status(self) -> PoolStatus:
        self._require_active()
        return PoolStatus(total=1, active=1, idle=0, waiting=0)

    async def health_check(self) -> HealthCheckResult:
        return HealthCheckResult(
            healthy=self._active,
            error=None if self._active else "Transaction scope has already finished",
        )

    def set_query_logger(self, query_logger: QueryLogger | None) -> None:
        self._adapter.set_query_logger(query_logger)

    def get_query_logger(self) -> QueryLogger | None:
        return self._adapter.get_query_logger()

    @abc.abstractmethod
    async def query(self, statement: str, params: Any = None) -> list[dict[str, Any]]: ...

    @abc.abstractmethod
    async def execute(self, statement: str, params: Any = None) -> ExecuteResult: ...

    @abc.abstractmethod
    async def transaction(self, fn: TransactionCallback[T]) -> T: ...

    @abc.abstractmethod
    async def create_savepoint(self, name: str) -> None: ...

    @abc.abstractmethod
    async def rollback_to_savepoint(self, name: str) -> None: ...

    @abc.abstractmethod
    async def release_savepoint(self, name: str) -> None: ...

    def __repr__(self) -> str:
        state = "active" if self._active else "finished"
        return f"<{type(self).__name__} {self.kind.value} {state}>"
