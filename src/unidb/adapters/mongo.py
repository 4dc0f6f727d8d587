# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""MongoDB adapter backed by :class:`pymongo.AsyncMongoClient`.

The document backend maps the uniform contract as follows:

* ``query(collection, params)``: *params* is a filter mapping or a
  :class:`~unidb.query.translator.DocumentQuery` (filter, sort, limit,
  skip, projection, or an aggregation pipeline).
* ``execute("<operation> <collection>", data)``: operations are
  ``insert``, ``insertMany``, ``update``, ``updateMany``, ``delete``,
  ``deleteMany``, ``findOneAndUpdate``, ``findOneAndDelete``,
  ``findOneAndReplace``, ``createCollection`` and ``drop``.

Transactions need a replica set or sharded cluster and run on one client
session.  There is no savepoint primitive: a nested ``transaction()``
reuses the outer session without issuing anything, so a failure inside it
aborts the **whole** outer transaction once it propagates.  All savepoint
methods raise :class:`UnsupportedOperationError`.

Install with ``pip install unidb[mongo]``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from contextvars import ContextVar
from typing import Any
from urllib.parse import quote_plus, urlencode

from unidb.adapters.base import (
    DatabaseAdapter,
    TransactionCallback,
    TransactionView,
    T,
    invoke,
)
from unidb.core.constants import BackendKind, LogEventType
from unidb.core.exceptions import (
    DatabaseConnectionError,
    ErrorCode,
    ExecuteError,
    QueryError,
    TransactionError,
    UnsupportedOperationError,
)
from unidb.models.config import MongoConfig
from unidb.models.results import ExecuteResult, PoolStatus
from unidb.query.translator import DocumentQuery

try:
    from pymongo import AsyncMongoClient, ReturnDocument, monitoring  # type: ignore[import-not-found]

    HAS_PYMONGO = True
except ImportError:  # pragma: no cover
    HAS_PYMONGO = False
    AsyncMongoClient = None  # type: ignore[assignment,misc]
    ReturnDocument = None  # type: ignore[assignment,misc]
    monitoring = None  # type: ignore[assignment]

logger = logging.getLogger("unidb.adapters.mongo")

_UPDATE_OPERATIONS = {"update", "updateMany", "findOneAndUpdate"}


def _require_pymongo() -> None:
    """Raise a helpful error when pymongo is not installed."""
    if not HAS_PYMONGO:
        msg = (
            "MongoDB adapter requires the 'pymongo' package. "
            "Install it with:  pip install unidb[mongo]"
        )
        raise DatabaseConnectionError(msg, code=ErrorCode.CONFIG_MISSING)


def build_url(cfg: MongoConfig) -> str:
    """Build a ``mongodb://`` URL from a :class:`MongoConfig`."""
    conn = cfg.connection
    auth = ""
    if conn.username:
        auth = f"{quote_plus(conn.username)}:{quote_plus(conn.password or '')}@"
    url = f"mongodb://{auth}{conn.host}:{cfg.port}/{conn.database}"

    query: dict[str, str] = {}
    if conn.auth_source:
        query["authSource"] = conn.auth_source
    elif conn.username:
        query["authSource"] = "admin"
    if cfg.options.replica_set:
        query["replicaSet"] = cfg.options.replica_set
    if query:
        url += "?" + urlencode(query)
    return url


def wrap_update(update: Any) -> Any:
    """Wrap a plain field mapping in ``$set``; operator documents pass through."""
    if isinstance(update, Mapping) and any(str(k).startswith("$") for k in update):
        return update
    if isinstance(update, Sequence) and not isinstance(update, (str, bytes)):
        # Aggregation-pipeline update
        return list(update)
    return {"$set": dict(update or {})}


_ListenerBase: Any = monitoring.ConnectionPoolListener if HAS_PYMONGO else object


class PoolTracker(_ListenerBase):
    """Counts connection-pool events so pool status can be reported live.

    Counters aggregate over every server the client talks to.
    """

    def __init__(self) -> None:
        self.open = 0
        self.checked_out = 0
        self.waiting = 0

    def snapshot(self) -> PoolStatus:
        total = max(self.open, 0)
        active = min(max(self.checked_out, 0), total)
        return PoolStatus(
            total=total, active=active, idle=total - active, waiting=max(self.waiting, 0)
        )

    def pool_created(self, event: Any) -> None:
        pass

    def pool_ready(self, event: Any) -> None:
        pass

    def pool_cleared(self, event: Any) -> None:
        pass

    def pool_closed(self, event: Any) -> None:
        pass

    def connection_created(self, event: Any) -> None:
        self.open += 1

    def connection_ready(self, event: Any) -> None:
        pass

    def connection_closed(self, event: Any) -> None:
        self.open -= 1

    def connection_check_out_started(self, event: Any) -> None:
        self.waiting += 1

    def connection_check_out_failed(self, event: Any) -> None:
        self.waiting -= 1

    def connection_checked_out(self, event: Any) -> None:
        self.waiting -= 1
        self.checked_out += 1

    def connection_checked_in(self, event: Any) -> None:
        self.checked_out -= 1


def _unsupported(operation: str, connection: str | None) -> UnsupportedOperationError:
    return UnsupportedOperationError(
        f"MongoDB does not support {operation}",
        connection=connection,
    )


class MongoAdapter(DatabaseAdapter):
    kind = BackendKind.MONGO

    def __init__(self) -> None:
        _require_pymongo()
        super().__init__()
        self._client: Any = None
        self._db: Any = None
        self._tracker: PoolTracker | None = None
        self._supports_transactions: bool | None = None
        self._scope: ContextVar[MongoTransaction | None] = ContextVar(
            f"unidb_mongo_scope_{id(self):x}", default=None
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _open(self, cfg: MongoConfig) -> None:
        options = cfg.options
        direct = options.direct_connection
        if direct is None:
            direct = bool(options.replica_set)
        tracker = PoolTracker()
        self._tracker = tracker
        self._client = AsyncMongoClient(
            build_url(cfg),
            serverSelectionTimeoutMS=int(options.server_selection_timeout * 1000),
            connectTimeoutMS=int(options.connect_timeout * 1000),
            socketTimeoutMS=int(options.socket_timeout * 1000),
            maxPoolSize=options.max_pool_size,
            minPoolSize=options.min_pool_size,
            directConnection=direct,
            event_listeners=[tracker],
        )
        await self._client.admin.command("ping")
        self._db = self._client[cfg.connection.database]

    async def _discard(self) -> None:
        client, self._client = self._client, None
        self._db = None
        self._supports_transactions = None
        if client is not None:
            try:
                await client.close()
            except Exception:
                logger.debug("Discarding half-open MongoDB client failed", exc_info=True)

    async def _shutdown(self) -> None:
        client, self._client = self._client, None
        self._db = None
        self._supports_transactions = None
        if client is not None:
            await client.close()

    def _active_scope(self) -> MongoTransaction | None:
        scope = self._scope.get()
        if scope is not None and scope.active:
            return scope
        return None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(self, statement: str, params: Any = None) -> list[dict[str, Any]]:
        """Find (or aggregate) documents in the *statement* collection."""
        scope = self._active_scope()
        return await self._query_with(scope.session if scope else None, statement, params)

    async def _query_with(self, session: Any, collection: str, params: Any) -> list[dict[str, Any]]:
        self._require_connected()
        doc_query = (
            params if isinstance(params, DocumentQuery) else DocumentQuery(filter=dict(params or {}))
        )
        label = f"db.{collection}.{'aggregate' if doc_query.pipeline is not None else 'find'}"
        started = time.perf_counter()
        try:
            coll = self._db[collection]
            if doc_query.pipeline is not None:
                cursor = await coll.aggregate(list(doc_query.pipeline), session=session)
            else:
                cursor = coll.find(
                    doc_query.filter,
                    projection=doc_query.projection,
                    sort=doc_query.sort or None,
                    skip=doc_query.skip or 0,
                    limit=doc_query.limit or 0,
                    session=session,
                )
            docs = await cursor.to_list(None)
        except Exception as exc:
            self._report(LogEventType.ERROR, "query", label, doc_query.to_dict(), started, exc)
            raise QueryError(
                str(exc), sql=label, params=doc_query.to_dict(), connection=self.name,
                original_error=exc,
            ) from exc
        self._report(LogEventType.QUERY, "query", label, doc_query.to_dict(), started)
        return [dict(d) for d in docs]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def execute(self, statement: str, params: Any = None) -> ExecuteResult:
        """Run ``"<operation> <collection>"`` with *params* as its data."""
        scope = self._active_scope()
        return await self._execute_with(scope.session if scope else None, statement, params)

    async def _execute_with(self, session: Any, statement: str, data: Any) -> ExecuteResult:
        self._require_connected()
        parts = statement.split()
        if len(parts) != 2:
            msg = "MongoDB execute expects '<operation> <collection>'"
            raise ExecuteError(msg, sql=statement, params=data, connection=self.name)
        operation, collection = parts
        label = f"db.{collection}.{operation}"
        started = time.perf_counter()
        try:
            result = await self._dispatch(self._db[collection], operation, data, session)
        except ExecuteError:
            raise
        except Exception as exc:
            self._report(LogEventType.ERROR, "execute", label, data, started, exc)
            raise ExecuteError(
                str(exc), sql=label, params=data, connection=self.name, original_error=exc
            ) from exc
        self._report(LogEventType.EXECUTE, "execute", label, data, started)
        return result

    async def _dispatch(self, coll: Any, operation: str, data: Any, session: Any) -> ExecuteResult:
        if operation == "insert":
            res = await coll.insert_one(dict(data), session=session)
            return ExecuteResult(affected_rows=1, last_insert_id=res.inserted_id)

        if operation == "insertMany":
            res = await coll.insert_many([dict(d) for d in data], session=session)
            ids = list(res.inserted_ids)
            return ExecuteResult(
                affected_rows=len(ids),
                rows=[{"_id": i} for i in ids],
                last_insert_id=ids[-1] if ids else None,
            )

        if operation == "createCollection":
            await self._db.create_collection(coll.name, session=session)
            return ExecuteResult()

        if operation == "drop":
            await coll.drop(session=session)
            return ExecuteResult()

        data = dict(data or {})
        flt = dict(data.get("filter") or {})
        options = dict(data.get("options") or {})
        upsert = bool(options.get("upsert", False))

        if operation in _UPDATE_OPERATIONS:
            update = wrap_update(data.get("update"))
            if operation == "findOneAndUpdate":
                doc = await coll.find_one_and_update(
                    flt, update, upsert=upsert, session=session,
                    return_document=self._return_document(options),
                )
                return ExecuteResult(affected_rows=int(doc is not None), rows=[doc] if doc else [])
            method = coll.update_one if operation == "update" else coll.update_many
            res = await method(flt, update, upsert=upsert, session=session)
            return ExecuteResult(
                affected_rows=res.modified_count + (1 if res.upserted_id is not None else 0),
                last_insert_id=res.upserted_id,
            )

        if operation == "findOneAndReplace":
            doc = await coll.find_one_and_replace(
                flt, dict(data.get("replacement") or {}), upsert=upsert, session=session,
                return_document=self._return_document(options),
            )
            return ExecuteResult(affected_rows=int(doc is not None), rows=[doc] if doc else [])

        if operation == "findOneAndDelete":
            doc = await coll.find_one_and_delete(flt, session=session)
            return ExecuteResult(affected_rows=int(doc is not None), rows=[doc] if doc else [])

        if operation in ("delete", "deleteMany"):
            method = coll.delete_one if operation == "delete" else coll.delete_many
            res = await method(flt, session=session)
            return ExecuteResult(affected_rows=res.deleted_count)

        msg = f"Unknown MongoDB operation: {operation}"
        raise ExecuteError(msg, sql=operation, params=data, connection=self.name)

    @staticmethod
    def _return_document(options: Mapping[str, Any]) -> Any:
        after = str(options.get("return_document", options.get("returnDocument", "before")))
        return ReturnDocument.AFTER if after.lower() == "after" else ReturnDocument.BEFORE

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def transaction(self, fn: TransactionCallback[T]) -> T:
        """Run *fn* in a multi-document transaction.

        Nested calls share the outer session.  MongoDB has no partial
        rollback, so a failed nested call marks the whole transaction
        rollback-only: the outermost scope aborts even when the caller
        catches the nested error.

        Raises:
            TransactionError: The deployment is a standalone server, the
                transaction could not be started or committed, or a nested
                call failed and the transaction was aborted.
        """
        scope = self._active_scope()
        if scope is not None:
            return await scope.transaction(fn)
        self._require_connected()
        await self._ensure_transactions_supported()
        self._open_transactions += 1
        try:
            return await self._outermost(fn)
        finally:
            self._open_transactions -= 1

    async def _outermost(self, fn: TransactionCallback[T]) -> T:
        async with self._client.start_session() as session:
            try:
                await session.start_transaction()
            except Exception as exc:
                raise TransactionError(
                    f"Failed to start transaction: {exc}",
                    code=ErrorCode.TRANSACTION_BEGIN_FAILED,
                    connection=self.name,
                    original_error=exc,
                ) from exc

            tx = MongoTransaction(self, session)
            token = self._scope.set(tx)
            try:
                result = await invoke(fn, tx)
            except BaseException:
                tx._finish()
                await self._safe_abort(session)
                raise
            finally:
                self._scope.reset(token)

            tx._finish()
            if tx.rollback_only:
                await self._safe_abort(session)
                raise TransactionError(
                    "Transaction aborted: a nested transaction failed",
                    code=ErrorCode.TRANSACTION_FAILED,
                    connection=self.name,
                    original_error=tx.failure,
                ) from tx.failure
            try:
                await session.commit_transaction()
            except Exception as exc:
                raise TransactionError(
                    f"Failed to commit transaction: {exc}",
                    code=ErrorCode.TRANSACTION_COMMIT_FAILED,
                    connection=self.name,
                    original_error=exc,
                ) from exc
            return result

    async def _safe_abort(self, session: Any) -> None:
        try:
            await session.abort_transaction()
        except Exception:
            logger.warning("Abort failed", exc_info=True, extra={"connection": self.name})

    async def _ensure_transactions_supported(self) -> None:
        if self._supports_transactions is None:
            hello = await self._client.admin.command("hello")
            self._supports_transactions = "setName" in hello or hello.get("msg") == "isdbgrid"
        if not self._supports_transactions:
            raise TransactionError(
                "MongoDB transactions require a replica set or sharded cluster",
                code=ErrorCode.TRANSACTION_NOT_SUPPORTED,
                connection=self.name,
            )

    async def create_savepoint(self, name: str) -> None:
        raise _unsupported("savepoints", self.name)

    async def rollback_to_savepoint(self, name: str) -> None:
        raise _unsupported("savepoints", self.name)

    async def release_savepoint(self, name: str) -> None:
        raise _unsupported("savepoints", self.name)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def _ping(self) -> None:
        await self._client.admin.command("ping")

    def get_pool_status(self) -> PoolStatus:
        self._require_connected()
        return self._tracker.snapshot() if self._tracker else PoolStatus(total=0, active=0, idle=0)

    def get_database(self) -> Any:
        """Return the :class:`pymongo.asynchronous.database.AsyncDatabase`."""
        return self._db


class MongoTransaction(TransactionView):
    """Transaction-scoped view bound to one client session."""

    def __init__(self, adapter: MongoAdapter, session: Any) -> None:
        super().__init__(adapter)
        self._adapter: MongoAdapter = adapter
        self.session = session
        self.failure: BaseException | None = None

    @property
    def rollback_only(self) -> bool:
        """True once a nested call has failed; the transaction can only abort."""
        return self.failure is not None

    def get_database(self) -> Any:
        return self._adapter.get_database()

    async def query(self, statement: str, params: Any = None) -> list[dict[str, Any]]:
        self._require_active()
        return await self._adapter._query_with(self.session, statement, params)

    async def execute(self, statement: str, params: Any = None) -> ExecuteResult:
        self._require_active()
        return await self._adapter._execute_with(self.session, statement, params)

    async def transaction(self, fn: TransactionCallback[T]) -> T:
        self._require_active()
        try:
            return await invoke(fn, self)
        except BaseException as exc:
            if self.failure is None:
                self.failure = exc
            raise

    async def create_savepoint(self, name: str) -> None:
        raise _unsupported("savepoints", self.name)

    async def rollback_to_savepoint(self, name: str) -> None:
        raise _unsupported("savepoints", self.name)

    async def release_savepoint(self, name: str) -> None:
        raise _unsupported("savepoints", self.name)
