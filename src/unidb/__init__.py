# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""unidb - uniform async database access with nested transactions."""

__version__ = "0.1.0"

from unidb.adapters import DatabaseAdapter, TransactionView, create_adapter
from unidb.core.constants import BackendKind
from unidb.core.exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
    ErrorCode,
    ExecuteError,
    NotConnectedError,
    NotFoundError,
    QueryError,
    TransactionError,
    UnidbError,
    UnsupportedOperationError,
)
from unidb.database import close_database, get_database, get_manager, init_database
from unidb.manager import ConnectionManager
from unidb.models import (
    ConnectionStatus,
    ExecuteResult,
    HealthCheckResult,
    PoolStatus,
    parse_config,
)
from unidb.query.translator import DocumentQuery, SqlFragment, build_select, translate
from unidb.query_logger import QueryLogEntry, QueryLogger

__all__ = [
    "BackendKind",
    "ConfigurationError",
    "ConnectionManager",
    "ConnectionStatus",
    "DatabaseAdapter",
    "DatabaseConnectionError",
    "DatabaseError",
    "DocumentQuery",
    "ErrorCode",
    "ExecuteError",
    "ExecuteResult",
    "HealthCheckResult",
    "NotConnectedError",
    "NotFoundError",
    "PoolStatus",
    "QueryError",
    "QueryLogEntry",
    "QueryLogger",
    "SqlFragment",
    "TransactionError",
    "TransactionView",
    "UnidbError",
    "UnsupportedOperationError",
    "__version__",
    "build_select",
    "close_database",
    "create_adapter",
    "get_database",
    "get_manager",
    "init_database",
    "parse_config",
    "translate",
]
