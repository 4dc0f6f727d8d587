# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Enumerations and defaults shared across adapters."""

from enum import StrEnum


class BackendKind(StrEnum):
    POSTGRES = "sql-postgres"
    MYSQL = "sql-mysql"
    SQLITE = "sql-sqlite"
    MONGO = "document-mongo"


class AdapterState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


class LogEventType(StrEnum):
    QUERY = "query"
    EXECUTE = "execute"
    ERROR = "error"


class LogLevelFilter(StrEnum):
    ALL = "all"
    ERROR = "error"
    SLOW = "slow"


BACKEND_ALIASES: dict[str, BackendKind] = {
    "sql-postgres": BackendKind.POSTGRES,
    "postgresql": BackendKind.POSTGRES,
    "postgres": BackendKind.POSTGRES,
    "sql-mysql": BackendKind.MYSQL,
    "mysql": BackendKind.MYSQL,
    "mariadb": BackendKind.MYSQL,
    "sql-sqlite": BackendKind.SQLITE,
    "sqlite": BackendKind.SQLITE,
    "sqlite3": BackendKind.SQLITE,
    "document-mongo": BackendKind.MONGO,
    "mongodb": BackendKind.MONGO,
    "mongo": BackendKind.MONGO,
}

# Placeholder dialect of each SQL backend
SQL_DIALECTS: dict[BackendKind, str] = {
    BackendKind.POSTGRES: "postgres",
    BackendKind.MYSQL: "mysql",
    BackendKind.SQLITE: "sqlite",
}

DEFAULT_PORTS: dict[BackendKind, int] = {
    BackendKind.POSTGRES: 5432,
    BackendKind.MYSQL: 3306,
    BackendKind.MONGO: 27017,
}

DEFAULT_CONNECTION_NAME = "default"
MIGRATIONS_TABLE = "migrations"

SLOW_QUERY_THRESHOLD_MS = 1000.0
QUERY_LOG_MAX_ENTRIES = 1000


def resolve_backend_kind(value: str) -> BackendKind | None:
    """Map a discriminator value or alias to a :class:`BackendKind`."""
    return BACKEND_ALIASES.get(value.strip().lower())
