# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Backend adapters and the factory that selects one by backend kind."""

from __future__ import annotations

from typing import assert_never

from unidb.adapters.base import DatabaseAdapter, TransactionView
from unidb.core.constants import BackendKind, resolve_backend_kind
from unidb.core.exceptions import ConfigurationError


def create_adapter(kind: BackendKind | str) -> DatabaseAdapter:
    """Construct an unconnected adapter for *kind* (a kind value or alias).

    Driver modules are imported lazily so only the selected backend's
    driver has to be installed.

    Raises:
        ConfigurationError: If *kind* is not a known backend.
    """
    resolved = kind if isinstance(kind, BackendKind) else resolve_backend_kind(kind)
    if resolved is None:
        msg = f"Unknown database adapter: {kind!r}"
        raise ConfigurationError(msg)

    match resolved:
        case BackendKind.POSTGRES:
            from unidb.adapters.postgres import PostgresAdapter

            return PostgresAdapter()
        case BackendKind.MYSQL:
            from unidb.adapters.mysql import MySQLAdapter

            return MySQLAdapter()
        case BackendKind.SQLITE:
            from unidb.adapters.sqlite import SQLiteAdapter

            return SQLiteAdapter()
        case BackendKind.MONGO:
            from unidb.adapters.mongo import MongoAdapter

            return MongoAdapter()
        case _:
            assert_never(resolved)


__all__ = ["DatabaseAdapter", "TransactionView", "create_adapter"]
