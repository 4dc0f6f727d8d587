# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Zero-configuration entry point around a default :class:`ConnectionManager`.

Applications that do not want to pass a manager around can call
:func:`init_database` once at startup and :func:`close_database` at
shutdown.  Code that needs more than one registry should construct
:class:`~unidb.manager.ConnectionManager` instances directly.
"""

from __future__ import annotations

from typing import Any

from unidb.adapters.base import DatabaseAdapter
from unidb.core.config import Settings, get_settings
from unidb.core.constants import DEFAULT_CONNECTION_NAME
from unidb.core.exceptions import ConfigurationError
from unidb.manager import ConnectionManager
from unidb.models.results import ConnectionStatus
from unidb.query_logger import QueryLogger

_manager: ConnectionManager | None = None


async def init_database(
    config: Any = None,
    *,
    name: str = DEFAULT_CONNECTION_NAME,
    settings: Settings | None = None,
) -> ConnectionStatus:
    """Connect *name* on the default manager, creating the manager if needed.

    Without *config* the connection is built from :class:`Settings`
    (``UNIDB_DB_*`` environment variables), and a :class:`QueryLogger`
    configured from the same settings is attached.
    """
    global _manager

    if config is None:
        settings = settings or get_settings()
        config = settings.database_config()
        query_logger = QueryLogger.from_settings(settings)
    else:
        query_logger = None

    if _manager is None:
        _manager = ConnectionManager(query_logger=query_logger)
    return await _manager.connect(name, config)


def get_manager() -> ConnectionManager:
    """Return the default manager.

    Raises:
        ConfigurationError: If :func:`init_database` has not been called.
    """
    if _manager is None:
        raise ConfigurationError("Database not initialized. Call init_database() first.")
    return _manager


def get_database(name: str = DEFAULT_CONNECTION_NAME) -> DatabaseAdapter:
    """Return the adapter registered as *name* on the default manager."""
    return get_manager().get_connection(name)


def is_database_initialized(name: str = DEFAULT_CONNECTION_NAME) -> bool:
    return _manager is not None and _manager.has_connection(name)


async def close_database() -> None:
    """Close every default connection and drop the default manager."""
    global _manager

    manager, _manager = _manager, None
    if manager is not None:
        await manager.close_all()


def reset_database() -> None:
    """Forget the default manager without closing it (used by tests)."""
    global _manager
    _manager = None
