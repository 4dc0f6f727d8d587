# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Named registry of connected adapters.

The :class:`ConnectionManager` creates an adapter for each ``connect``
call, keeps it under a unique name (``"default"`` unless told otherwise)
and tears everything down serially on ``close_all``.  Closing pooled
backends concurrently has been seen to leak pool slots, so entries are
always closed one after the other and a failure on one entry is logged
without stopping the rest.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from types import TracebackType
from typing import Any

from unidb.adapters import create_adapter
from unidb.adapters.base import DatabaseAdapter
from unidb.core.constants import DEFAULT_CONNECTION_NAME, BackendKind
from unidb.core.exceptions import DatabaseConnectionError, ErrorCode, NotFoundError
from unidb.models.config import parse_config
from unidb.models.results import ConnectionStatus, HealthCheckResult
from unidb.query_logger import QueryLogger

logger = logging.getLogger("unidb.manager")

AdapterFactory = Callable[[BackendKind], DatabaseAdapter]


class ConnectionManager:
    """Owns adapters by name.

    Args:
        adapter_factory: Optional override used instead of
            :func:`~unidb.adapters.create_adapter`, mainly for tests.
        query_logger: Attached to every adapter this manager creates.
    """

    def __init__(
        self,
        adapter_factory: AdapterFactory | None = None,
        query_logger: QueryLogger | None = None,
    ) -> None:
        self._adapters: dict[str, DatabaseAdapter] = {}
        self._factory = adapter_factory
        self._query_logger = query_logger

    def set_adapter_factory(self, factory: AdapterFactory | None) -> None:
        """Override (or with ``None`` restore) how adapters are constructed."""
        self._factory = factory

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    async def connect(
        self, name: str = DEFAULT_CONNECTION_NAME, config: Any = None
    ) -> ConnectionStatus:
        """Create, connect and register an adapter under *name*.

        If *name* is already registered the new adapter is connected first;
        only then is the previous one closed and replaced.  When the new
        connection fails the previous entry is left untouched.

        Raises:
            DatabaseConnectionError: The config is invalid or connecting failed.
        """
        if config is None:
            raise DatabaseConnectionError(
                f"No configuration given for connection {name!r}",
                code=ErrorCode.CONFIG_MISSING,
                connection=name,
            )
        try:
            cfg = parse_config(config)
        except Exception as exc:
            raise DatabaseConnectionError(
                str(exc), code=ErrorCode.CONFIG_INVALID, connection=name
            ) from exc

        adapter = self._factory(cfg.kind) if self._factory else create_adapter(cfg.kind)
        adapter.name = name
        if self._query_logger is not None:
            adapter.set_query_logger(self._query_logger)
        await adapter.connect(cfg)

        previous = self._adapters.get(name)
        self._adapters[name] = adapter
        if previous is not None and previous is not adapter:
            try:
                await previous.close()
            except Exception:
                logger.warning("Failed to close replaced connection %r", name, exc_info=True)

        logger.info("Connection %r ready (%s)", name, cfg.kind.value)
        return self._status(name, adapter, cfg)

    @staticmethod
    def _status(name: str, adapter: DatabaseAdapter, cfg: Any) -> ConnectionStatus:
        return ConnectionStatus(
            name=name,
            kind=cfg.kind,
            connected=adapter.is_connected(),
            **cfg.display_fields(),
        )

    def get_connection(self, name: str = DEFAULT_CONNECTION_NAME) -> DatabaseAdapter:
        try:
            return self._adapters[name]
        except KeyError:
            raise NotFoundError(f"Connection {name!r} not found", connection=name) from None

    def has_connection(self, name: str = DEFAULT_CONNECTION_NAME) -> bool:
        return name in self._adapters

    def get_connection_names(self) -> list[str]:
        """Registered names in creation order."""
        return list(self._adapters)

    def get_status(self, name: str = DEFAULT_CONNECTION_NAME) -> ConnectionStatus:
        adapter = self.get_connection(name)
        return ConnectionStatus(
            name=name,
            kind=adapter.kind,
            connected=adapter.is_connected(),
            **(adapter.config.display_fields() if adapter.config is not None else {}),
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self, name: str | None = None) -> None:
        """Close one entry (errors propagate) or, with no name, every entry."""
        if name is None:
            await self.close_all()
            return
        adapter = self.get_connection(name)
        del self._adapters[name]
        await adapter.close()

    async def close_all(self) -> None:
        """Close every entry serially, logging and skipping failures."""
        for name in list(self._adapters):
            adapter = self._adapters.pop(name)
            try:
                await adapter.close()
            except Exception:
                logger.warning("Failed to close connection %r", name, exc_info=True)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, HealthCheckResult]:
        """Health-check every entry in creation order."""
        return {name: await adapter.health_check() for name, adapter in list(self._adapters.items())}

    async def __aenter__(self) -> ConnectionManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close_all()

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, name: object) -> bool:
        return name in self._adapters
