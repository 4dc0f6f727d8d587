# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Query and health-check observer.

A :class:`QueryLogger` is owned by the caller and attached to adapters
with ``set_query_logger``.  Each statement that reaches the backend is
reported as a :class:`QueryLogEntry`.  Entries are kept in a bounded
in-memory buffer and forwarded to the ``unidb.query`` logger: errors at
ERROR, slow statements at WARNING, everything else at DEBUG (INFO when
``debug`` is on).
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from unidb.core.constants import (
    QUERY_LOG_MAX_ENTRIES,
    SLOW_QUERY_THRESHOLD_MS,
    LogEventType,
    LogLevelFilter,
)

if TYPE_CHECKING:
    from unidb.core.config import Settings
    from unidb.models.results import HealthCheckResult


@dataclass(slots=True)
class QueryLogEntry:
    type: LogEventType
    operation: str
    sql: str
    params: Any = None
    duration: float = 0.0  # milliseconds
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    error: str | None = None
    connection: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "operation": self.operation,
            "sql": self.sql,
            "params": self.params,
            "duration": round(self.duration, 3),
            "timestamp": self.timestamp.isoformat(),
            "error": self.error,
            "connection": self.connection,
        }


class QueryLogger:
    """Bounded recorder of query/execute/error events.

    Args:
        enabled: When false every event is dropped.
        level: ``all`` records everything, ``error`` only failures,
            ``slow`` failures plus statements at or above the threshold.
        slow_threshold_ms: Duration at which a statement counts as slow.
        max_logs: Maximum number of entries kept; older ones are dropped.
        debug: Forward normal entries at INFO instead of DEBUG.
        logger: Destination logger, ``unidb.query`` by default.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        level: LogLevelFilter | str = LogLevelFilter.ALL,
        slow_threshold_ms: float = SLOW_QUERY_THRESHOLD_MS,
        max_logs: int = QUERY_LOG_MAX_ENTRIES,
        debug: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.enabled = enabled
        self.level = LogLevelFilter(level)
        self.slow_threshold_ms = slow_threshold_ms
        self.debug = debug
        self._logger = logger or logging.getLogger("unidb.query")
        self._logs: deque[QueryLogEntry] = deque(maxlen=max_logs)
        self._health: deque[tuple[str | None, HealthCheckResult]] = deque(maxlen=max_logs)

    @classmethod
    def from_settings(cls, settings: Settings) -> QueryLogger:
        return cls(
            enabled=settings.query_log_enabled,
            level=settings.query_log_level,
            slow_threshold_ms=settings.slow_query_threshold_ms,
            max_logs=settings.query_log_max,
        )

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def is_slow(self, entry: QueryLogEntry) -> bool:
        return entry.duration >= self.slow_threshold_ms

    def log(self, entry: QueryLogEntry) -> None:
        if not self.enabled or not self._accepts(entry):
            return
        self._logs.append(entry)
        self._forward(entry)

    def log_health_check(
        self, result: HealthCheckResult, connection: str | None = None
    ) -> None:
        if not self.enabled:
            return
        self._health.append((connection, result))
        if result.healthy:
            self._logger.debug(
                "Health check passed in %.1fms",
                result.latency,
                extra={"connection": connection},
            )
        else:
            self._logger.warning(
                "Health check failed: %s",
                result.error,
                extra={"connection": connection},
            )

    def _accepts(self, entry: QueryLogEntry) -> bool:
        if entry.type is LogEventType.ERROR or self.level is LogLevelFilter.ALL:
            return True
        if self.level is LogLevelFilter.SLOW:
            return self.is_slow(entry)
        return False

    def _forward(self, entry: QueryLogEntry) -> None:
        extra = {"connection": entry.connection, "duration_ms": round(entry.duration, 3)}
        if entry.type is LogEventType.ERROR:
            self._logger.error(
                "%s failed after %.1fms: %s | %s",
                entry.operation,
                entry.duration,
                entry.error,
                entry.sql,
                extra=extra,
            )
        elif self.is_slow(entry):
            self._logger.warning(
                "Slow %s (%.1fms): %s", entry.operation, entry.duration, entry.sql, extra=extra
            )
        else:
            self._logger.log(
                logging.INFO if self.debug else logging.DEBUG,
                "%s (%.1fms): %s",
                entry.operation,
                entry.duration,
                entry.sql,
                extra=extra,
            )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_logs(self, limit: int | None = None) -> list[QueryLogEntry]:
        """Return recorded entries, oldest first, optionally only the last *limit*."""
        logs = list(self._logs)
        return logs[-limit:] if limit else logs

    def get_health_checks(self) -> list[tuple[str | None, HealthCheckResult]]:
        return list(self._health)

    def clear(self) -> None:
        self._logs.clear()
        self._health.clear()
