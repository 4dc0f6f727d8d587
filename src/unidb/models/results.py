# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Result records returned by adapters and the connection manager."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from unidb.core.constants import BackendKind


class PoolStatus(BaseModel):
    """Point-in-time occupancy of a connection pool."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(ge=0)
    active: int = Field(ge=0)
    idle: int = Field(ge=0)
    waiting: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_occupancy(self) -> PoolStatus:
        if self.active + self.idle > self.total:
            msg = (
                f"active ({self.active}) + idle ({self.idle}) "
                f"exceeds total ({self.total})"
            )
            raise ValueError(msg)
        return self


class HealthCheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    healthy: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    latency: float = Field(default=0.0, description="Round-trip time in milliseconds")
    error: str | None = None


class ExecuteResult(BaseModel):
    """Outcome of a write statement.

    ``rows`` is only set when the backend returned data from the mutation
    (``RETURNING``, ``findOneAndUpdate``), ``last_insert_id`` only when it
    exposes a generated identifier.
    """

    affected_rows: int = 0
    rows: list[dict[str, Any]] | None = None
    last_insert_id: Any | None = None


class ConnectionStatus(BaseModel):
    name: str
    kind: BackendKind
    connected: bool
    host: str | None = None
    database: str | None = None
    filename: str | None = None
