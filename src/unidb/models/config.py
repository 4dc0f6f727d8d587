# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Connection configuration models.

A configuration is a frozen record discriminated by its ``adapter`` field.
Input mappings may name the discriminator ``type`` or ``adapter`` and may
use any of the accepted aliases (``postgresql``, ``mysql``, ``sqlite``,
``mongodb``, ...); :func:`parse_config` turns such a mapping into the
matching typed model.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from unidb.core.constants import DEFAULT_PORTS, BackendKind, resolve_backend_kind
from unidb.core.exceptions import ConfigurationError


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class PoolOptions(_Frozen):
    """Pool sizing and connect-retry policy.

    Times are in seconds.  SQLite and MongoDB only honour the retry fields.
    """

    min: int = Field(default=1, ge=0)
    max: int = Field(default=10, ge=1)
    idle_timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> PoolOptions:
        if self.min > self.max:
            msg = f"pool.min ({self.min}) must not exceed pool.max ({self.max})"
            raise ValueError(msg)
        return self


class NetworkConnection(_Frozen):
    host: str = ""
    port: int | None = Field(default=None, gt=0, lt=65536)
    database: str = Field(default="", validation_alias=AliasChoices("database", "db"))
    username: str | None = Field(
        default=None, validation_alias=AliasChoices("username", "user")
    )
    password: str | None = Field(default=None, repr=False)


class MongoConnection(NetworkConnection):
    auth_source: str | None = Field(
        default=None, validation_alias=AliasChoices("auth_source", "authSource")
    )


class SQLiteConnection(_Frozen):
    filename: str = ""


class SQLiteOptions(_Frozen):
    readonly: bool = False
    timeout: float = Field(default=5.0, gt=0)


class MongoOptions(_Frozen):
    replica_set: str | None = Field(
        default=None, validation_alias=AliasChoices("replica_set", "replicaSet")
    )
    direct_connection: bool | None = Field(
        default=None, validation_alias=AliasChoices("direct_connection", "directConnection")
    )
    server_selection_timeout: float = Field(default=30.0, gt=0)
    connect_timeout: float = Field(default=5.0, gt=0)
    socket_timeout: float = Field(default=5.0, gt=0)
    max_pool_size: int = Field(default=10, ge=1)
    min_pool_size: int = Field(default=1, ge=0)


# ---------------------------------------------------------------------------
# Backend configurations
# ---------------------------------------------------------------------------


class _BackendConfig(_Frozen):
    pool: PoolOptions = Field(default_factory=PoolOptions)

    @model_validator(mode="before")
    @classmethod
    def _normalize_discriminator(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        data = dict(data)
        raw = data.pop("type", None)
        if "adapter" in data:
            raw = data["adapter"]
        if raw is None:
            return data
        kind = resolve_backend_kind(str(raw))
        data["adapter"] = kind.value if kind is not None else raw
        return data

    @property
    def kind(self) -> BackendKind:
        return BackendKind(self.adapter)  # type: ignore[attr-defined]

    def missing_fields(self) -> list[str]:
        """Return the names of required connection fields that are empty."""
        return []

    def display_fields(self) -> dict[str, str | None]:
        """Return the fields shown in a connection status snapshot."""
        return {}


class _NetworkConfig(_BackendConfig):
    connection: NetworkConnection = Field(default_factory=NetworkConnection)

    @property
    def port(self) -> int:
        return self.connection.port or DEFAULT_PORTS[self.kind]

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.connection.host:
            missing.append("connection.host")
        if not self.connection.database:
            missing.append("connection.database")
        return missing

    def display_fields(self) -> dict[str, str | None]:
        return {"host": self.connection.host, "database": self.connection.database}


class PostgresConfig(_NetworkConfig):
    adapter: Literal["sql-postgres"] = "sql-postgres"
    connect_timeout: float = Field(default=5.0, gt=0)


class MySQLConfig(_NetworkConfig):
    adapter: Literal["sql-mysql"] = "sql-mysql"
    connect_timeout: float = Field(default=10.0, gt=0)


class SQLiteConfig(_BackendConfig):
    adapter: Literal["sql-sqlite"] = "sql-sqlite"
    connection: SQLiteConnection = Field(default_factory=SQLiteConnection)
    options: SQLiteOptions = Field(default_factory=SQLiteOptions)

    def missing_fields(self) -> list[str]:
        return [] if self.connection.filename else ["connection.filename"]

    def display_fields(self) -> dict[str, str | None]:
        return {"filename": self.connection.filename}


class MongoConfig(_NetworkConfig):
    adapter: Literal["document-mongo"] = "document-mongo"
    connection: MongoConnection = Field(default_factory=MongoConnection)
    options: MongoOptions = Field(default_factory=MongoOptions)


ConnectionConfig = Annotated[
    PostgresConfig | MySQLConfig | SQLiteConfig | MongoConfig,
    Field(discriminator="adapter"),
]

_CONFIG_ADAPTER: TypeAdapter[Any] = TypeAdapter(ConnectionConfig)

_CONFIG_TYPES = (PostgresConfig, MySQLConfig, SQLiteConfig, MongoConfig)


def parse_config(value: Any) -> PostgresConfig | MySQLConfig | SQLiteConfig | MongoConfig:
    """Build a typed connection configuration.

    Args:
        value: A configuration model, or a mapping carrying the backend
            kind under ``type`` or ``adapter``.

    Raises:
        ConfigurationError: If the backend kind is missing or unknown, or
            any field fails validation.
    """
    if isinstance(value, _CONFIG_TYPES):
        return value
    if not isinstance(value, Mapping):
        msg = f"Connection config must be a mapping, got {type(value).__name__}"
        raise ConfigurationError(msg)

    raw = value.get("adapter", value.get("type"))
    if raw is None:
        raise ConfigurationError("Connection config is missing 'type' or 'adapter'")
    kind = resolve_backend_kind(str(raw))
    if kind is None:
        msg = f"Unknown database adapter: {raw!r}"
        raise ConfigurationError(msg)

    data = {k: v for k, v in value.items() if k not in ("type", "adapter")}
    data["adapter"] = kind.value
    try:
        return _CONFIG_ADAPTER.validate_python(data)
    except ValidationError as exc:
        msg = f"Invalid {kind.value} connection config: {exc}"
        raise ConfigurationError(msg) from exc
