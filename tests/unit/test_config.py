# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for connection config models and environment settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from unidb.core.config import Settings
from unidb.core.constants import BackendKind
from unidb.core.exceptions import ConfigurationError
from unidb.models.config import (
    MongoConfig,
    MySQLConfig,
    PostgresConfig,
    SQLiteConfig,
    parse_config,
)

# ---------------------------------------------------------------------------
# parse_config
# ---------------------------------------------------------------------------


class TestParseConfig:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("postgresql", PostgresConfig),
            ("postgres", PostgresConfig),
            ("sql-postgres", PostgresConfig),
            ("mysql", MySQLConfig),
            ("MariaDB", MySQLConfig),
            ("sqlite", SQLiteConfig),
            ("mongodb", MongoConfig),
            ("document-mongo", MongoConfig),
        ],
    )
    def test_aliases(self, raw: str, expected: type) -> None:
        cfg = parse_config({"type": raw})
        assert isinstance(cfg, expected)

    def test_adapter_key_is_accepted(self) -> None:
        cfg = parse_config({"adapter": "sql-sqlite", "connection": {"filename": "app.db"}})
        assert cfg.kind is BackendKind.SQLITE
        assert cfg.connection.filename == "app.db"

    def test_model_instance_passes_through(self) -> None:
        cfg = SQLiteConfig(connection={"filename": ":memory:"})
        assert parse_config(cfg) is cfg

    def test_missing_kind(self) -> None:
        with pytest.raises(ConfigurationError, match="missing 'type' or 'adapter'"):
            parse_config({"connection": {"host": "db"}})

    def test_unknown_kind(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown database adapter"):
            parse_config({"type": "oracle"})

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            parse_config("sqlite://x.db")

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid sql-sqlite"):
            parse_config({"type": "sqlite", "connection": {"filename": "a.db", "colour": "red"}})

    def test_pool_bounds(self) -> None:
        with pytest.raises(ConfigurationError, match="must not exceed"):
            parse_config({"type": "postgres", "pool": {"min": 5, "max": 2}})

    def test_connection_aliases(self) -> None:
        cfg = parse_config(
            {"type": "postgres", "connection": {"host": "db", "db": "app", "user": "svc"}}
        )
        assert cfg.connection.database == "app"
        assert cfg.connection.username == "svc"

    def test_mongo_auth_source_alias(self) -> None:
        cfg = parse_config(
            {"type": "mongodb", "connection": {"host": "m", "database": "d", "authSource": "ops"}}
        )
        assert cfg.connection.auth_source == "ops"


# ---------------------------------------------------------------------------
# Model behaviour
# ---------------------------------------------------------------------------


class TestModels:
    def test_frozen(self) -> None:
        cfg = parse_config({"type": "sqlite", "connection": {"filename": "a.db"}})
        with pytest.raises(ValidationError):
            cfg.connection.filename = "b.db"  # type: ignore[misc]

    def test_defaults(self) -> None:
        cfg = parse_config({"type": "mysql", "connection": {"host": "h", "database": "d"}})
        assert cfg.port == 3306
        assert cfg.pool.min == 1
        assert cfg.pool.max == 10
        assert cfg.pool.max_retries == 3
        assert cfg.connect_timeout == 10.0

    def test_explicit_port(self) -> None:
        cfg = parse_config({"type": "postgres", "connection": {"host": "h", "port": 6543}})
        assert cfg.port == 6543

    def test_missing_fields_network(self) -> None:
        cfg = parse_config({"type": "postgres"})
        assert cfg.missing_fields() == ["connection.host", "connection.database"]

    def test_missing_fields_sqlite(self) -> None:
        assert parse_config({"type": "sqlite"}).missing_fields() == ["connection.filename"]

    def test_password_hidden_from_repr(self) -> None:
        cfg = parse_config(
            {"type": "postgres", "connection": {"host": "h", "database": "d", "password": "s3cret"}}
        )
        assert "s3cret" not in repr(cfg)

    def test_equal_configs_compare_equal(self) -> None:
        raw = {"type": "sqlite", "connection": {"filename": "a.db"}}
        assert parse_config(raw) == parse_config(dict(raw))

    def test_display_fields(self) -> None:
        cfg = parse_config({"type": "mongodb", "connection": {"host": "m", "database": "d"}})
        assert cfg.display_fields() == {"host": "m", "database": "d"}


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_sqlite_defaults(self) -> None:
        settings = Settings(_env_file=None)
        cfg = parse_config(settings.database_config())
        assert isinstance(cfg, SQLiteConfig)
        assert cfg.connection.filename == "unidb.db"

    def test_network_backend_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UNIDB_DB_ADAPTER", "PostgreSQL")
        monkeypatch.setenv("UNIDB_DB_HOST", "db.internal")
        monkeypatch.setenv("UNIDB_DB_NAME", "app")
        monkeypatch.setenv("UNIDB_DB_USER", "svc")
        monkeypatch.setenv("UNIDB_DB_PASSWORD", "s3cret")
        monkeypatch.setenv("UNIDB_POOL_MAX", "4")

        settings = Settings(_env_file=None)
        assert settings.db_adapter == "postgresql"
        cfg = parse_config(settings.database_config())
        assert isinstance(cfg, PostgresConfig)
        assert cfg.connection.host == "db.internal"
        assert cfg.connection.password == "s3cret"
        assert cfg.port == 5432
        assert cfg.pool.max == 4

    def test_replica_set_option(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UNIDB_DB_ADAPTER", "mongodb")
        monkeypatch.setenv("UNIDB_DB_NAME", "app")
        monkeypatch.setenv("UNIDB_DB_REPLICA_SET", "rs0")
        cfg = parse_config(Settings(_env_file=None).database_config())
        assert isinstance(cfg, MongoConfig)
        assert cfg.options.replica_set == "rs0"

    def test_empty_credentials_become_none(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("UNIDB_DB_ADAPTER", "mysql")
        config = Settings(_env_file=None).database_config()
        assert config["connection"]["username"] is None
        assert config["connection"]["password"] is None
