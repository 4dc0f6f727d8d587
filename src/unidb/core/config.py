# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Application configuration via environment variables and .env files."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from unidb.core.constants import QUERY_LOG_MAX_ENTRIES, SLOW_QUERY_THRESHOLD_MS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="UNIDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
    )

    # Default connection
    db_adapter: str = "sqlite"
    db_host: str = "localhost"
    db_port: int | None = None
    db_name: str = ""
    db_user: str = ""
    db_password: str = ""
    db_filename: str = "unidb.db"
    db_replica_set: str = ""

    # Pool / retry policy
    pool_min: int = 1
    pool_max: int = 10
    pool_idle_timeout: float = 30.0
    connect_max_retries: int = 3
    connect_retry_delay: float = 1.0

    # Query log
    query_log_enabled: bool = True
    query_log_level: str = "all"  # "all", "error" or "slow"
    slow_query_threshold_ms: float = SLOW_QUERY_THRESHOLD_MS
    query_log_max: int = QUERY_LOG_MAX_ENTRIES

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("db_adapter", "query_log_level", "log_format", mode="before")
    @classmethod
    def _lowercase(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    def database_config(self) -> dict[str, Any]:
        """Return the default connection config as a mapping for ``parse_config``."""
        pool = {
            "min": self.pool_min,
            "max": self.pool_max,
            "idle_timeout": self.pool_idle_timeout,
            "max_retries": self.connect_max_retries,
            "retry_delay": self.connect_retry_delay,
        }
        if self.db_adapter in ("sqlite", "sqlite3", "sql-sqlite"):
            return {
                "type": self.db_adapter,
                "connection": {"filename": self.db_filename},
                "pool": pool,
            }

        connection: dict[str, Any] = {
            "host": self.db_host,
            "port": self.db_port,
            "database": self.db_name,
            "username": self.db_user or None,
            "password": self.db_password or None,
        }
        config: dict[str, Any] = {"type": self.db_adapter, "connection": connection, "pool": pool}
        if self.db_replica_set:
            config["options"] = {"replica_set": self.db_replica_set}
        return config


def get_settings() -> Settings:
    return Settings()
