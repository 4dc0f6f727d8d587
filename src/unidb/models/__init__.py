# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Configuration and result models for unidb."""

from unidb.models.config import (
    ConnectionConfig,
    MongoConfig,
    MySQLConfig,
    PoolOptions,
    PostgresConfig,
    SQLiteConfig,
    parse_config,
)
from unidb.models.results import ConnectionStatus, ExecuteResult, HealthCheckResult, PoolStatus
