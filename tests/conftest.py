# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Shared test fixtures and configuration."""

from __future__ import annotations

import logging

import pytest

from unidb.adapters.sqlite import SQLiteAdapter

MEMORY_CONFIG = {
    "type": "sqlite",
    "connection": {"filename": ":memory:"},
    "pool": {"max_retries": 0, "retry_delay": 0},
}


@pytest.fixture(autouse=True)
def _reset_default_database():
    """Reset the default manager singleton between tests."""
    from unidb.database import reset_database

    reset_database()
    yield
    reset_database()


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers installed by ``setup_logging`` (e.g. by CLI commands)."""
    yield
    root = logging.getLogger("unidb")
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


@pytest.fixture
def memory_config() -> dict:
    return dict(MEMORY_CONFIG)


@pytest.fixture
async def sqlite_adapter():
    """A connected in-memory SQLite adapter with a ``users`` table."""
    adapter = SQLiteAdapter()
    await adapter.connect(MEMORY_CONFIG)
    await adapter.execute(
        "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL, age INTEGER)"
    )
    yield adapter
    await adapter.close()
