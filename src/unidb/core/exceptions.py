# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Custom exception hierarchy for unidb.

Every adapter failure is raised as a :class:`DatabaseError` subclass that
keeps the driver's native exception both as ``__cause__`` and as
``original_error``, so callers can inspect the real cause without
depending on a particular driver.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Numeric error codes grouped by family (1xxx connection ... 9xxx unknown)."""

    # Connection
    CONNECTION_FAILED = "1001"
    CONNECTION_TIMEOUT = "1002"
    CONNECTION_REFUSED = "1003"
    CONNECTION_LOST = "1004"
    NOT_CONNECTED = "1005"

    # Query
    QUERY_FAILED = "2001"
    QUERY_TIMEOUT = "2002"
    QUERY_SYNTAX_ERROR = "2003"
    PARAMETER_MISMATCH = "2004"

    # Execute
    EXECUTE_FAILED = "3001"
    CONSTRAINT_VIOLATION = "3002"
    DUPLICATE_KEY = "3003"

    # Transaction
    TRANSACTION_FAILED = "4001"
    TRANSACTION_BEGIN_FAILED = "4002"
    TRANSACTION_COMMIT_FAILED = "4003"
    SAVEPOINT_FAILED = "4004"
    TRANSACTION_STATE = "4005"
    TRANSACTION_NOT_SUPPORTED = "4006"

    # Configuration
    CONFIG_INVALID = "5001"
    CONFIG_MISSING = "5002"

    UNSUPPORTED_OPERATION = "6001"
    CONNECTION_NOT_FOUND = "7001"

    UNKNOWN = "9001"


_ERROR_TYPES: dict[str, str] = {
    "1": "connection",
    "2": "query",
    "3": "execute",
    "4": "transaction",
    "5": "config",
    "6": "unsupported",
    "7": "not_found",
}


class UnidbError(Exception):
    """Base exception for all unidb errors."""


class ConfigurationError(UnidbError):
    """Invalid or missing configuration."""


class DatabaseError(UnidbError):
    """An adapter operation failed.

    Args:
        message: Human-readable description.  When an *original_error* is
            given its message is preserved verbatim in the text.
        code: Error code, defaulting to the subclass's ``default_code``.
        sql: The statement (or command) that was being executed.
        params: The bound parameters.
        connection: Name of the connection the operation ran on.
        original_error: The driver's native exception.
    """

    default_code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        sql: str | None = None,
        params: Sequence[Any] | Any | None = None,
        connection: str | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.sql = sql
        self.params = params
        self.connection = connection
        self.original_error = original_error

    @property
    def error_type(self) -> str:
        return _ERROR_TYPES.get(self.code.value[0], "unknown")

    def details(self) -> dict[str, Any]:
        """Return the diagnostic fields that are set."""
        info: dict[str, Any] = {"code": self.code.value, "type": self.error_type}
        if self.sql is not None:
            info["sql"] = self.sql
        if self.params is not None:
            info["params"] = self.params
        if self.connection is not None:
            info["connection"] = self.connection
        if self.original_error is not None:
            info["original_error"] = {
                "type": type(self.original_error).__name__,
                "message": str(self.original_error),
            }
        return info

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "details": self.details(),
        }


class NotConnectedError(DatabaseError):
    """Operation attempted on an adapter that is not connected."""

    default_code = ErrorCode.NOT_CONNECTED


class DatabaseConnectionError(DatabaseError):
    """Connecting to the backend failed."""

    default_code = ErrorCode.CONNECTION_FAILED


class QueryError(DatabaseError):
    """The backend rejected a read statement."""

    default_code = ErrorCode.QUERY_FAILED


class ExecuteError(DatabaseError):
    """The backend rejected a write statement."""

    default_code = ErrorCode.EXECUTE_FAILED


class TransactionError(DatabaseError):
    """Transaction or savepoint discipline was violated."""

    default_code = ErrorCode.TRANSACTION_FAILED


class UnsupportedOperationError(DatabaseError):
    """The backend does not offer the requested capability."""

    default_code = ErrorCode.UNSUPPORTED_OPERATION


class NotFoundError(DatabaseError):
    """No connection is registered under the requested name."""

    default_code = ErrorCode.CONNECTION_NOT_FOUND
