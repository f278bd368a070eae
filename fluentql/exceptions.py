"""Exceptions raised by fluentql.

Soft failures (an empty update, an unscoped delete, a failed validation) are
reported through return values instead; see Builder.update() and Builder.delete().
"""

from __future__ import annotations

from typing import Any, Optional


class FluentQLError(Exception):
    """Base exception for all fluentql errors."""


class ConfigurationError(FluentQLError):
    """Malformed builder or association configuration. Never retried."""


class DriverError(FluentQLError):
    """A database driver failure, as reported by Connection."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.original = original


class QueryExecutionError(FluentQLError):
    """A statement failed to prepare or execute.

    Attributes:
        sql: The statement as sent to the driver (with placeholders).
        parameters: The bound parameters.
        rendered_sql: The statement with parameters interpolated, for logs only.
        original: The underlying driver exception.
    """

    def __init__(
        self,
        sql: str,
        parameters: tuple[Any, ...] = (),
        rendered_sql: str = "",
        original: Optional[BaseException] = None,
    ):
        reason = str(original) if original is not None else "unknown error"
        super().__init__(f"Query failed: {reason}\n{rendered_sql or sql}")
        self.sql = sql
        self.parameters = parameters
        self.rendered_sql = rendered_sql
        self.original = original


class QueryCancelledError(QueryExecutionError):
    """The statement deadline expired and the statement was interrupted."""

    def __init__(self, sql: str, parameters: tuple[Any, ...] = (),
                 rendered_sql: str = "", original: Optional[BaseException] = None,
                 timeout: Optional[float] = None):
        super().__init__(sql, parameters, rendered_sql, original)
        self.timeout = timeout


class TransactionError(FluentQLError):
    """Invalid use of a transaction scope."""


__all__ = [
    "FluentQLError",
    "ConfigurationError",
    "DriverError",
    "QueryExecutionError",
    "QueryCancelledError",
    "TransactionError",
]
