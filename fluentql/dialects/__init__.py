"""Database dialects: SQLite, MySQL and PostgreSQL, looked up by URL scheme."""

from .base import Dialect, qmark_to_format
from .sqlite import SqliteDialect
from .mysql import MysqlDialect
from .postgres import PostgresDialect

_DIALECTS_BY_SCHEME: dict[str, type[Dialect]] = {
    scheme: dialect_cls
    for dialect_cls in (SqliteDialect, MysqlDialect, PostgresDialect)
    for scheme in dialect_cls.SUPPORTED_SCHEMA
}


def get_dialect_for_scheme(scheme: str) -> Dialect:
    """Return a Dialect for a URL scheme; a driver suffix is ignored (``postgresql+psycopg2``)."""
    base_scheme = (scheme or "").partition("+")[0].lower()
    try:
        return _DIALECTS_BY_SCHEME[base_scheme]()
    except KeyError:
        raise ValueError(f"Unsupported database scheme: {scheme}") from None


__all__ = [
    "Dialect",
    "SqliteDialect",
    "MysqlDialect",
    "PostgresDialect",
    "get_dialect_for_scheme",
    "qmark_to_format",
]
