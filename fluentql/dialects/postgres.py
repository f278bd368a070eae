"""PostgreSQL dialect."""

import urllib.parse
from typing import Any, ClassVar

from .base import Dialect


class PostgresDialect(Dialect):
    """Dialect for PostgreSQL (scheme postgresql)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("postgresql", "postgres")
    PARAMSTYLE: ClassVar[str] = "format"

    def connect(self, url: str):
        import psycopg2
        parsed = urllib.parse.urlparse(url)
        connection = psycopg2.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port,
        )
        connection.autocommit = True
        return connection

    def driver_errors(self):
        import psycopg2
        return (psycopg2.Error,)

    def last_insert_id(self, raw_connection: Any, cursor: Any, primary_key: str) -> Any:
        # cursor.lastrowid is the row OID in psycopg2; ask the sequence instead.
        with raw_connection.cursor() as lookup:
            lookup.execute("SELECT LASTVAL()")
            return lookup.fetchone()[0]

    def interrupt(self, raw_connection: Any) -> None:
        raw_connection.cancel()
