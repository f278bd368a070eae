"""SQLite dialect."""

import logging
import urllib.parse

from typing import Any, ClassVar, Optional

from .base import Dialect

logger = logging.getLogger(__name__)


class SqliteDialect(Dialect):
    """Dialect for SQLite (scheme sqlite)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("sqlite",)
    UNBOUNDED_LIMIT: ClassVar[Optional[str]] = "-1"

    def connect(self, url: str):
        import sqlite3
        parsed = urllib.parse.urlparse(url)
        path = (parsed.path or "")[1:] or parsed.hostname or ":memory:"
        logger.debug("Connecting to SQLite database %s", path)
        conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def driver_errors(self):
        import sqlite3
        return (sqlite3.Error,)

    def truncate_sql(self, table_name: str) -> str:
        # SQLite has no TRUNCATE; an unqualified DELETE uses the truncate optimization.
        return f"DELETE FROM {table_name}"

    def interrupt(self, raw_connection: Any) -> None:
        raw_connection.interrupt()
