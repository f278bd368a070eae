"""Connection registry, per-connection settings and the driver adapter.

``connect()`` registers a database URL under a name together with its
``Settings``; ``_get_connection()`` opens a ``Connection`` for a registered
name. ``Connection`` is the only place that talks to a DB-API driver: builders
go through its narrow prepare/execute/fetch contract.
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any, Callable, Optional

from pydantic import BaseModel

from .dialects import Dialect, get_dialect_for_scheme
from .exceptions import DriverError

logger = logging.getLogger("fluentql")


class Settings(BaseModel):
    """Per-connection configuration shared by every builder of a Database."""

    primary_key: str = "id"
    """Primary key column, or a pattern where %s is replaced by the table name."""
    foreign_key: str = "%s_id"
    """Foreign key pattern; %s is replaced by the referenced table name."""
    log_queries: bool = False
    """Log every statement with its parameters interpolated (INFO level)."""
    slow_query_seconds: float = 5.0
    """Statements slower than this are logged as warnings."""
    statement_timeout: Optional[float] = None
    """Default deadline in seconds for every statement; None disables it."""
    debug: bool = False
    """Start builders in debug mode: statements are rendered, never executed."""


_urls: dict[str, str | Callable[[], str]] = {}
_settings: dict[str, Settings] = {}


def connect(database_url: str | Callable[[], str], name: str = "default", **settings: Any) -> None:
    """Register a database URL (or a callable returning one) under name.

    Keyword arguments populate the ``Settings`` used by every Database opened
    with this name.
    """
    if not isinstance(database_url, str) and not callable(database_url):
        raise ValueError("`database_url` should be either a `str`, or a method returning a `str`")
    _urls[name] = database_url
    _settings[name] = Settings(**settings)


def get_settings(name: str = "default") -> Settings:
    """Return the Settings registered with connect(), or defaults."""
    return _settings.get(name) or Settings()


def _resolve_url(name: str) -> str:
    try:
        url = _urls[name]
    except KeyError as error:
        raise ValueError(f"No connection configured with name=`{name}`") from error
    if callable(url):
        url = url()
    return url


def _get_connection(name: str = "default") -> "Connection":
    """Open a new Connection for a name registered with connect()."""
    url = _resolve_url(name)
    parsed_url = urllib.parse.urlparse(url)
    dialect = get_dialect_for_scheme(parsed_url.scheme)
    return Connection(dialect.connect(url), dialect)


class Statement:
    """A prepared statement: the driver-ready SQL and the cursor it runs on."""

    def __init__(self, sql: str, cursor: Any):
        self.sql = sql
        self.cursor = cursor
        self.executed = False
        # rows fetched while the statement deadline was still armed
        self.prefetched_rows: Optional[list[dict[str, Any]]] = None

    def __repr__(self) -> str:
        return f"Statement({self.sql!r}, executed={self.executed})"


class Connection:
    """Adapter over a DB-API connection exposing the contract builders rely on."""

    def __init__(self, raw: Any, dialect: Dialect):
        self.raw = raw
        self.dialect = dialect

    def _driver_error(self, error: BaseException) -> DriverError:
        return DriverError(str(error), original=error)

    def prepare(self, sql: str) -> Statement:
        """Return a Statement bound to a fresh cursor."""
        try:
            cursor = self.raw.cursor()
        except self.dialect.driver_errors() as error:
            raise self._driver_error(error) from error
        return Statement(sql, cursor)

    def execute(self, statement: Statement, parameters: tuple[Any, ...] | list[Any] = ()) -> bool:
        """Execute statement with bound parameters; raise DriverError on failure."""
        try:
            if parameters:
                sql = self.dialect.convert_placeholders(statement.sql)
                statement.cursor.execute(sql, tuple(parameters))
            else:
                statement.cursor.execute(statement.sql)
        except self.dialect.driver_errors() as error:
            raise self._driver_error(error) from error
        statement.executed = True
        return True

    def fetch_rows(self, statement: Statement) -> list[dict[str, Any]]:
        """Return the remaining rows of statement as column -> value mappings."""
        if statement.prefetched_rows is not None:
            rows, statement.prefetched_rows = statement.prefetched_rows, None
            return rows
        if statement.cursor.description is None:
            return []
        names = [column[0] for column in statement.cursor.description]
        try:
            return [dict(zip(names, row)) for row in statement.cursor.fetchall()]
        except self.dialect.driver_errors() as error:
            raise self._driver_error(error) from error

    def row_count(self, statement: Statement) -> int:
        count = statement.cursor.rowcount
        return count if count is not None and count > 0 else 0

    def last_insert_id(self, statement: Statement, primary_key: str) -> Any:
        return self.dialect.last_insert_id(self.raw, statement.cursor, primary_key)

    def quote_literal(self, value: Any) -> str:
        """Render value as an SQL literal. For diagnostics only, never for execution."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return str(value)
        return "'" + str(value).replace("'", "''") + "'"

    def raw_exec(self, sql: str) -> int:
        """Run a statement without parameters and return the affected row count."""
        statement = self.prepare(sql)
        self.execute(statement)
        return self.row_count(statement)

    def begin(self) -> None:
        self.raw_exec(self.dialect.BEGIN_SQL)

    def commit(self) -> None:
        self.raw_exec("COMMIT")

    def rollback(self) -> None:
        self.raw_exec("ROLLBACK")

    def interrupt(self) -> None:
        self.dialect.interrupt(self.raw)

    def close(self) -> None:
        self.raw.close()


if __name__ == "__main__":

    connect("sqlite:////tmp/fluentql-test0.sqlite3")
    connect("sqlite:////tmp/fluentql-test1.sqlite3", name="alternative", log_queries=True)

    print("\nTEST wrong name:")
    try:
        cn = _get_connection(name="nonexistent")
        print("Getting connection with wrong name failed to fail!")
    except ValueError:
        print("Getting connection with wrong name failed as expected.")

    print("\nTEST default:")
    c0 = _get_connection()
    c0.raw_exec("CREATE TABLE IF NOT EXISTS foo(bar CHAR)")
    c0.raw_exec("INSERT INTO foo(bar) VALUES ('Hello')")
    stmt = c0.prepare("SELECT COUNT(*) AS n FROM foo")
    c0.execute(stmt)
    print(c0.fetch_rows(stmt))
    print("Alternative settings:", get_settings("alternative"))
