"""Base Dialect type: subclasses implement connect() and driver quirks for each engine."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional

from pydantic import BaseModel


def qmark_to_format(sql: str) -> str:
    """Rewrite ``?`` placeholders as ``%s`` outside quoted literals, escaping bare ``%``."""
    result = []
    quote = None
    for char in sql:
        if quote:
            if char == quote:
                quote = None
            result.append("%%" if char == "%" else char)
        elif char in ("'", '"'):
            quote = char
            result.append(char)
        elif char == "?":
            result.append("%s")
        elif char == "%":
            result.append("%%")
        else:
            result.append(char)
    return "".join(result)


class Dialect(BaseModel, ABC):
    """Base for database dialects; subclasses implement connect() for a given URL."""

    model_config = {"arbitrary_types_allowed": True}

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ()
    """URL schemes this dialect handles (e.g. ('sqlite',), ('postgresql',))."""

    PARAMSTYLE: ClassVar[str] = "qmark"
    """DB-API paramstyle of the driver; builders always emit ``?``."""

    UNBOUNDED_LIMIT: ClassVar[Optional[str]] = None
    """LIMIT value emitted when an OFFSET is rendered without a LIMIT, if the engine needs one."""

    BEGIN_SQL: ClassVar[str] = "BEGIN"

    @abstractmethod
    def connect(self, url: str) -> Any:
        """Return a new raw driver connection for the given URL, in autocommit mode.

        The return value is engine-specific (e.g. sqlite3.Connection, pymysql.Connection).
        """
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def driver_errors(self) -> tuple[type[BaseException], ...]:
        """Exception classes the driver raises for failed statements."""
        ...  # pylint: disable=unnecessary-ellipsis

    def convert_placeholders(self, sql: str) -> str:
        """Adapt ``?`` placeholders to the driver paramstyle."""
        if self.PARAMSTYLE == "format":
            return qmark_to_format(sql)
        return sql

    def last_insert_id(self, raw_connection: Any, cursor: Any, primary_key: str) -> Any:
        """Identifier generated by the last INSERT on this connection."""
        return cursor.lastrowid

    def truncate_sql(self, table_name: str) -> str:
        return f"TRUNCATE TABLE {table_name}"

    def default_values_sql(self, table_name: str) -> str:
        """INSERT of a row made only of column defaults."""
        return f"INSERT INTO {table_name} DEFAULT VALUES"

    def interrupt(self, raw_connection: Any) -> None:
        """Abort the statement currently running on raw_connection."""
        raise NotImplementedError(f"{type(self).__name__} cannot interrupt statements")
