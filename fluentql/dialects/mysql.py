"""MySQL dialect."""

import urllib.parse
from typing import ClassVar, Optional

from .base import Dialect


class MysqlDialect(Dialect):
    """Dialect for MySQL (scheme mysql)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("mysql",)
    PARAMSTYLE: ClassVar[str] = "format"
    UNBOUNDED_LIMIT: ClassVar[Optional[str]] = "18446744073709551615"
    BEGIN_SQL: ClassVar[str] = "START TRANSACTION"

    def connect(self, url: str):
        import pymysql  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        return pymysql.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port or 3306,
            autocommit=True,
        )

    def default_values_sql(self, table_name: str) -> str:
        return f"INSERT INTO {table_name} () VALUES ()"

    def driver_errors(self):
        import pymysql  # pylint: disable=import-outside-toplevel,import-error
        return (pymysql.Error,)
