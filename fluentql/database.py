"""Top-level factory: one Connection plus the services builders share.

A ``Database`` owns the connection, its settings, the statement executor and
profiler, the association cache and the transaction manager. Builders are
obtained with ``Database.table()``; columns, rules and the builder class given
for a table are remembered, so that builders created later for the same table
(e.g. by association lookups) use them as well.
"""

import logging
import urllib.parse
from typing import Any, Optional

from pydantic import BaseModel, Field

from .builder import Builder, Structure
from .connection import Connection, Settings, _get_connection, get_settings
from .dialects import get_dialect_for_scheme
from .exceptions import ConfigurationError
from .executor import QueryProfiler, StatementExecutor
from .relations import AssociationCache
from .transaction import TransactionManager

logger = logging.getLogger("fluentql")


class TableDefinition(BaseModel):
    """What Database.table() remembers about a table."""

    model_config = {"arbitrary_types_allowed": True}

    columns: dict[str, str] = Field(default_factory=dict)
    rules: dict[str, dict[str, Any]] = Field(default_factory=dict)
    model: type[Builder] = Builder
    display_column: str = ""


class Database:

    def __init__(
        self,
        name: str = "default",
        connection: Optional[Connection] = None,
        settings: Optional[Settings] = None,
        cache: Optional[AssociationCache] = None,
    ):
        """
        Args:
            name: Name registered with connect(); used when connection or settings are omitted.
            connection: Use this connection instead of opening one for name.
            settings: Use these settings instead of those registered for name.
            cache: Share an association cache; each Database gets its own otherwise.
        """
        self.name = name
        self.settings = settings if settings is not None else get_settings(name)
        self.connection = connection if connection is not None else _get_connection(name)
        self.cache = cache if cache is not None else AssociationCache()
        self.profiler = QueryProfiler()
        self.executor = StatementExecutor(self.connection, self.settings, self.profiler)
        self.transactions = TransactionManager(self.connection, self.executor)
        self._definitions: dict[str, TableDefinition] = {}

    @classmethod
    def from_url(cls, url: str, cache: Optional[AssociationCache] = None, **settings: Any) -> "Database":
        """Open a Database directly from a URL, without registering it with connect()."""
        dialect = get_dialect_for_scheme(urllib.parse.urlparse(url).scheme)
        connection = Connection(dialect.connect(url), dialect)
        return cls(name=url, connection=connection, settings=Settings(**settings), cache=cache)

    def table(
        self,
        name: str,
        alias: str = "",
        columns: Optional[dict[str, str]] = None,
        rules: Optional[dict[str, dict[str, Any]]] = None,
        model: Optional[type[Builder]] = None,
        display_column: Optional[str] = None,
    ) -> Builder:
        """Return a new builder for table name.

        Args:
            name: Table name.
            alias: Table alias used in the rendered SELECT.
            columns: Declared columns (name -> type), remembered for this table.
            rules: Validation rules (column -> {rule name: callable or regex}), remembered.
            model: Builder subclass to instantiate, remembered.
            display_column: Column standing for ``_display_field`` in listing helpers, remembered.
        """
        if model is not None and not (isinstance(model, type) and issubclass(model, Builder)):
            raise ConfigurationError(f"`model` must be a Builder subclass, got {model!r}")
        definition = self._definitions.get(name, TableDefinition())
        changes = {
            key: value
            for key, value in (("columns", columns), ("rules", rules), ("model", model), ("display_column", display_column))
            if value is not None
        }
        if changes:
            definition = definition.model_copy(update=changes)
            self._definitions[name] = definition
        return definition.model(
            database=self,
            table_name=name,
            table_alias=alias,
            table_token=name,
            structure=Structure(primary_key=self.settings.primary_key, foreign_key=self.settings.foreign_key),
            column_types=dict(definition.columns),
            rules={column: dict(rules) for column, rules in definition.rules.items()},
            display_column=definition.display_column,
            debug_mode=self.settings.debug,
        )

    # transactions

    def begin(self) -> None:
        logger.debug("BEGIN")
        self.connection.begin()

    def commit(self) -> None:
        logger.debug("COMMIT")
        self.connection.commit()

    def rollback(self) -> None:
        logger.debug("ROLLBACK")
        self.connection.rollback()

    def transaction(self):
        """Context manager; see TransactionManager.transaction()."""
        return self.transactions.transaction()

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


__all__ = ["Database", "TableDefinition"]
