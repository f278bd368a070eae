"""Fluent query builder doubling as an active record.

A ``Builder`` accumulates the pieces of a statement (select list, joins,
conditions, grouping, ordering, limits) through chained calls, renders it,
runs it through the Database's StatementExecutor and hydrates every fetched
row into a single-row ``Builder`` (a record). Records carry their column
values in ``data``, track changes in ``dirty_fields`` and can be persisted
with ``save()``, ``update()`` and ``delete()``, which are always scoped to the
record's primary key.
"""

from __future__ import annotations

import datetime
import enum
import logging
import math
import re
from typing import Any, Callable, Iterator, Mapping, Optional, Union

from pydantic import BaseModel, Field, PrivateAttr

from .clauses import qualify_columns, render_join, strip_distinct, unique
from .conditions import ConditionList, Operator, placeholders
from .connection import Statement
from .exceptions import ConfigurationError
from .relations import (
    RelationOptions,
    collect_reference_keys,
    distinct_values,
    resolve,
)

logger = logging.getLogger("fluentql")

_STRING_TYPES = ("char", "text", "enum", "string", "clob")


class SaveKind(str, enum.Enum):
    """What a before_save()/after_save() hook is called for."""

    INSERT = "insert"
    UPDATE = "update"


class Structure(BaseModel):
    """Key naming conventions; ``%s`` is replaced by a table name."""

    primary_key: str = "id"
    foreign_key: str = "%s_id"


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value))
    except ValueError:
        return False
    return True


class Builder(BaseModel):
    """Query builder for one table, or a single hydrated row of it when ``is_single``."""

    model_config = {"arbitrary_types_allowed": True}

    database: Any = Field(default=None, exclude=True, repr=False)
    """The Database this builder runs on (connection, executor, cache, profiler)."""
    table_name: str = ""
    table_alias: str = ""
    table_token: str = ""
    """Result-set token; records hydrated by one find() share it."""
    structure: Structure = Field(default_factory=Structure)
    column_types: dict[str, str] = Field(default_factory=dict)
    """Declared column name -> type; restricts inserted/updated keys and searches."""
    rules: dict[str, dict[str, Any]] = Field(default_factory=dict)
    """Validation rules: column -> {rule name: callable or regex}."""
    display_column: str = ""

    select_fields: list[str] = Field(default_factory=list)
    join_clauses: list[str] = Field(default_factory=list)
    conditions: ConditionList = Field(default_factory=ConditionList)
    having_conditions: ConditionList = Field(default_factory=ConditionList)
    group_by_fields: list[str] = Field(default_factory=list)
    order_by_fields: list[str] = Field(default_factory=list)
    limit_value: Optional[int] = None
    """LIMIT (stored to avoid shadowing the limit() method)."""
    offset_value: Optional[int] = None
    """OFFSET (stored to avoid shadowing the offset() method)."""
    distinct_value: bool = False

    is_single: bool = False
    data: dict[str, Any] = Field(default_factory=dict)
    dirty_fields: dict[str, Any] = Field(default_factory=dict)
    reference_keys: dict[str, list[Any]] = Field(default_factory=dict)
    """Distinct key values across the result set this record was fetched in."""

    debug_mode: bool = False
    """When set, statements are rendered into sql_query but never executed."""
    sql_query: str = ""
    sql_parameters: tuple[Any, ...] = ()
    validation_errors: dict[str, list[str]] = Field(default_factory=dict)
    requested_fields: list[str] = Field(default_factory=list)
    filter_meta: dict[str, Any] = Field(default_factory=dict)

    _statement: Optional[Statement] = PrivateAttr(default=None)
    _pending: bool = PrivateAttr(default=False)
    _result_rows: list[dict[str, Any]] = PrivateAttr(default_factory=list)

    # --- branching ---

    def clone(self) -> "Builder":
        """Return an independent copy: no list, mapping or condition list is shared."""
        twin = self.model_copy(update={
            "structure": self.structure.model_copy(),
            "column_types": dict(self.column_types),
            "rules": {column: dict(rules) for column, rules in self.rules.items()},
            "select_fields": list(self.select_fields),
            "join_clauses": list(self.join_clauses),
            "conditions": self.conditions.clone(),
            "having_conditions": self.having_conditions.clone(),
            "group_by_fields": list(self.group_by_fields),
            "order_by_fields": list(self.order_by_fields),
            "data": dict(self.data),
            "dirty_fields": dict(self.dirty_fields),
            "validation_errors": {column: list(names) for column, names in self.validation_errors.items()},
            "requested_fields": list(self.requested_fields),
            "filter_meta": dict(self.filter_meta),
        })
        twin._statement = None
        twin._pending = False
        return twin

    def table(self, name: str, alias: str = "") -> "Builder":
        """Return a fresh builder for another table, keeping this builder's structure.

        When bound to a Database, the columns, rules and model registered for
        that table are used.
        """
        if self.database is not None:
            twin = self.database.table(name, alias)
            twin.structure = self.structure.model_copy()
            return twin
        twin = self.clone()
        twin.table_name = name
        twin.table_token = name
        twin.column_types = {}
        twin.rules = {}
        twin.display_column = ""
        twin.set_table_alias(alias)
        return twin.reset()

    def reset(self) -> "Builder":
        """Clear every piece of query and row state; keep table, structure and schema."""
        self.select_fields = []
        self.join_clauses = []
        self.conditions = ConditionList()
        self.having_conditions = ConditionList()
        self.group_by_fields = []
        self.order_by_fields = []
        self.limit_value = None
        self.offset_value = None
        self.distinct_value = False
        self.is_single = False
        self.data = {}
        self.dirty_fields = {}
        self.reference_keys = {}
        self.requested_fields = []
        self.filter_meta = {}
        self._pending = False
        self._result_rows = []
        return self

    # --- structure ---

    def set_structure(self, primary_key: str = "id", foreign_key: str = "%s_id") -> "Builder":
        self.structure = Structure(primary_key=primary_key, foreign_key=foreign_key)
        return self

    def get_structure(self) -> dict[str, str]:
        return self.structure.model_dump()

    @staticmethod
    def format_key_name(pattern: str, table_name: str) -> str:
        return pattern.replace("%s", table_name)

    def primary_key_name(self) -> str:
        return self.format_key_name(self.structure.primary_key, self.table_name)

    def foreign_key_name(self) -> str:
        """Column other tables use to reference this one, e.g. ``user_id``."""
        return self.format_key_name(self.structure.foreign_key, self.table_name)

    def set_table_alias(self, alias: str) -> "Builder":
        self.table_alias = alias or ""
        return self

    def is_single_row(self) -> bool:
        return self.is_single

    # --- select ---

    def _add_select_fields(self, columns: Union[str, list[str], tuple[str, ...]]) -> None:
        if isinstance(columns, str):
            columns = [columns]
        for column in columns:
            column, distinct = strip_distinct(column)
            if distinct:
                self.distinct_value = True
            self.select_fields.append(column)

    def select(self, columns: Union[str, list[str], tuple[str, ...]] = "*", alias: Optional[str] = None) -> "Builder":
        """Add columns to the select list.

        Args:
            columns: A column, a comma-separated list or a sequence of columns.
                ``*`` expands to the declared columns when there are some. A
                leading ``DISTINCT`` keyword turns on SELECT DISTINCT.
            alias: Alias for a single column.
        """
        if alias and isinstance(columns, str):
            columns = f"{columns} AS {alias}"
        if columns == "*" and self.column_types:
            columns = list(self.column_types)
        self._add_select_fields(columns)
        return self

    def add_select(self, columns: Union[str, list[str], tuple[str, ...]]) -> "Builder":
        if not self.select_fields:
            self.select("*")
        self._add_select_fields(columns)
        return self

    def distinct(self, flag: bool = True) -> "Builder":
        self.distinct_value = flag
        return self

    # --- where ---

    def where(self, condition: Union[str, Mapping[str, Any]], *params: Any) -> "Builder":
        """Add a condition, joined with AND unless or_() was called just before.

        Examples:
            where("age > ? AND age < ?", 18, 65)
            where("age > ? AND age < ?", [18, 65])
            where("name", "Alice")          # name = ?
            where("id", [1, 2, 3])          # (id IN (?, ?, ?))
            where({"name": "Alice", "age > ?": 18})
        """
        if isinstance(condition, Mapping):
            for key, value in condition.items():
                self.where(key, value)
            return self
        if len(params) == 1 and "?" not in condition:
            value = params[0]
            if isinstance(value, (list, tuple, set, frozenset)):
                return self.where_in(condition, list(value))
            self.conditions.add(f"{condition} = ?", (value,))
            return self
        if len(params) == 1 and isinstance(params[0], (list, tuple)):
            params = tuple(params[0])
        self.conditions.add(condition, params)
        return self

    def and_(self) -> "Builder":
        self.conditions.and_()
        return self

    def or_(self) -> "Builder":
        """Join the next condition (or group) with OR instead of AND."""
        self.conditions.or_()
        return self

    def wrap(self) -> "Builder":
        """Enclose the conditions added since the previous wrap() in parentheses."""
        self.conditions.wrap()
        return self

    def where_pk(self, id: Any, with_alias: bool = False) -> "Builder":
        column = self.primary_key_name()
        if with_alias and self.table_alias:
            column = f"{self.table_alias}.{column}"
        return self.where(column, id)

    def where_not(self, column: str, value: Any) -> "Builder":
        return self.where(f"{column} != ?", value)

    def where_like(self, column: str, value: Any) -> "Builder":
        return self.where(f"{column} LIKE ?", value)

    def where_not_like(self, column: str, value: Any) -> "Builder":
        return self.where(f"{column} NOT LIKE ?", value)

    def where_gt(self, column: str, value: Any) -> "Builder":
        return self.where(f"{column} > ?", value)

    def where_gte(self, column: str, value: Any) -> "Builder":
        return self.where(f"{column} >= ?", value)

    def where_lt(self, column: str, value: Any) -> "Builder":
        return self.where(f"{column} < ?", value)

    def where_lte(self, column: str, value: Any) -> "Builder":
        return self.where(f"{column} <= ?", value)

    def where_in(self, column: str, values: Any) -> "Builder":
        """``(column IN (?, ...))``; an empty list matches nothing."""
        values = list(values)
        if not values:
            self.conditions.add("(1 = 0)")
            return self
        self.conditions.add(f"({column} IN ({placeholders(len(values))}))", values)
        return self

    def where_not_in(self, column: str, values: Any) -> "Builder":
        """``(column NOT IN (?, ...))``; an empty list matches everything."""
        values = list(values)
        if not values:
            self.conditions.add("(1 = 1)")
            return self
        self.conditions.add(f"({column} NOT IN ({placeholders(len(values))}))", values)
        return self

    def where_null(self, column: str) -> "Builder":
        return self.where(f"{column} IS NULL")

    def where_not_null(self, column: str) -> "Builder":
        return self.where(f"{column} IS NOT NULL")

    def having(self, statement: str, *params: Any, operator: Union[Operator, str] = Operator.AND) -> "Builder":
        if isinstance(operator, str):
            operator = Operator(operator.strip().upper())
        if operator is Operator.OR:
            self.having_conditions.or_()
        else:
            self.having_conditions.and_()
        self.having_conditions.add(statement, params)
        return self

    # --- grouping, ordering, limits, joins ---

    def order_by(self, column: str, ordering: str = "") -> "Builder":
        self.order_by_fields.append(f"{column} {ordering}".strip())
        return self

    def group_by(self, column: str) -> "Builder":
        self.group_by_fields.append(column)
        return self

    def limit(self, limit: Optional[int], offset: Optional[int] = None) -> "Builder":
        self.limit_value = limit
        if offset:
            self.offset(offset)
        return self

    def offset(self, offset: Optional[int]) -> "Builder":
        self.offset_value = offset
        return self

    def get_limit(self) -> Optional[int]:
        return self.limit_value

    def get_offset(self) -> Optional[int]:
        return self.offset_value

    def join(self, table: Union[str, "Builder"], constraint: str, alias: str = "", operator: str = "") -> "Builder":
        """Add ``[operator] JOIN table [AS alias] ON constraint``; table may be another builder."""
        if isinstance(table, Builder):
            table = table.table_name
        self.join_clauses.append(render_join(table, constraint, alias, operator))
        return self

    def left_join(self, table: Union[str, "Builder"], constraint: str, alias: str = "") -> "Builder":
        return self.join(table, constraint, alias, "LEFT")

    # --- rendering ---

    @property
    def select_query(self) -> str:
        """The SELECT statement for the current state, with ``?`` placeholders."""
        columns = qualify_columns(self.select_fields or ["*"], self.table_alias)
        sql = "SELECT "
        sql += "DISTINCT " if self.distinct_value else ""
        sql += ", ".join(columns)
        sql += f" FROM {self.table_name}"
        sql += f" AS {self.table_alias}" if self.table_alias else ""
        if self.join_clauses:
            sql += " " + " ".join(self.join_clauses)
        sql += self.conditions.render()
        if self.group_by_fields:
            sql += " GROUP BY " + ", ".join(unique(self.group_by_fields))
        sql += self.having_conditions.render("HAVING", "")
        if self.order_by_fields:
            sql += " ORDER BY " + ", ".join(unique(self.order_by_fields))
        if self.limit_value is not None:
            sql += f" LIMIT {int(self.limit_value)}"
        elif self.offset_value and self._unbounded_limit():
            sql += f" LIMIT {self._unbounded_limit()}"
        if self.offset_value:
            sql += f" OFFSET {int(self.offset_value)}"
        return sql

    @property
    def where_parameters(self) -> tuple[Any, ...]:
        """Values bound to select_query, WHERE first then HAVING."""
        return self.conditions.parameters + self.having_conditions.parameters

    def _unbounded_limit(self) -> Optional[str]:
        if self.database is None:
            return None
        return self.database.connection.dialect.UNBOUNDED_LIMIT

    def _default_values_sql(self) -> str:
        if self.database is None:
            return f"INSERT INTO {self.table_name} DEFAULT VALUES"
        return self.database.connection.dialect.default_values_sql(self.table_name)

    # --- execution ---

    def _bound_database(self):
        if self.database is None:
            raise ConfigurationError(f"Builder for `{self.table_name}` is not bound to a Database")
        return self.database

    def query(
        self,
        sql: str,
        params: Union[tuple[Any, ...], list[Any]] = (),
        raw: bool = False,
        row_callback: Optional[Callable[[dict[str, Any]], Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Run a statement with bound parameters.

        Args:
            sql: Statement with ``?`` placeholders.
            params: Values bound to the placeholders.
            raw: Return the executed Statement instead of the builder.
            row_callback: Called with every fetched row; the number of truthy
                results is returned.
            timeout: Deadline in seconds, overriding the connection default.

        Returns:
            The builder (rows pending for find()), the Statement when raw, or
            the callback success count. In debug mode nothing is executed and
            the builder is returned.
        """
        self.sql_query = sql
        self.sql_parameters = tuple(params)
        if self.debug_mode:
            return self
        database = self._bound_database()
        self._statement = None
        statement = database.executor.run(sql, self.sql_parameters, timeout)
        self._statement = statement
        if row_callback is not None:
            rows = database.connection.fetch_rows(statement)
            return sum(1 for row in rows if row_callback(row))
        if raw:
            return statement
        self._pending = True
        return self

    def row_count(self) -> int:
        """Rows affected by the last statement; 0 unless it executed."""
        if self._statement is None or not self._statement.executed:
            return 0
        return self.database.connection.row_count(self._statement)

    def execute(self, sql: str) -> int:
        """Run a statement without parameters and return the affected row count."""
        self.sql_query = sql
        self.sql_parameters = ()
        if self.debug_mode:
            return 0
        logger.debug(sql)
        return self._bound_database().connection.raw_exec(sql)

    def truncate(self) -> int:
        dialect = self._bound_database().connection.dialect
        return self.execute(dialect.truncate_sql(self.table_name))

    # --- fetching ---

    def find(self, callback: Optional[Callable[[list[dict[str, Any]]], Any]] = None) -> Any:
        """Fetch every matching row.

        Without a callback, returns the rows hydrated into records (an empty
        list when nothing matches). Records of one call share a result-set
        token and reference keys, so their associations are batched. With a
        callback, returns ``callback(rows)`` on the raw rows. The builder is
        reset once rows are fetched.
        """
        if not self._pending:
            self.query(self.select_query, self.where_parameters)
        if self.debug_mode or not self._pending:
            return [] if callback is None else callback([])
        rows = self.database.connection.fetch_rows(self._statement)
        self.reset()
        if callback is not None:
            return callback(rows)
        return self._hydrate(rows)

    def find_one(self, id: Any = None) -> Optional["Builder"]:
        """Return the first matching record, or the one with this primary key; None when absent."""
        if id is not None:
            self.where_pk(id, with_alias=True)
        self.limit(1)
        records = self.find()
        return records[0] if records else None

    def __iter__(self) -> Iterator[Any]:
        if self.is_single:
            return iter(self.data.items())
        return iter(self.find())

    def to_list(self, keyed_on: Optional[str] = None, show_field: Optional[str] = None) -> dict[Any, Any]:
        """Map ``row[keyed_on]`` to ``row[show_field]`` (or the whole row).

        Without keyed_on, the first column is the key and the second column,
        if any, the value.
        """
        result = {}
        for row in self.find(lambda rows: rows):
            if keyed_on is None:
                keys = list(row)
                keyed_on = keys[0]
                show_field = keys[1] if len(keys) > 1 else None
            result[row[keyed_on]] = row[show_field] if show_field is not None else row
        return result

    def to_results(self, as_dict: bool = True, keyed_on: Optional[str] = None) -> dict[Any, Any]:
        """Map each row's key (keyed_on, ``id`` or the first column) to the row or its record."""
        rows = self.find(lambda rows: rows)
        values = rows if as_dict else self._hydrate(rows)
        result = {}
        for row, value in zip(rows, values):
            key = keyed_on or "id"
            if key not in row:
                key = next(iter(row))
            result[row[key]] = value
        return result

    def to_field(self, field: str = "id", item_id: Any = None) -> Any:
        record = self.find_one(item_id)
        if record is None:
            return None
        return record.get(field)

    # --- aggregates ---

    def aggregate(self, function: str) -> Any:
        """Evaluate an aggregate expression such as ``COUNT(*)`` over the current conditions.

        Runs on a clone without select list, ordering or limits, so the
        builder can still be used afterwards.
        """
        query = self.clone()
        query.select_fields = []
        query.order_by_fields = []
        query.limit_value = None
        query.offset_value = None
        query.select(f"{function} AS aggregate")
        rows = query.find(lambda rows: rows)
        self.sql_query = query.sql_query
        self.sql_parameters = query.sql_parameters
        if not rows or rows[0].get("aggregate") is None:
            return 0
        return rows[0]["aggregate"]

    def count(self, column: str = "*") -> Any:
        return self.aggregate(f"COUNT({column})")

    def max(self, column: str) -> Any:
        return self.aggregate(f"MAX({column})")

    def min(self, column: str) -> Any:
        return self.aggregate(f"MIN({column})")

    def sum(self, column: str) -> Any:
        return self.aggregate(f"SUM({column})")

    def avg(self, column: str) -> Any:
        return self.aggregate(f"AVG({column})")

    # --- hydration ---

    def _hydrate(self, rows: list[dict[str, Any]]) -> list["Builder"]:
        rows = [self.after_find(dict(row)) for row in rows]
        if self.database is not None:
            token = self.database.cache.new_token(self.table_name)
        else:
            token = self.table_name
        reference_keys = collect_reference_keys(rows, self.primary_key_name(), self.structure.foreign_key)
        records = []
        for row in rows:
            record = self.clone().reset()
            record.is_single = True
            record.data = dict(row)
            record.table_token = token
            record.reference_keys = reference_keys
            record._result_rows = rows
            records.append(record)
        return records

    def from_row(self, row: Mapping[str, Any]) -> "Builder":
        """Return a new record holding row; this builder is left untouched."""
        return self._hydrate([dict(row)])[0]

    def reference_values(self, column: str) -> list[Any]:
        """Distinct values of column across this record's result set."""
        if column in self.reference_keys:
            values = self.reference_keys[column]
        else:
            values = distinct_values(self._result_rows, column)
        if not values and self.get(column) is not None:
            values = [self.get(column)]
        return values

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: Union[str, Mapping[str, Any]], value: Any = None) -> "Builder":
        """Set one value, or several from a mapping; the primary key is never altered."""
        if isinstance(key, Mapping):
            for name, item in key.items():
                self.set(name, item)
            return self
        if key != self.primary_key_name():
            self.data[key] = value
            self.dirty_fields[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data)

    @property
    def pk(self) -> Any:
        return self.get(self.primary_key_name())

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def __str__(self) -> str:
        return str(self.pk) if self.is_single else self.table_name

    # --- persistence ---

    def _set_single_where(self) -> None:
        if self.is_single:
            self.conditions = ConditionList()
            self.where_pk(self.pk)

    def insert(self, data: Union[Mapping[str, Any], list[Mapping[str, Any]]]) -> Any:
        """Insert one row, or several rows with a single multi-row statement.

        Returns:
            The inserted record (with the generated primary key) when exactly
            one row was inserted, otherwise the affected row count.
        """
        rows = [data] if isinstance(data, Mapping) else list(data)
        if not rows:
            return 0
        prepared = [self.before_save(dict(row), SaveKind.INSERT) for row in rows]
        fields = list(prepared[0])
        if fields:
            values = [row.get(field) for row in prepared for field in fields]
            sql = f"INSERT INTO {self.table_name} ({', '.join(fields)}) VALUES "
            sql += ", ".join(f"({placeholders(len(fields))})" for _ in prepared)
        else:
            values = []
            sql = self._default_values_sql()
        self.query(sql, values)
        for row in prepared:
            self.after_save(row, SaveKind.INSERT)
        self._pending = False
        if self.debug_mode:
            return self
        count = self.row_count()
        if count == 1:
            primary_key = self.primary_key_name()
            row = dict(prepared[0])
            if row.get(primary_key) is None:
                row[primary_key] = self.database.connection.last_insert_id(self._statement, primary_key)
            return self.from_row(row)
        return count

    def update(self, data: Optional[Mapping[str, Any]] = None) -> Any:
        """Persist the dirty fields; a record only ever updates its own row.

        Returns:
            The affected row count, or False when there is nothing to update
            or validation fails (see errors()).
        """
        self._set_single_where()
        if data is not None:
            self.set(data)
        self.dirty_fields = self.before_save(dict(self.dirty_fields), SaveKind.UPDATE)
        if not self.dirty_fields:
            logger.warning("Nothing to update in %s", self.table_name)
            return False
        if not self.validate_record(self.dirty_fields, mode="update"):
            return False
        self.dirty_fields.pop(self.primary_key_name(), None)
        if not self.dirty_fields:
            logger.warning("Nothing to update in %s", self.table_name)
            return False
        sql = f"UPDATE {self.table_name} SET "
        sql += ", ".join(f"{key} = ?" for key in self.dirty_fields)
        sql += self.conditions.render()
        values = list(self.dirty_fields.values()) + list(self.conditions.parameters)
        self.query(sql, values)
        self._pending = False
        self.after_save(dict(self.dirty_fields), SaveKind.UPDATE)
        if self.debug_mode:
            return self
        self.dirty_fields = {}
        return self.row_count()

    def delete(self, delete_all: bool = False) -> Any:
        """Delete the matching rows (a record deletes only itself).

        Without any condition nothing is deleted and False is returned, unless
        delete_all is set.
        """
        self._set_single_where()
        sql = f"DELETE FROM {self.table_name}"
        if not self.conditions.is_empty:
            self.query(sql + self.conditions.render(), self.conditions.parameters)
        elif not delete_all:
            logger.warning("Refusing to delete every row of %s without delete_all=True", self.table_name)
            return False
        else:
            self.query(sql)
        self._pending = False
        if self.debug_mode:
            return self
        return self.row_count()

    def upsert(self, data: Union[Mapping[str, Any], list[Mapping[str, Any]]],
               match_on: Optional[list[str]] = None) -> Any:
        """Update the row matching ``match_on`` columns, or insert one.

        Returns:
            For a single row, the row as stored (or False); for a list of
            rows, the number of rows upserted successfully.
        """
        if isinstance(data, Mapping):
            return self.upsert_one(data, match_on)
        return sum(1 for row in data if self.upsert_one(row, match_on))

    def upsert_one(self, data: Mapping[str, Any], match_on: Optional[list[str]] = None) -> Any:
        query = self.clone().reset()
        primary_key = self.primary_key_name()
        if not match_on:
            match_on = [primary_key] if data.get(primary_key) is not None else []
        for column in match_on:
            if data.get(column) is None:
                if column != primary_key:
                    raise ConfigurationError(f"The match on value for upserts is missing: `{column}`")
                continue
            query.where(column, data[column])
        if not query.conditions.is_empty:
            found = query.find_one()
            if found is not None:
                found.update(data)
                self.validation_errors = found.errors()
                return found.to_dict()
        result = query.insert(data)
        return result.to_dict() if isinstance(result, Builder) and result.is_single else False

    def save(self) -> Any:
        """update() a record or a scoped query; insert() the dirty fields otherwise."""
        if self.is_single or not self.conditions.is_empty:
            return self.update()
        return self.insert(self.dirty_fields)

    # --- hooks ---

    def before_save(self, data: dict[str, Any], kind: SaveKind) -> dict[str, Any]:
        data = self.remove_invalid_data_fields(data)
        return self.apply_defaults(data, kind)

    def after_save(self, data: dict[str, Any], kind: SaveKind) -> dict[str, Any]:
        return data

    def after_find(self, row: dict[str, Any]) -> dict[str, Any]:
        return row

    def apply_defaults(self, data: dict[str, Any], kind: SaveKind) -> dict[str, Any]:
        return data

    # --- schema and validation ---

    def columns(self, keys_only: bool = False) -> Union[dict[str, str], list[str]]:
        return list(self.column_types) if keys_only else dict(self.column_types)

    def skeleton(self) -> dict[str, None]:
        return {column: None for column in self.column_types}

    def remove_invalid_data_fields(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Drop keys that are not declared columns (nothing is dropped without declared columns)."""
        if not self.column_types:
            return dict(data)
        return {key: value for key, value in data.items() if key in self.column_types}

    def validate_record(self, record: Mapping[str, Any], mode: str = "insert") -> bool:
        """Check record against the rules; failures are collected in errors().

        A callable rule passes when it returns a truthy value. A regex rule
        fails when the value matches it. Columns missing from record are not
        checked, nor is the ``not_empty`` rule of the primary key on insert.
        """
        self.validation_errors = {}
        primary_key = self.primary_key_name()
        for column, rules in self.rules.items():
            if record.get(column) is None:
                continue
            for rule_name, validator in rules.items():
                if mode == "insert" and column == primary_key and rule_name == "not_empty":
                    continue
                if callable(validator):
                    passed = bool(validator(record[column]))
                else:
                    passed = re.search(validator, str(record[column])) is None
                if not passed:
                    self.validation_errors.setdefault(column, []).append(rule_name)
        return not self.validation_errors

    def errors(self) -> dict[str, list[str]]:
        return {column: list(names) for column, names in self.validation_errors.items()}

    # --- listing helpers ---

    def _split_field_reference(self, reference: str) -> tuple[str, str]:
        if ":" in reference:
            alias, _, field = reference.partition(":")
        else:
            alias, field = "", reference
        alias = alias or self.table_alias
        if alias != self.table_alias:
            raise ConfigurationError(f"Joined table aliases are not supported: `{reference}`")
        if field == "_display_field":
            field = self.display_column
        return alias, field

    def paginate(self, query: Mapping[str, Any]) -> "Builder":
        """Apply ``_items``, ``_page``, ``_order`` and ``_fields`` from a request query."""
        items = query.get("_items")
        if items is not None and _is_number(items):
            items = int(float(items))
            self.limit(items)
            page = query.get("_page")
            if page is not None and _is_number(page):
                self.offset((int(float(page)) - 1) * items)
        columns = self.columns()
        order = query.get("_order")
        if order and order in columns:
            self.order_by(order)
        fields = query.get("_fields")
        if fields:
            if isinstance(fields, str):
                fields = fields.split("|")
            selected = []
            for reference in fields:
                alias, field = self._split_field_reference(reference)
                if field in columns:
                    selected.append(f"{alias}.{field}" if alias else field)
            if selected:
                self.select(selected)
                self.requested_fields = selected
        return self

    def filter(self, query: Mapping[str, Any]) -> "Builder":
        """Apply column filters and a ``_search`` free-text search from a request query.

        ``a|b`` values become IN conditions. ``_search`` terms (``|``
        separated) are matched with LIKE against every string column, all
        grouped in parentheses and ANDed with the existing conditions.
        """
        columns = self.columns()
        alias = self.table_alias
        for reference, value in query.items():
            alias, field = self._split_field_reference(reference)
            if field not in columns or not value:
                continue
            column = f"{alias}.{field}" if alias else field
            self.filter_meta[column] = value
            if isinstance(value, str) and "|" in value:
                self.where_in(column, value.split("|"))
            else:
                self.where(column, value)

        search = query.get("_search")
        if not search:
            return self
        string_columns = [
            f"{alias}.{column}" if alias else column
            for column, column_type in columns.items()
            if any(name in str(column_type).lower() for name in _STRING_TYPES)
        ]
        terms = [term for term in str(search).split("|") if term]
        likes = [(column, f"%{term}%") for column in string_columns for term in terms]
        if not likes:
            return self
        self.where("1 = 1").wrap().and_()
        for column, term in likes:
            self.or_().where_like(column, term)
        return self.wrap()

    def paging_meta(self) -> dict[str, Any]:
        limit = int(self.limit_value or 0)
        offset = int(self.offset_value or 0)
        total = int(self.clone().limit(None).offset(None).count())
        return {
            "items": limit,
            "page": 1 if offset == 0 or limit == 0 else offset // limit + 1,
            "pages": 1 if limit == 0 else math.ceil(total / limit),
            "order": list(self.order_by_fields),
            "total": total,
            "filters": dict(self.filter_meta),
            "fields": list(self.requested_fields),
        }

    def get_query_meta(self) -> dict[str, Any]:
        return {
            "limit": self.get_limit(),
            "offset": self.get_offset(),
            "next": None,
            "previous": None,
        }

    # --- debugging ---

    def debug(self, flag: bool = True) -> "Builder":
        """Render statements into get_sql_query() instead of executing them."""
        self.debug_mode = flag
        return self

    def get_sql_query(self) -> str:
        return self.sql_query

    def get_sql_parameters(self) -> tuple[Any, ...]:
        return self.sql_parameters

    def get_query_profiler(self):
        return self._bound_database().profiler

    @staticmethod
    def now(delta: Optional[datetime.timedelta] = None) -> str:
        """Current local time as ``YYYY-MM-DD HH:MM:SS``, shifted by delta."""
        moment = datetime.datetime.now()
        if delta is not None:
            moment += delta
        return moment.strftime("%Y-%m-%d %H:%M:%S")

    # --- transactions ---

    def begin(self) -> "Builder":
        self._bound_database().begin()
        return self

    def commit(self) -> "Builder":
        self._bound_database().commit()
        return self

    def rollback(self) -> "Builder":
        self._bound_database().rollback()
        return self

    # --- associations ---

    def associate(self, target: str, options: Optional[Union[RelationOptions, Mapping[str, Any]]] = None,
                  **overrides: Any) -> Any:
        """Resolve the association of this record with the target table.

        Options (see RelationOptions) may be passed as a mapping, a
        RelationOptions or keyword arguments. On a record, a MANY relation
        returns a list of records and a ONE relation a record or None; the
        related rows of the whole result set are fetched in one query. On a
        query builder, returns a builder for the target table.

        Example:
            for user in users.find():
                friends = user.associate("friend", foreign_key="user_id")
        """
        options = RelationOptions.build(options, **overrides)
        if not self.is_single:
            return options.model.clone() if options.model is not None else self.table(target)
        return resolve(self, target, options)


__all__ = ["Builder", "SaveKind", "Structure"]
