"""Helpers assembling the pieces of a SELECT statement."""

from __future__ import annotations

import re
from typing import Iterable, Optional

_AGGREGATE = re.compile(r"^\s*(AVG|SUM|MAX|MIN|COUNT)\b", re.IGNORECASE)
_NUMERIC = re.compile(r"^[0-9]")
_DISTINCT_PREFIX = re.compile(r"^\s*distinct\s+", re.IGNORECASE)


def is_aggregate(column: str) -> bool:
    """True for AVG/SUM/MAX/MIN/COUNT expressions, which address their own columns."""
    return bool(_AGGREGATE.match(column))


def strip_distinct(column: str) -> tuple[str, bool]:
    """Split a leading ``DISTINCT`` keyword off a select expression."""
    stripped, count = _DISTINCT_PREFIX.subn("", column, count=1)
    return stripped, bool(count)


def qualify_columns(columns: Iterable[str], alias: Optional[str]) -> list[str]:
    """Prefix bare column names with the table alias.

    Comma-separated lists are split and each part is qualified on its own.
    Aggregates, numeric literals, NULL expressions and names that already
    contain a ``.`` are passed through unchanged. Without an alias the columns
    are returned as they are.
    """
    columns = list(columns)
    if not alias:
        return columns
    qualified = []
    for column in columns:
        if "," in column:
            qualified.extend(qualify_columns(column.split(","), alias))
        elif is_aggregate(column):
            qualified.append(column.strip())
        elif "." not in column and "NULL" not in column.upper():
            column = column.strip()
            qualified.append(column if _NUMERIC.match(column) else f"{alias}.{column}")
        else:
            qualified.append(column.strip())
    return qualified


def render_join(table: str, constraint: str, alias: Optional[str] = None, operator: str = "") -> str:
    """Render ``[operator] JOIN table [AS alias] ON constraint``."""
    join = f"{operator} " if operator else ""
    join += f"JOIN {table} "
    join += f"AS {alias} " if alias else ""
    join += f"ON {constraint}"
    return join


def unique(fragments: Iterable[str]) -> list[str]:
    """De-duplicate clause fragments, keeping the first occurrence of each."""
    return list(dict.fromkeys(fragments))
