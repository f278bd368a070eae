"""Association resolver: batched ONE/MANY lookups memoized per result set.

Records hydrated by one ``find()`` share a result-set token and the distinct
key values observed across every row of that result set. Resolving an
association on any of them issues a single ``WHERE key IN (...)`` query for
the whole result set, partitions the related rows by key and stores the
partition in the ``AssociationCache`` under a fingerprint of the relation.
Every other record of the same result set is then answered from the cache.
"""

from __future__ import annotations

import enum
import itertools
import logging
import re
import threading
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Optional, Union

import pydantic
from pydantic import BaseModel, Field

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .builder import Builder

logger = logging.getLogger("fluentql")


class RelationKind(int, enum.Enum):
    ONE = 1
    MANY = 2


class RelationOptions(BaseModel):
    """How a record relates to a target table.

    Empty keys fall back to the naming conventions of the builder structure.
    """

    model_config = {"arbitrary_types_allowed": True, "extra": "forbid"}

    kind: RelationKind = RelationKind.MANY
    foreign_key: str = ""
    local_key: str = ""
    where: Union[dict[str, Any], str] = Field(default_factory=dict)
    """Extra conditions applied to the related query."""
    sort: str = ""
    """ORDER BY expression applied to the related query."""
    transform: Optional[Callable[[dict[str, Any]], Any]] = None
    """Called with each related row instead of hydrating it into a record."""
    model: Optional[Any] = None
    """Builder used for the related query instead of ``table(target)``."""
    backref: bool = False

    @classmethod
    def build(cls, options: Optional[Union["RelationOptions", Mapping[str, Any]]] = None,
              **overrides: Any) -> "RelationOptions":
        """Merge options and keyword overrides, raising ConfigurationError when malformed."""
        if isinstance(options, RelationOptions):
            data = dict(options)
        elif options is None:
            data = {}
        elif isinstance(options, Mapping):
            data = dict(options)
        else:
            raise ConfigurationError(f"Association options must be a mapping, got {type(options).__name__}")
        data.update(overrides)
        try:
            return cls(**data)
        except pydantic.ValidationError as error:
            raise ConfigurationError(f"Invalid association options: {error}") from error


def fingerprint(source_token: str, target: str, key: str, kind: RelationKind) -> str:
    """Cache key identifying one relation shape for one result set."""
    return f"{source_token}:{target}:{key}:{int(kind)}"


class AssociationCache:
    """Memoized association partitions, keyed by fingerprint.

    Population is compute-if-absent: concurrent requests for the same
    fingerprint run the batched query once; readers of an existing entry never
    take a lock.
    """

    def __init__(self):
        self._entries: dict[str, Any] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        self._serial = itertools.count(1)

    def new_token(self, table_name: str) -> str:
        """Return a result-set token never handed out before by this cache."""
        return f"{table_name}#{next(self._serial)}"

    def get(self, key: str, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        try:
            return self._entries[key]
        except KeyError:
            pass
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            if key not in self._entries:
                self._entries[key] = compute()
        # a failed compute keeps its lock, so waiters and newcomers share it
        with self._guard:
            if self._locks.get(key) is lock:
                del self._locks[key]
        return self._entries[key]

    def clear(self) -> None:
        with self._guard:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


def foreign_key_matcher(pattern: str) -> re.Pattern:
    """Regex matching the column names produced by a foreign key pattern such as ``%s_id``."""
    parts = (re.escape(part) for part in pattern.split("%s"))
    return re.compile("[a-z0-9_]+".join(parts), re.IGNORECASE)


def distinct_values(rows: Iterable[Mapping[str, Any]], column: str) -> list[Any]:
    """Distinct non-null values of column across rows, in first-seen order."""
    values = (row.get(column) for row in rows)
    return list(dict.fromkeys(value for value in values if value is not None))


def collect_reference_keys(rows: list[Mapping[str, Any]], primary_key: str,
                           foreign_key_pattern: str) -> dict[str, list[Any]]:
    """Distinct values of the primary key and of every foreign-key-like column.

    Column names are taken from the first row, as every row of a result set
    has the same shape.
    """
    if not rows:
        return {}
    matcher = foreign_key_matcher(foreign_key_pattern)
    columns = [primary_key] + [
        column for column in rows[0]
        if column != primary_key and matcher.fullmatch(column)
    ]
    return {column: distinct_values(rows, column) for column in columns}


def _related_query(record: "Builder", target: str, options: RelationOptions) -> "Builder":
    if options.model is not None:
        return options.model.clone()
    return record.table(target)


def _hydrate(query: "Builder", options: RelationOptions) -> list[tuple[dict[str, Any], Any]]:
    """Run the related query; pair every raw row with its record (or transformed value)."""
    records = query.find()
    if options.transform is None:
        return [(related.to_dict(), related) for related in records]
    return [(related.to_dict(), options.transform(related.to_dict())) for related in records]


def _resolve_many(record: "Builder", target: str, options: RelationOptions) -> list[Any]:
    local_key = options.local_key or record.primary_key_name()
    foreign_key = options.foreign_key or record.foreign_key_name()
    # Under backref the related rows carry local_key and this result set supplies foreign_key.
    match_column, source_column = (local_key, foreign_key) if options.backref else (foreign_key, local_key)
    token = fingerprint(record.table_token, target, foreign_key, RelationKind.MANY)

    def compute():
        query = _related_query(record, target, options)
        query.where_in(match_column, record.reference_values(source_column))
        if options.where:
            query.where(options.where)
        if options.sort:
            query.order_by(options.sort)
        partition: dict[Any, list[Any]] = {}
        for row, related in _hydrate(query, options):
            partition.setdefault(row.get(match_column), []).append(related)
        logger.debug("Cached %s partition(s) for %s", len(partition), token)
        return partition

    partition = record._bound_database().cache.get_or_compute(token, compute)
    return list(partition.get(record.get(source_column), []))


def _resolve_one(record: "Builder", target: str, options: RelationOptions) -> Any:
    local_key = options.local_key or record.format_key_name(record.structure.foreign_key, target)
    value = record.get(local_key)
    if not value:
        return None
    token = fingerprint(record.table_token, target, local_key, RelationKind.ONE)

    def compute():
        query = _related_query(record, target, options)
        foreign_key = options.foreign_key or query.primary_key_name()
        query.where_in(foreign_key, record.reference_values(local_key))
        if options.where:
            query.where(options.where)
        if options.sort:
            query.order_by(options.sort)
        return {row.get(foreign_key): related for row, related in _hydrate(query, options)}

    return record._bound_database().cache.get_or_compute(token, compute).get(value)


def resolve(record: "Builder", target: str, options: RelationOptions) -> Any:
    """Resolve an association of a hydrated record.

    Returns:
        For MANY, a list of related records (empty when none). For ONE, the
        related record, or None.
    """
    if options.kind is RelationKind.ONE:
        return _resolve_one(record, target, options)
    return _resolve_many(record, target, options)


__all__ = [
    "RelationKind",
    "RelationOptions",
    "AssociationCache",
    "fingerprint",
    "foreign_key_matcher",
    "distinct_values",
    "collect_reference_keys",
    "resolve",
]
