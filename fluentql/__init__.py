"""fluentql: a fluent SQL query builder and active-record layer with batched associations."""

from .builder import Builder, SaveKind, Structure
from .conditions import Operator
from .connection import Settings, connect
from .database import Database
from .exceptions import (
    ConfigurationError,
    DriverError,
    FluentQLError,
    QueryCancelledError,
    QueryExecutionError,
    TransactionError,
)
from .relations import AssociationCache, RelationKind, RelationOptions
