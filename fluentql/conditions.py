"""WHERE / HAVING condition lists with AND/OR chaining and parenthesised groups.

A ``ConditionList`` is an ordered sequence of nodes. A ``Predicate`` carries an
SQL fragment, its bound values and the operator joining it to what precedes
it. A ``Boundary`` is a literal token: an opening or closing parenthesis, or an
explicit AND/OR emitted between groups. ``wrap()`` encloses every node added
since the previous group boundary in parentheses, e.g.::

    conditions.add("a = ?", (1,))
    conditions.add("b = ?", (2,))
    conditions.wrap()          # (a = ? AND b = ?)
    conditions.or_()           # explicit OR after the group
    conditions.add("c = ?", (3,))
    conditions.render()        # ' WHERE (a = ? AND b = ?) OR c = ?'
"""

from __future__ import annotations

import enum
import re
from typing import Any, Union

from pydantic import BaseModel, Field


class Operator(str, enum.Enum):
    """Boolean operator joining a predicate to the previous one."""

    AND = "AND"
    OR = "OR"

    @property
    def sql(self) -> str:
        return f" {self.value} "


class BoundaryKind(str, enum.Enum):
    OPEN = "("
    CLOSE = ")"
    AND = " AND "
    OR = " OR "


class Predicate(BaseModel):
    """A condition fragment with ``?`` placeholders and the values bound to them."""

    model_config = {"frozen": True}

    statement: str
    params: tuple[Any, ...] = ()
    operator: Operator = Operator.AND


class Boundary(BaseModel):
    """A literal token in the node sequence (parenthesis or explicit operator)."""

    model_config = {"frozen": True}

    kind: BoundaryKind

    @property
    def sql(self) -> str:
        return self.kind.value


Node = Union[Predicate, Boundary]

# A group closed by wrap() followed by an explicit AND/OR already supplies the operator.
_DANGLING_OPERATOR = re.compile(r"\)\s+(OR|AND)\s+$", re.IGNORECASE)


def placeholders(count: int) -> str:
    """Return ``count`` question marks separated by commas, e.g. ``?, ?, ?``."""
    return ", ".join("?" for _ in range(count))


class ConditionList(BaseModel):
    """Mutable sequence of predicates and boundaries, rendered into one clause."""

    nodes: list[Node] = Field(default_factory=list)
    operator: Operator = Operator.AND
    """Operator attached to the next predicate; reset to AND after each add()."""
    wrap_open: bool = False
    """True right after wrap(): the next and_()/or_() emits an explicit boundary."""
    last_wrap_position: int = 0
    """Index of the first node not yet enclosed by a wrap() group."""

    @property
    def is_empty(self) -> bool:
        return not any(isinstance(node, Predicate) for node in self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def add(self, statement: str, params: tuple[Any, ...] | list[Any] = ()) -> "ConditionList":
        """Append a predicate joined with the pending operator, then reset it to AND."""
        if self.wrap_open:
            self.and_()
        self.nodes.append(Predicate(statement=statement, params=tuple(params), operator=self.operator))
        self.operator = Operator.AND
        return self

    def _join(self, operator: Operator) -> "ConditionList":
        if self.wrap_open:
            self.nodes.append(Boundary(kind=BoundaryKind[operator.name]))
            self.last_wrap_position = len(self.nodes)
            self.wrap_open = False
        else:
            self.operator = operator
        return self

    def and_(self) -> "ConditionList":
        """Join the next predicate (or group) with AND."""
        return self._join(Operator.AND)

    def or_(self) -> "ConditionList":
        """Join the next predicate (or group) with OR."""
        return self._join(Operator.OR)

    def wrap(self) -> "ConditionList":
        """Enclose every node added since the last group boundary in parentheses."""
        self.wrap_open = True
        head = self.nodes[:self.last_wrap_position]
        grouped = self.nodes[self.last_wrap_position:]
        self.nodes = head + [Boundary(kind=BoundaryKind.OPEN)] + grouped + [Boundary(kind=BoundaryKind.CLOSE)]
        self.last_wrap_position = len(self.nodes)
        return self

    def render(self, keyword: str = "WHERE", empty: str = " WHERE 1") -> str:
        """Render the clause, e.g. `` WHERE (a = ? OR b = ?) AND c = ?``.

        ``empty`` is returned when there are no nodes, so that callers can
        always append further clauses after a WHERE.
        """
        if not self.nodes:
            return empty
        sql = ""
        last: Node | None = None
        for node in self.nodes:
            if isinstance(node, Predicate):
                after_open = isinstance(last, Boundary) and last.kind is BoundaryKind.OPEN
                if sql and not after_open and not _DANGLING_OPERATOR.search(sql):
                    sql += node.operator.sql
                sql += node.statement
            else:
                sql += node.sql
            last = node
        return f" {keyword} {sql}"

    @property
    def parameters(self) -> tuple[Any, ...]:
        """Bound values in the same order as the placeholders of render()."""
        values: list[Any] = []
        for node in self.nodes:
            if isinstance(node, Predicate):
                values.extend(node.params)
        return tuple(values)

    def clone(self) -> "ConditionList":
        return self.model_copy(update={"nodes": list(self.nodes)})

    def reset(self) -> "ConditionList":
        self.nodes = []
        self.operator = Operator.AND
        self.wrap_open = False
        self.last_wrap_position = 0
        return self


__all__ = [
    "Operator",
    "BoundaryKind",
    "Predicate",
    "Boundary",
    "Node",
    "ConditionList",
    "placeholders",
]
