"""Tests for fluentql.conditions: predicate/boundary nodes, AND/OR chaining and wrap()."""

from fluentql.conditions import (
    Boundary,
    BoundaryKind,
    ConditionList,
    Operator,
    Predicate,
    placeholders,
)


class TestRendering:

    def test_empty_renders_always_true_where(self):
        assert ConditionList().render() == " WHERE 1"

    def test_empty_having_renders_nothing(self):
        assert ConditionList().render("HAVING", "") == ""

    def test_predicates_default_to_and(self):
        conditions = ConditionList().add("a = ?", (1,)).add("b = ?", (2,))
        assert conditions.render() == " WHERE a = ? AND b = ?"
        assert conditions.parameters == (1, 2)

    def test_or_applies_to_next_predicate_only(self):
        conditions = ConditionList()
        conditions.add("a = ?", (1,))
        conditions.or_()
        conditions.add("b = ?", (2,))
        conditions.add("c = ?", (3,))
        assert conditions.render() == " WHERE a = ? OR b = ? AND c = ?"

    def test_wrap_then_or(self):
        conditions = ConditionList()
        conditions.add("a = ?", (1,))
        conditions.add("b = ?", (2,))
        conditions.wrap()
        conditions.or_()
        conditions.add("c = ?", (3,))
        assert conditions.render() == " WHERE (a = ? AND b = ?) OR c = ?"
        assert conditions.parameters == (1, 2, 3)

    def test_two_groups(self):
        conditions = ConditionList()
        conditions.add("a = ?", (1,)).or_().add("b = ?", (2,)).wrap()
        conditions.and_()
        conditions.add("c = ?", (3,)).or_().add("d = ?", (4,)).wrap()
        assert conditions.render() == " WHERE (a = ? OR b = ?) AND (c = ? OR d = ?)"
        assert conditions.parameters == (1, 2, 3, 4)

    def test_predicate_right_after_wrap_is_anded(self):
        conditions = ConditionList()
        conditions.add("a = ?", (1,)).wrap()
        conditions.add("b = ?", (2,))
        assert conditions.render() == " WHERE (a = ?) AND b = ?"

    def test_wrap_balances_parentheses(self):
        conditions = ConditionList()
        for index in range(3):
            conditions.add(f"c{index} = ?", (index,)).or_().add(f"d{index} = ?", (index,)).wrap().and_()
        sql = conditions.render()
        assert sql.count("(") == sql.count(")") == 3

    def test_custom_keyword(self):
        conditions = ConditionList().add("COUNT(*) > ?", (2,))
        assert conditions.render("HAVING", "") == " HAVING COUNT(*) > ?"


class TestNodes:

    def test_add_records_pending_operator(self):
        conditions = ConditionList()
        conditions.add("a = 1").or_().add("b = 2")
        assert conditions.nodes == [
            Predicate(statement="a = 1", params=(), operator=Operator.AND),
            Predicate(statement="b = 2", params=(), operator=Operator.OR),
        ]
        assert conditions.operator is Operator.AND

    def test_wrap_inserts_boundaries(self):
        conditions = ConditionList().add("a = 1").wrap()
        assert conditions.nodes[0] == Boundary(kind=BoundaryKind.OPEN)
        assert conditions.nodes[-1] == Boundary(kind=BoundaryKind.CLOSE)
        assert conditions.wrap_open
        assert conditions.last_wrap_position == 3

    def test_is_empty_ignores_boundaries(self):
        conditions = ConditionList()
        assert conditions.is_empty
        conditions.nodes.append(Boundary(kind=BoundaryKind.OPEN))
        assert conditions.is_empty
        conditions.add("a = 1")
        assert not conditions.is_empty

    def test_clone_does_not_share_nodes(self):
        conditions = ConditionList().add("a = ?", (1,))
        twin = conditions.clone()
        twin.add("b = ?", (2,))
        assert len(conditions) == 1
        assert len(twin) == 2

    def test_reset(self):
        conditions = ConditionList().add("a = ?", (1,)).wrap().or_()
        conditions.reset()
        assert conditions.nodes == []
        assert conditions.operator is Operator.AND
        assert not conditions.wrap_open
        assert conditions.last_wrap_position == 0

    def test_boundary_sql(self):
        assert Boundary(kind=BoundaryKind.OR).sql == " OR "
        assert Operator.AND.sql == " AND "


def test_placeholders():
    assert placeholders(0) == ""
    assert placeholders(1) == "?"
    assert placeholders(3) == "?, ?, ?"
