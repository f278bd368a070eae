"""Tests for fluentql.transaction: commit, rollback, savepoints and level checks."""

import pytest

from fluentql.exceptions import TransactionError


def _names(database):
    return [user.get("name") for user in database.table("user").order_by("id").find()]


def test_commit(setup_db):
    with setup_db.transaction() as t:
        assert t.level == 1
        assert t.execute("INSERT INTO user (name) VALUES (?)", ("Alice",)) == []
        assert t.execute("SELECT name FROM user") == [{"name": "Alice"}]
    assert _names(setup_db) == ["Alice"]
    assert setup_db.transactions.level == 0


def test_rollback_on_exception(setup_db):
    setup_db.table("user").insert({"name": "Alice"})
    with pytest.raises(ValueError):
        with setup_db.transaction():
            setup_db.table("user").insert({"name": "Bob"})
            raise ValueError("abort")
    assert _names(setup_db) == ["Alice"]
    assert setup_db.transactions.level == 0


def test_nested_failure_only_undoes_inner_work(setup_db):
    with setup_db.transaction() as outer:
        outer.execute("INSERT INTO user (name) VALUES (?)", ("Carol",))
        with pytest.raises(ValueError):
            with setup_db.transaction() as inner:
                assert inner.level == 2
                inner.execute("INSERT INTO user (name) VALUES (?)", ("Dave",))
                raise ValueError("abort")
        outer.execute("INSERT INTO user (name) VALUES (?)", ("Eve",))
    assert _names(setup_db) == ["Carol", "Eve"]


def test_nested_success_is_released_into_outer(setup_db):
    with setup_db.transaction():
        with setup_db.transaction() as inner:
            inner.execute("INSERT INTO user (name) VALUES (?)", ("Dave",))
    assert _names(setup_db) == ["Dave"]


def test_outer_transaction_cannot_be_used_from_nested_level(setup_db):
    with setup_db.transaction() as outer:
        with setup_db.transaction():
            with pytest.raises(TransactionError, match="level 1 from level 2"):
                outer.execute("SELECT 1")
        outer.execute("SELECT 1")


def test_ended_transaction_cannot_be_used(setup_db):
    with setup_db.transaction() as t:
        pass
    with pytest.raises(TransactionError, match="no longer active"):
        t.execute("SELECT 1")


def test_statements_are_profiled(setup_db):
    setup_db.profiler.reset()
    with setup_db.transaction() as t:
        t.execute("SELECT 1")
    assert setup_db.profiler.queries == ["SELECT 1"]


def test_builder_begin_commit_rollback(setup_db):
    users = setup_db.table("user")
    users.begin()
    users.insert({"name": "Alice"})
    users.commit()
    users.begin()
    users.insert({"name": "Bob"})
    users.rollback()
    assert _names(setup_db) == ["Alice"]
