"""Tests for paginate(), filter() and paging_meta()."""

import pytest

from fluentql.exceptions import ConfigurationError

USER_COLUMNS = {"id": "integer", "name": "varchar", "created_datetime": "datetime"}


@pytest.fixture
def users(setup_db):
    users = setup_db.table("user", columns=USER_COLUMNS, display_column="name")
    users.insert([{"name": name} for name in ("Alice", "Bob", "Carol", "Dave", "Alan")])
    return setup_db.table("user")


def _names(records):
    return [record.get("name") for record in records]


def test_paginate(users):
    query = users.paginate({"_items": "2", "_page": "2", "_order": "name"})
    assert query.get_limit() == 2
    assert query.get_offset() == 2
    meta = query.paging_meta()
    assert meta == {
        "items": 2,
        "page": 2,
        "pages": 3,
        "order": ["name"],
        "total": 5,
        "filters": {},
        "fields": [],
    }
    assert _names(query.find()) == ["Bob", "Carol"]


def test_paginate_ignores_bad_values(users):
    query = users.paginate({"_items": "many", "_order": "unknown"})
    assert query.get_limit() is None
    assert query.order_by_fields == []
    assert len(query.find()) == 5


def test_paginate_fields(users):
    query = users.paginate({"_fields": "name|bogus", "_order": "id"})
    assert query.requested_fields == ["name"]
    rows = query.find(lambda rows: rows)
    assert rows[0] == {"name": "Alice"}


def test_paginate_display_field(users):
    query = users.paginate({"_fields": ["id", "_display_field"]})
    assert query.requested_fields == ["id", "name"]


def test_paginate_fields_with_alias(setup_db):
    query = setup_db.table("user", "u", columns=USER_COLUMNS).paginate({"_fields": "u:name"})
    assert query.select_query == "SELECT u.name FROM user AS u WHERE 1"
    with pytest.raises(ConfigurationError, match="x:name"):
        setup_db.table("user", "u").paginate({"_fields": "x:name"})


def test_filter_with_alternatives(users):
    query = users.filter({"name": "Alice|Bob", "unknown": "x"}).order_by("id")
    assert query.filter_meta == {"name": "Alice|Bob"}
    assert _names(query.find()) == ["Alice", "Bob"]


def test_filter_single_value(users):
    assert _names(users.filter({"name": "Dave", "id": ""}).find()) == ["Dave"]


def test_search_matches_string_columns(users):
    query = users.filter({"_search": "al"}).order_by("id")
    assert query.select_query == "SELECT * FROM user WHERE (1 = 1) AND (name LIKE ?) ORDER BY id"
    assert _names(query.find()) == ["Alice", "Alan"]


def test_search_combines_with_filters(users):
    query = users.filter({"name": "Alice|Bob|Alan", "_search": "ce|an"}).order_by("id")
    assert query.select_query == (
        "SELECT * FROM user WHERE ((name IN (?, ?, ?)) AND 1 = 1) AND (name LIKE ? OR name LIKE ?) ORDER BY id"
    )
    assert _names(query.find()) == ["Alice", "Alan"]


def test_paging_meta_with_filters(users):
    query = users.filter({"_search": "a"}).paginate({"_items": 2})
    meta = query.paging_meta()
    # every name but Bob contains an "a"
    assert meta["total"] == 4
    assert meta["pages"] == 2
    assert meta["page"] == 1
    assert meta["filters"] == {}


def test_query_meta(users):
    assert users.limit(10, 30).get_query_meta() == {"limit": 10, "offset": 30, "next": None, "previous": None}
