"""Tests for column filtering, validation rules and the save hooks."""

from fluentql.builder import Builder, SaveKind

USER_COLUMNS = {"id": "integer", "name": "varchar", "created_datetime": "datetime"}
RULES = {
    "name": {
        "not_empty": lambda value: bool(value),
        "no_digits": r"[0-9]",
    },
}


def test_undeclared_columns_are_dropped(setup_db):
    users = setup_db.table("user", columns=USER_COLUMNS)
    alice = users.insert({"name": "Alice", "nickname": "Al"})
    assert alice.to_dict() == {"id": 1, "name": "Alice"}
    assert users.columns() == USER_COLUMNS
    assert users.columns(keys_only=True) == ["id", "name", "created_datetime"]
    assert users.skeleton() == {"id": None, "name": None, "created_datetime": None}


def test_star_selects_declared_columns(setup_db):
    users = setup_db.table("user", columns=USER_COLUMNS)
    assert users.select().select_query == "SELECT id, name, created_datetime FROM user WHERE 1"


def test_regex_rule_flags_matching_values(setup_db):
    users = setup_db.table("user", columns=USER_COLUMNS, rules=RULES)
    record = users.insert({"name": "Ann"})
    assert record.update({"name": "Ann2"}) is False
    assert record.errors() == {"name": ["no_digits"]}
    assert setup_db.table("user").find_one(1).get("name") == "Ann"


def test_callable_rule_passes_when_truthy(setup_db):
    users = setup_db.table("user", columns=USER_COLUMNS, rules=RULES)
    record = users.insert({"name": "Ann"})
    assert record.update({"name": ""}) is False
    assert record.errors() == {"name": ["not_empty"]}
    assert record.update({"name": "Anna"}) == 1
    assert record.errors() == {}


def test_missing_columns_are_not_checked():
    query = Builder(table_name="user", rules=RULES)
    assert query.validate_record({"created_datetime": "2020-01-01"})
    assert query.validate_record({"name": None})


def test_primary_key_not_empty_is_skipped_on_insert():
    query = Builder(table_name="user", rules={"id": {"not_empty": lambda value: bool(value)}})
    assert query.validate_record({"id": 0}, mode="insert")
    assert not query.validate_record({"id": 0}, mode="update")
    assert query.errors() == {"id": ["not_empty"]}


def test_rules_are_remembered_per_table(setup_db):
    setup_db.table("user", columns=USER_COLUMNS, rules=RULES)
    users = setup_db.table("user")
    assert users.column_types == USER_COLUMNS
    assert set(users.rules["name"]) == {"not_empty", "no_digits"}


SAVED = []


class Stamped(Builder):
    """Fills created_datetime on insert and upper-cases names."""

    def apply_defaults(self, data, kind):
        if kind is SaveKind.INSERT:
            data.setdefault("created_datetime", "2000-01-01 00:00:00")
        return data

    def before_save(self, data, kind):
        data = super().before_save(data, kind)
        if "name" in data:
            data["name"] = data["name"].upper()
        return data

    def after_save(self, data, kind):
        SAVED.append((kind, dict(data)))
        return data


def test_hooks(setup_db):
    users = setup_db.table("user", columns=USER_COLUMNS, model=Stamped)
    record = users.insert({"name": "alice"})
    assert isinstance(record, Stamped)
    assert record.to_dict() == {"id": 1, "name": "ALICE", "created_datetime": "2000-01-01 00:00:00"}
    record.update({"name": "alicia"})
    assert setup_db.table("user").find_one(1).get("name") == "ALICIA"
    assert SAVED == [
        (SaveKind.INSERT, {"name": "ALICE", "created_datetime": "2000-01-01 00:00:00"}),
        (SaveKind.UPDATE, {"name": "ALICIA"}),
    ]
