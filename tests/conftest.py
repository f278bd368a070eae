import os
import pytest
from fluentql.connection import connect
from fluentql.database import Database


@pytest.fixture(scope="function")
def setup_db(request):
    """Setup a temporary file SQLite database for each test, with `user` and `friend` tables."""
    os.makedirs("/tmp/fluentql-tests", exist_ok=True)
    path = f"/tmp/fluentql-tests/test-{request.function.__module__}-{request.function.__name__}.sqlite3"
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    connect(f"sqlite:///{path}")
    database = Database()
    database.connection.raw_exec(
        "CREATE TABLE user (id INTEGER PRIMARY KEY AUTOINCREMENT, name VARCHAR(64), created_datetime DATETIME)"
    )
    database.connection.raw_exec(
        "CREATE TABLE friend (id INTEGER PRIMARY KEY AUTOINCREMENT, user_id INTEGER, friend_user_id INTEGER)"
    )
    yield database
    database.close()


@pytest.fixture(scope="function")
def friendships(setup_db):
    """Three users; users 1 and 2 have two friends each, user 3 has none."""
    users = setup_db.table("user")
    for name in ("Alice", "Bob", "Carol"):
        users.insert({"name": name})
    setup_db.table("friend").insert([
        {"user_id": 1, "friend_user_id": 2},
        {"user_id": 1, "friend_user_id": 3},
        {"user_id": 2, "friend_user_id": 1},
        {"user_id": 2, "friend_user_id": 3},
    ])
    return setup_db
