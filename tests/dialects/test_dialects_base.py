"""Tests for fluentql.dialects.base: Dialect defaults and qmark_to_format."""

import pytest

from fluentql.dialects.base import Dialect, qmark_to_format


class _Dialect(Dialect):
    SUPPORTED_SCHEMA = ("dummy",)

    def connect(self, url):
        pass

    def driver_errors(self):
        return (RuntimeError,)


class _FormatDialect(_Dialect):
    PARAMSTYLE = "format"


def test_qmark_to_format_rewrites_placeholders():
    assert qmark_to_format("SELECT * FROM t WHERE a = ? AND b = ?") == "SELECT * FROM t WHERE a = %s AND b = %s"


def test_qmark_to_format_leaves_quoted_marks_alone():
    assert qmark_to_format("SELECT '?', \"?\" FROM t WHERE a = ?") == "SELECT '?', \"?\" FROM t WHERE a = %s"


def test_qmark_to_format_escapes_percent_signs():
    assert qmark_to_format("SELECT 5 % 2 FROM t WHERE a LIKE '50%' AND b = ?") == (
        "SELECT 5 %% 2 FROM t WHERE a LIKE '50%%' AND b = %s"
    )


def test_convert_placeholders_depends_on_paramstyle():
    sql = "SELECT * FROM t WHERE a = ?"
    assert _Dialect().convert_placeholders(sql) == sql
    assert _FormatDialect().convert_placeholders(sql) == "SELECT * FROM t WHERE a = %s"


def test_defaults():
    d = _Dialect()
    assert d.UNBOUNDED_LIMIT is None
    assert d.BEGIN_SQL == "BEGIN"
    assert d.truncate_sql("user") == "TRUNCATE TABLE user"


def test_last_insert_id_reads_cursor():
    class Cursor:
        lastrowid = 42

    assert _Dialect().last_insert_id(None, Cursor(), "id") == 42


def test_interrupt_not_supported_by_default():
    with pytest.raises(NotImplementedError, match="cannot interrupt"):
        _Dialect().interrupt(object())


def test_dialect_is_abstract():
    with pytest.raises(TypeError):
        Dialect()
