from __future__ import annotations

from sqlite_cli.utils import escape_sql_string, join_fields, sql_literal


def test_escape_sql_string_doubles_quotes() -> None:
    assert escape_sql_string("O'Brien") == "'O''Brien'"
    assert escape_sql_string("") == "''"


def test_sql_literal_types() -> None:
    assert sql_literal(None) == "NULL"
    assert sql_literal(True) == "1"
    assert sql_literal(False) == "0"
    assert sql_literal(42) == "42"
    assert sql_literal(1.5) == "1.5"
    assert sql_literal("it's") == "'it''s'"


def test_join_fields() -> None:
    assert join_fields(["name", "age"]) == "name, age"
    assert join_fields("name, age") == "name, age"


def test_sql_literal_non_finite_floats() -> None:
    assert sql_literal(float("inf")) == "9e999"
    assert sql_literal(float("-inf")) == "-9e999"
    assert sql_literal(float("nan")) == "NULL"
