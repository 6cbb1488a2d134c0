from __future__ import annotations

import pytest

from sqlite_cli.core.decoder import decode_response, ensure_terminated
from sqlite_cli.core.errors import DecodeFailedError, UnexpectedShapeError


def test_empty_response_is_no_data_in_both_modes() -> None:
    assert decode_response("", "structured") is None
    assert decode_response("  \n\t", "structured") is None
    assert decode_response("", "raw") is None


def test_structured_rows_are_returned_as_list_of_dicts() -> None:
    rows = decode_response('[{"1+1":2}]', "structured")
    assert rows == [{"1+1": 2}]


def test_structured_empty_array_is_distinct_from_no_data() -> None:
    assert decode_response("[]", "structured") == []
    assert decode_response("", "structured") is None


def test_structured_single_object_is_accepted() -> None:
    assert decode_response('{"a": 1}', "structured") == {"a": 1}


def test_raw_mode_returns_trimmed_text() -> None:
    assert decode_response("  current output mode: json\n", "raw") == "current output mode: json"


def test_raw_mode_does_not_parse_json() -> None:
    assert decode_response("[1, 2]", "raw") == "[1, 2]"


def test_invalid_json_is_decode_failure_with_raw_text() -> None:
    with pytest.raises(DecodeFailedError) as ei:
        decode_response("id|name\n1|x", "structured")
    assert ei.value.code == "DECODE_FAILED"
    assert ei.value.raw == "id|name\n1|x"
    assert ei.value.details["raw"] == "id|name\n1|x"


@pytest.mark.parametrize("raw", ["42", '"text"', "true", "null"])
def test_scalar_json_is_unexpected_shape(raw: str) -> None:
    with pytest.raises(UnexpectedShapeError) as ei:
        decode_response(raw, "structured")
    assert ei.value.code == "UNEXPECTED_SHAPE"
    assert ei.value.details["raw"] == raw


def test_array_with_non_object_rows_is_unexpected_shape() -> None:
    with pytest.raises(UnexpectedShapeError) as ei:
        decode_response('[{"a": 1}, 2]', "structured")
    assert ei.value.details["actual"] == "int"


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        decode_response("[]", "yaml")  # type: ignore[arg-type]


def test_debug_tracing_does_not_change_result(caplog) -> None:  # type: ignore[no-untyped-def]
    caplog.set_level("DEBUG", logger="sqlite_cli.core.decoder")
    assert decode_response('[{"a": 1}]', "structured", debug=True) == [{"a": 1}]
    assert any("decoded JSON" in r.getMessage() for r in caplog.records)


def test_ensure_terminated() -> None:
    assert ensure_terminated("SELECT 1") == "SELECT 1;"
    assert ensure_terminated("SELECT 1;") == "SELECT 1;"
    assert ensure_terminated("SELECT 1;  \n") == "SELECT 1;"
