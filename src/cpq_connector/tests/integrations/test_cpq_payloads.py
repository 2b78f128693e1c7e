import pytest

from cpq_connector.integrations.cpq_errors import CPQInputError
from cpq_connector.integrations.cpq_payloads import (
    ConditionRow,
    build_json_patch,
    compile_conditions,
    join_include_fields,
    parse_json_field,
    parse_patch_operations,
    render_condition,
)


def test_compile_conditions_returns_none_when_empty() -> None:
    assert compile_conditions(None, [], "and") is None
    assert compile_conditions("   ", None) is None


def test_compile_conditions_passes_raw_through() -> None:
    assert compile_conditions("x=1", [], "and") == "x=1"


def test_compile_single_string_row() -> None:
    rows = [{"field": "summary", "operator": "=", "valueType": "string", "value": "Hi"}]
    assert compile_conditions(None, rows, "and") == 'summary = "Hi"'


def test_compile_joins_rows_with_upper_case_keyword() -> None:
    rows = [
        ConditionRow(field="a", value_type="integer", value="1"),
        ConditionRow(field="b", value_type="integer", value=2),
    ]
    assert compile_conditions(None, rows, "or") == "a = 1 OR b = 2"


def test_compile_appends_rows_to_raw_conditions() -> None:
    rows = [ConditionRow(field="quoteNumber", operator=">", value_type="integer", value="5")]
    assert compile_conditions('status = "Won"', rows, "and") == 'status = "Won" AND quoteNumber > 5'


def test_compile_rejects_unknown_logic() -> None:
    with pytest.raises(CPQInputError):
        compile_conditions("x=1", [], "xor")


def test_list_values_are_trimmed_and_empty_entries_dropped() -> None:
    row = ConditionRow(field="status", operator="IN", value_type="list", values="a, b ,")
    assert render_condition(row) == 'status in ("a","b")'


def test_empty_list_skips_the_row() -> None:
    rows = [
        ConditionRow(field="status", operator="in", value_type="list", values=" , "),
        ConditionRow(field="id", value_type="integer", value="3"),
    ]
    assert compile_conditions(None, rows) == "id = 3"


def test_boolean_values_are_title_cased() -> None:
    assert render_condition(ConditionRow(field="expired", value_type="boolean", value="TRUE")) == "expired = True"
    assert render_condition(ConditionRow(field="expired", value_type="boolean", value=False)) == "expired = False"
    # anything else is passed through unchanged
    assert render_condition(ConditionRow(field="expired", value_type="boolean", value="maybe")) == "expired = maybe"


def test_datetime_values_are_bracketed() -> None:
    row = ConditionRow(field="createDate", operator=">", value_type="datetime", value="2024-01-31T00:00:00Z")
    assert render_condition(row) == "createDate > [2024-01-31T00:00:00Z]"


def test_reference_subfield_is_joined_with_slash() -> None:
    row = ConditionRow(field="owner", reference_subfield="name", value="Ann")
    assert render_condition(row) == 'owner/name = "Ann"'


def test_integer_takes_leading_digits() -> None:
    assert render_condition(ConditionRow(field="n", value_type="integer", value="42abc")) == "n = 42"


def test_non_numeric_integer_is_rejected() -> None:
    with pytest.raises(CPQInputError, match="expects an integer"):
        render_condition(ConditionRow(field="n", value_type="integer", value="abc"))


def test_escaped_quotes_in_strings_are_unescaped() -> None:
    row = ConditionRow(field="name", value='Say \\"hi\\"')
    assert render_condition(row) == 'name = "Say "hi""'


def test_rows_without_field_or_with_unknown_type_are_skipped() -> None:
    rows = [
        {"field": "", "value": "x"},
        {"field": "a", "valueType": "money", "value": "1"},
        {"field": "b", "value": "ok"},
    ]
    assert compile_conditions(None, rows) == 'b = "ok"'


def test_row_defaults_from_dict() -> None:
    row = ConditionRow.from_dict({"field": "a", "operator": None, "value": "x"})
    assert row.operator == "="
    assert row.value_type == "string"


def test_build_json_patch_copies_entries() -> None:
    ops = [{"op": "replace", "path": "/quantity", "value": 2}]
    assert build_json_patch(ops) == [{"op": "replace", "path": "/quantity", "value": 2}]


def test_build_json_patch_keeps_from_falsy_and_null_values() -> None:
    ops = [
        {"op": "move", "path": "/b", "from": "/a"},
        {"op": "replace", "path": "/taxable", "value": False},
        {"op": "add", "path": "/discount", "value": None},
        {"op": "remove", "path": "/note", "extra": "ignored"},
    ]
    assert build_json_patch(ops) == [
        {"op": "move", "path": "/b", "from": "/a"},
        {"op": "replace", "path": "/taxable", "value": False},
        {"op": "add", "path": "/discount", "value": None},
        {"op": "remove", "path": "/note"},
    ]


def test_build_json_patch_ignores_non_lists() -> None:
    assert build_json_patch("not-an-array") == []
    assert build_json_patch(None) == []


def test_build_json_patch_rejects_non_object_entries() -> None:
    with pytest.raises(CPQInputError):
        build_json_patch([{"op": "remove", "path": "/a"}, "oops"])


def test_parse_patch_operations_accepts_json_text() -> None:
    assert parse_patch_operations('[{"op": "remove", "path": "/a"}]') == [{"op": "remove", "path": "/a"}]
    assert parse_patch_operations("") == []


def test_parse_json_field() -> None:
    assert parse_json_field('{"a": 1}', field_name="body_json", default={}) == {"a": 1}
    assert parse_json_field({"a": 1}, field_name="body_json", default={}) == {"a": 1}
    assert parse_json_field("  ", field_name="body_json", default={}) == {}
    assert parse_json_field(None, field_name="body_json", default={}) == {}


def test_parse_json_field_rejects_invalid_json() -> None:
    with pytest.raises(CPQInputError, match="customer_json"):
        parse_json_field("{nope", field_name="customer_json", default={})


def test_join_include_fields() -> None:
    assert join_include_fields(["id", " name ", ""]) == "id,name"
    assert join_include_fields(" id,name ") == "id,name"
    assert join_include_fields(None) == ""
