"""Helpers for building CPQ request payloads.

These functions are intentionally "dumb" and deterministic so they can be
unit-tested without calling the CPQ API.

CPQ list endpoints accept a `conditions` query parameter written in the API's
own filter grammar, e.g.::

    summary = "Hi" AND quoteNumber > 5 AND status in ("Won","Lost")

Rules for the right-hand side:
- strings are double quoted
- integers as-is
- booleans as True / False
- datetimes in square brackets [2024-01-31T00:00:00Z]
- lists as ("a","b")

PATCH endpoints take a JSON Patch array of {op, path, from?, value?}.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable

from cpq_connector.integrations.cpq_errors import CPQInputError

VALUE_TYPES = ("string", "integer", "boolean", "datetime", "list")
LOGIC_KEYWORDS = {"and": "AND", "or": "OR"}

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_TRUE_RE = re.compile(r"^true$", re.IGNORECASE)
_FALSE_RE = re.compile(r"^false$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ConditionRow:
    field: str = ""
    reference_subfield: str = ""
    operator: str = "="
    value_type: str = "string"
    value: Any = ""
    values: str = ""

    @property
    def left_hand_side(self) -> str:
        field = (self.field or "").strip()
        ref = (self.reference_subfield or "").strip()
        return f"{field}/{ref}" if ref else field

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ConditionRow":
        """Build a row from snake_case or camelCase keys."""

        def _pick(*keys: str) -> Any:
            for k in keys:
                if raw.get(k) is not None:
                    return raw[k]
            return None

        return cls(
            field=_pick("field") or "",
            reference_subfield=_pick("reference_subfield", "referenceSubfield") or "",
            operator=_pick("operator") or "=",
            value_type=_pick("value_type", "valueType") or "string",
            value=_pick("value"),
            values=_pick("values") or "",
        )


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quote(s: str) -> str:
    # \" in the input becomes a plain quote; nothing is re-escaped.
    return '"' + s.replace('\\"', '"') + '"'


def _parse_int(value: str, *, left: str) -> int:
    m = _LEADING_INT_RE.match(value)
    if not m:
        raise CPQInputError(f"Condition on {left!r} expects an integer, got {value!r}")
    return int(m.group(1))


def render_condition_value(row: ConditionRow) -> str | None:
    """Render the right-hand side of one condition, or None to skip the row."""

    value_type = (row.value_type or "string").lower()
    value = _as_text(row.value)

    if value_type == "list":
        items = [s.strip() for s in _as_text(row.values).split(",")]
        quoted = ",".join(_quote(s) for s in items if s)
        return f"({quoted})" if quoted else None
    if value_type == "string":
        return _quote(value)
    if value_type == "integer":
        return str(_parse_int(value, left=row.left_hand_side))
    if value_type == "boolean":
        if _TRUE_RE.match(value):
            return "True"
        if _FALSE_RE.match(value):
            return "False"
        return value
    if value_type == "datetime":
        return f"[{value}]"
    return None


def render_condition(row: ConditionRow) -> str | None:
    field = (row.field or "").strip()
    ref = (row.reference_subfield or "").strip()
    if not field and not ref:
        return None

    right = render_condition_value(row)
    if not right:
        return None

    operator = (row.operator or "=").lower()
    return f"{row.left_hand_side} {operator} {right}"


def _logic_keyword(logic: str | None) -> str:
    key = (logic or "and").strip().lower()
    if key not in LOGIC_KEYWORDS:
        raise CPQInputError(f"Conditions logic must be 'and' or 'or', got {logic!r}")
    return LOGIC_KEYWORDS[key]


def compile_conditions(
    raw_conditions: str | None,
    rows: Iterable[ConditionRow | dict[str, Any]] | None,
    logic: str = "and",
) -> str | None:
    """Compile structured condition rows into a CPQ `conditions` string.

    The compiled rows are appended to `raw_conditions` (if any) with the same
    AND/OR keyword. Returns None when there is nothing to filter on, so the
    caller can omit the query parameter entirely.
    """

    keyword = _logic_keyword(logic)

    parts: list[str] = []
    for row in rows or []:
        if row is None:
            continue
        if not isinstance(row, ConditionRow):
            row = ConditionRow.from_dict(row)
        clause = render_condition(row)
        if clause:
            parts.append(clause)

    joined = f" {keyword} ".join(parts)
    raw = (raw_conditions or "").strip()
    if raw and joined:
        return f"{raw} {keyword} {joined}"
    return raw or joined or None


def build_json_patch(operations: Any) -> list[dict[str, Any]]:
    """Normalise JSON Patch operations for PATCH endpoints.

    Non-list input yields an empty patch. `from` and `value` are copied only
    when the entry has them, so no placeholder keys reach the wire.
    """

    if not isinstance(operations, list):
        return []

    out: list[dict[str, Any]] = []
    for entry in operations:
        if not isinstance(entry, dict):
            raise CPQInputError(f"Patch operations must be objects, got {type(entry).__name__}")
        op: dict[str, Any] = {"op": entry.get("op"), "path": entry.get("path")}
        if "from" in entry:
            op["from"] = entry["from"]
        if "value" in entry:
            op["value"] = entry["value"]
        out.append(op)
    return out


def parse_json_field(value: Any, *, field_name: str, default: Any) -> Any:
    """Accept a JSON string or an already-parsed value; blank means `default`."""

    if value is None:
        return default
    if isinstance(value, str):
        if not value.strip():
            return default
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise CPQInputError(f"{field_name} is not valid JSON: {e.msg}") from e
    return value


def parse_patch_operations(value: Any) -> list[dict[str, Any]]:
    return build_json_patch(parse_json_field(value, field_name="patch_operations", default=[]))


def join_include_fields(value: str | list[str] | None) -> str:
    if isinstance(value, list):
        return ",".join(str(v).strip() for v in value if str(v).strip())
    return (value or "").strip()
