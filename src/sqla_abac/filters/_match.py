"""In-memory evaluation of filter documents against records."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqla_abac.conditions._eval import apply_operator
from sqla_abac.context._builder import MISSING
from sqla_abac.exceptions import InvalidInput

__all__ = ["matches_filter"]

_FILTER_TO_OPERATOR: dict[str, str] = {
    "$eq": "equals",
    "$ne": "not_equals",
    "$in": "in",
    "$nin": "not_in",
    "$contains": "contains",
    "$startswith": "starts_with",
    "$endswith": "ends_with",
    "$gt": "greater_than",
    "$lt": "less_than",
    "$gte": "greater_or_equal",
    "$lte": "less_or_equal",
}


def matches_filter(document: Mapping[str, Any], record: Mapping[str, Any]) -> bool:
    """Return ``True`` if *record* satisfies the filter *document*.

    Comparisons follow the condition interpreter: a missing field never
    satisfies a comparison, and incompatible types are a non-match.

    Raises:
        InvalidInput: On an unknown ``$`` operator.

    Example::

        matches_filter({"owner_id": 42}, {"id": 1, "owner_id": 42})  # True
    """
    for key, expected in document.items():
        if key == "$and":
            if not all(matches_filter(d, record) for d in expected):
                return False
        elif key == "$or":
            if not any(matches_filter(d, record) for d in expected):
                return False
        elif key == "$nor":
            if any(matches_filter(d, record) for d in expected):
                return False
        elif key.startswith("$"):
            raise InvalidInput(f"Unknown filter operator {key!r}")
        elif not _match_field(_get_path(record, key), expected):
            return False
    return True


def _get_path(record: Mapping[str, Any], path: str) -> Any:
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return MISSING
        current = current[part]
    return current


def _is_operator_mapping(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(k.startswith("$") for k in value)


def _match_field(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return False
    if not _is_operator_mapping(expected):
        return apply_operator("equals", actual, expected)
    for op, operand in expected.items():
        name = _FILTER_TO_OPERATOR.get(op)
        if name is None:
            raise InvalidInput(f"Unknown filter operator {op!r}")
        if name in ("in", "not_in"):
            operand = tuple(operand)
        if not apply_operator(name, actual, operand):
            return False
    return True
