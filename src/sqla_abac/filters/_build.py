"""Build declarative data filters from resource-only conditions.

A filter is a Mongo-style mapping::

    {}                                      # matches everything
    {"owner_id": 42}                        # equality
    {"status": {"$in": ["active", "draft"]}}
    {"$or": [{...}, {...}]}, {"$and": [...]}, {"$nor": [...]}

``{"$or": []}`` matches nothing.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqla_abac._types import FilterDocument
from sqla_abac.conditions._nodes import And, Compare, Condition, Const, Not, Or, Ref
from sqla_abac.context._builder import thaw
from sqla_abac.exceptions import UnsupportedConditionError

__all__ = [
    "FIELD_OPERATORS",
    "LOGICAL_OPERATORS",
    "condition_to_filter",
    "exclude_filters",
    "filter_fields",
    "intersect_filters",
    "is_match_all",
    "is_match_nothing",
    "match_nothing",
    "union_filters",
]

FIELD_OPERATORS: frozenset[str] = frozenset(
    {
        "$eq",
        "$ne",
        "$gt",
        "$gte",
        "$lt",
        "$lte",
        "$in",
        "$nin",
        "$contains",
        "$startswith",
        "$endswith",
    }
)
LOGICAL_OPERATORS: frozenset[str] = frozenset({"$and", "$or", "$nor"})

_OPERATOR_TO_FILTER: dict[str, str] = {
    "equals": "$eq",
    "not_equals": "$ne",
    "in": "$in",
    "not_in": "$nin",
    "contains": "$contains",
    "starts_with": "$startswith",
    "ends_with": "$endswith",
    "greater_than": "$gt",
    "less_than": "$lt",
    "greater_or_equal": "$gte",
    "less_or_equal": "$lte",
}


def match_nothing() -> FilterDocument:
    return {"$or": []}


def is_match_all(document: Mapping[str, Any]) -> bool:
    return not document


def is_match_nothing(document: Mapping[str, Any]) -> bool:
    return len(document) == 1 and document.get("$or") == []


def condition_to_filter(condition: Condition) -> FilterDocument:
    """Translate a resource-only condition into a filter document.

    Raises:
        UnsupportedConditionError: If the condition references non-resource
            attributes, compares two resource fields, or uses an operator
            with no filter equivalent (``ip_in_range``).

    Example::

        condition_to_filter(resource.owner_id.equals(42) | resource.public.equals(True))
        # {"$or": [{"owner_id": 42}, {"public": True}]}
    """
    if isinstance(condition, Const):
        return {} if condition.value else match_nothing()
    if isinstance(condition, And):
        return intersect_filters(*(condition_to_filter(c) for c in condition.operands))
    if isinstance(condition, Or):
        return union_filters(*(condition_to_filter(c) for c in condition.operands))
    if isinstance(condition, Not):
        inner = condition_to_filter(condition.operand)
        if is_match_all(inner):
            return match_nothing()
        if is_match_nothing(inner):
            return {}
        return {"$nor": [inner]}
    if isinstance(condition, Compare):
        return _compare_to_filter(condition)
    raise UnsupportedConditionError(f"Unsupported condition node: {type(condition).__name__}")


def _compare_to_filter(node: Compare) -> FilterDocument:
    if node.left.scope != "resource":
        raise UnsupportedConditionError(
            f"Filter conditions may only reference resource fields, got {node.left!r}"
        )
    if isinstance(node.right, Ref):
        raise UnsupportedConditionError(
            f"Cannot express {node!r} as a data filter: both sides are attributes"
        )
    field = node.left.name
    value = thaw(node.right)
    if node.op == "between":
        low, high = value
        return {field: {"$gte": low, "$lte": high}}
    filter_op = _OPERATOR_TO_FILTER.get(node.op)
    if filter_op is None:
        raise UnsupportedConditionError(f"Operator {node.op!r} has no data-filter equivalent")
    if filter_op == "$eq" and not isinstance(value, (dict, list)):
        return {field: value}
    return {field: {filter_op: value}}


def _flatten(key: str, filters: tuple[FilterDocument, ...]) -> list[FilterDocument]:
    flat: list[FilterDocument] = []
    for f in filters:
        if len(f) == 1 and key in f:
            flat.extend(f[key])
        else:
            flat.append(f)
    return flat


def union_filters(*filters: FilterDocument) -> FilterDocument:
    """OR filters together: a record matching any of them matches the result."""
    if any(is_match_all(f) for f in filters):
        return {}
    parts = [f for f in _flatten("$or", filters) if not is_match_nothing(f)]
    if not parts:
        return match_nothing()
    if len(parts) == 1:
        return dict(parts[0])
    return {"$or": parts}


def intersect_filters(*filters: FilterDocument) -> FilterDocument:
    """AND filters together.

    Plain field filters over disjoint fields are merged into one mapping.
    """
    if any(is_match_nothing(f) for f in filters):
        return match_nothing()
    parts = [f for f in _flatten("$and", filters) if not is_match_all(f)]
    if not parts:
        return {}
    if len(parts) == 1:
        return dict(parts[0])
    merged: FilterDocument = {}
    for part in parts:
        if any(k.startswith("$") or k in merged for k in part):
            return {"$and": parts}
        merged.update(part)
    return merged


def exclude_filters(base: FilterDocument, *excluded: FilterDocument) -> FilterDocument:
    """Restrict *base* to records matching none of *excluded*."""
    if any(is_match_all(f) for f in excluded):
        return match_nothing()
    parts = [f for f in excluded if not is_match_nothing(f)]
    if not parts:
        return dict(base)
    return intersect_filters(base, {"$nor": parts})


def filter_fields(document: Mapping[str, Any]) -> frozenset[str]:
    """Return every field name *document* references, at any nesting depth.

    Example::

        filter_fields({"$or": [{"owner_id": 1}, {"status": {"$ne": "x"}}]})
        # frozenset({"owner_id", "status"})
    """
    fields: set[str] = set()
    for key, value in document.items():
        if key in LOGICAL_OPERATORS:
            for sub in value:
                fields |= filter_fields(sub)
        elif not key.startswith("$"):
            fields.add(key)
    return frozenset(fields)
