"""Plain-data (JSON) representation of condition trees."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqla_abac.conditions._nodes import And, Compare, Condition, Const, Not, Or, Ref
from sqla_abac.context._builder import thaw
from sqla_abac.exceptions import UnsupportedConditionError

__all__ = ["condition_from_dict", "condition_to_dict"]


def condition_to_dict(condition: Condition) -> dict[str, Any]:
    """Serialize a condition tree to JSON-compatible data.

    Shapes::

        {"const": true}
        {"all": [...]}, {"any": [...]}, {"not": {...}}
        {"attr": "resource.owner_id", "op": "equals", "ref": "subject.id"}
        {"attr": "resource.status", "op": "in", "value": ["active", "draft"]}
    """
    if isinstance(condition, Const):
        return {"const": condition.value}
    if isinstance(condition, And):
        return {"all": [condition_to_dict(c) for c in condition.operands]}
    if isinstance(condition, Or):
        return {"any": [condition_to_dict(c) for c in condition.operands]}
    if isinstance(condition, Not):
        return {"not": condition_to_dict(condition.operand)}
    if isinstance(condition, Compare):
        data: dict[str, Any] = {"attr": condition.left.path, "op": condition.op}
        if isinstance(condition.right, Ref):
            data["ref"] = condition.right.path
        else:
            data["value"] = thaw(condition.right)
        return data
    raise UnsupportedConditionError(f"Cannot serialize {type(condition).__name__}")


def condition_from_dict(data: Mapping[str, Any]) -> Condition:
    """Rebuild a condition tree from :func:`condition_to_dict` output.

    Raises:
        UnsupportedConditionError: If the document is malformed.
    """
    if not isinstance(data, Mapping):
        raise UnsupportedConditionError(f"Condition document must be a mapping, got {data!r}")
    if "const" in data:
        return Const(bool(data["const"]))
    if "all" in data:
        return And(tuple(condition_from_dict(c) for c in _as_list(data, "all")))
    if "any" in data:
        return Or(tuple(condition_from_dict(c) for c in _as_list(data, "any")))
    if "not" in data:
        return Not(condition_from_dict(data["not"]))
    if "attr" in data and "op" in data:
        if "ref" in data:
            right: Any = Ref(data["ref"])
        elif "value" in data:
            right = data["value"]
        else:
            raise UnsupportedConditionError(f"Comparison needs 'value' or 'ref': {dict(data)!r}")
        return Compare(data["op"], Ref(data["attr"]), right)
    raise UnsupportedConditionError(f"Unrecognized condition document: {dict(data)!r}")


def _as_list(data: Mapping[str, Any], key: str) -> list[Any]:
    value = data[key]
    if not isinstance(value, (list, tuple)):
        raise UnsupportedConditionError(f"{key!r} must hold a list of conditions")
    return list(value)
