"""Condition interpreter — evaluates a condition tree against a context.

One total, side-effect-free function walks the tree. Comparisons between
incompatible types, and comparisons against missing attributes (unless
configured to raise), are non-matches rather than errors.
"""

from __future__ import annotations

import ipaddress
import operator
from collections.abc import Callable
from typing import Any

from sqla_abac._types import OnMissingAttribute
from sqla_abac.conditions._nodes import And, Compare, Condition, Const, Not, Or, Ref
from sqla_abac.context._builder import MISSING, EvaluationContext
from sqla_abac.exceptions import UnsupportedConditionError

__all__ = ["apply_operator", "evaluate_condition", "resolve_operand"]

_COLLECTIONS = (tuple, list, frozenset, set)

# Order comparisons; TypeError on incompatible operands means "no match".
_ORDER_MAP: dict[str, Callable[[Any, Any], Any]] = {
    "greater_than": operator.gt,
    "less_than": operator.lt,
    "greater_or_equal": operator.ge,
    "less_or_equal": operator.le,
}


def _ip_in_range(value: Any, networks: Any) -> bool:
    if not isinstance(value, str):
        return False
    if not isinstance(networks, _COLLECTIONS):
        networks = (networks,)
    try:
        address = ipaddress.ip_address(value)
        return any(
            address in ipaddress.ip_network(network, strict=False) for network in networks
        )
    except (TypeError, ValueError):
        return False


def _member(item: Any, collection: Any) -> bool:
    try:
        return item in collection
    except TypeError:
        return False


def apply_operator(op: str, left: Any, right: Any) -> bool:
    """Apply a comparison operator to two resolved values.

    Example::

        apply_operator("in", "cs", ("cs", "ee"))  # True
        apply_operator("greater_than", "a", 1)  # False (incompatible types)
    """
    if op == "equals":
        return bool(left == right)
    if op == "not_equals":
        return bool(left != right)
    if op == "in":
        return isinstance(right, _COLLECTIONS) and _member(left, right)
    if op == "not_in":
        return isinstance(right, _COLLECTIONS) and not _member(left, right)
    if op == "contains":
        if isinstance(left, str):
            return isinstance(right, str) and right in left
        return isinstance(left, _COLLECTIONS) and _member(right, left)
    if op == "starts_with":
        return isinstance(left, str) and isinstance(right, str) and left.startswith(right)
    if op == "ends_with":
        return isinstance(left, str) and isinstance(right, str) and left.endswith(right)
    if op == "between":
        if not isinstance(right, _COLLECTIONS) or len(right) != 2:
            return False
        low, high = tuple(right)
        try:
            return bool(low <= left <= high)
        except TypeError:
            return False
    if op == "ip_in_range":
        return _ip_in_range(left, right)
    py_op = _ORDER_MAP.get(op)
    if py_op is not None:
        if left is None or right is None:
            return False
        try:
            return bool(py_op(left, right))
        except TypeError:
            return False
    raise UnsupportedConditionError(f"Unsupported operator: {op!r}")


def resolve_operand(
    operand: Any,
    context: EvaluationContext,
    *,
    on_missing_attribute: OnMissingAttribute = "no_match",
) -> Any:
    """Resolve a literal or :class:`Ref` to a value (``MISSING`` if absent)."""
    if not isinstance(operand, Ref):
        return operand
    value = context.lookup(operand.path)
    if value is MISSING and on_missing_attribute == "raise":
        raise UnsupportedConditionError(f"Attribute {operand.path!r} is not present in the context")
    return value


def evaluate_condition(
    condition: Condition,
    context: EvaluationContext,
    *,
    on_missing_attribute: OnMissingAttribute = "no_match",
) -> bool:
    """Evaluate *condition* against *context*.

    Args:
        condition: The condition tree.
        context: The evaluation context (resource may be unbound, in which
            case resource references resolve as missing).
        on_missing_attribute: ``"no_match"`` or ``"raise"``.

    Returns:
        ``True`` if the condition holds.

    Raises:
        UnsupportedConditionError: On unknown node types, or on missing
            attributes when ``on_missing_attribute="raise"``.
    """
    return _eval(condition, context, on_missing_attribute)


def _eval(node: Any, context: EvaluationContext, mode: OnMissingAttribute) -> bool:
    if isinstance(node, Const):
        return node.value
    if isinstance(node, And):
        return all(_eval(c, context, mode) for c in node.operands)
    if isinstance(node, Or):
        return any(_eval(c, context, mode) for c in node.operands)
    if isinstance(node, Not):
        return not _eval(node.operand, context, mode)
    if isinstance(node, Compare):
        left = resolve_operand(node.left, context, on_missing_attribute=mode)
        right = resolve_operand(node.right, context, on_missing_attribute=mode)
        if left is MISSING or right is MISSING:
            return False
        return apply_operator(node.op, left, right)
    raise UnsupportedConditionError(f"Unsupported condition node: {type(node).__name__}")
