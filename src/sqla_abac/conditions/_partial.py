"""Partial evaluation — reduce a condition to its resource-dependent residue.

Collection-level checks have no concrete resource. Subject and environment
references are resolved against the context; what remains references only
resource fields, with every non-resource operand substituted by its value.
"""

from __future__ import annotations

from typing import Any

from sqla_abac._types import OnMissingAttribute
from sqla_abac.conditions._eval import apply_operator, resolve_operand
from sqla_abac.conditions._nodes import (
    ALWAYS,
    NEVER,
    And,
    Compare,
    Condition,
    Const,
    Not,
    Or,
    Ref,
    all_of,
    any_of,
)
from sqla_abac.context._builder import MISSING, EvaluationContext
from sqla_abac.exceptions import UnsupportedConditionError

__all__ = ["residualize"]

# Operator to use when the resource reference moves from the right-hand
# side of a comparison to the left.
_MIRRORED: dict[str, str] = {
    "equals": "equals",
    "not_equals": "not_equals",
    "greater_than": "less_than",
    "less_than": "greater_than",
    "greater_or_equal": "less_or_equal",
    "less_or_equal": "greater_or_equal",
    "in": "contains",
}


def _is_resource(operand: Any) -> bool:
    return isinstance(operand, Ref) and operand.scope == "resource"


def residualize(
    condition: Condition,
    context: EvaluationContext,
    *,
    on_missing_attribute: OnMissingAttribute = "no_match",
) -> Condition:
    """Partially evaluate *condition* with the resource left unbound.

    Returns:
        ``ALWAYS`` or ``NEVER`` when the outcome does not depend on the
        resource, otherwise a simplified condition over resource fields only.

    Raises:
        UnsupportedConditionError: When a comparison with the resource on the
            right-hand side cannot be re-expressed with the resource on the left.

    Example::

        cond = resource.owner_id.equals(subject.id)
        residualize(cond, ctx)  # Compare("equals", Ref("resource.owner_id"), 42)
    """
    context = context.without_resource()
    return _residual(condition, context, on_missing_attribute)


def _residual(node: Any, context: EvaluationContext, mode: OnMissingAttribute) -> Condition:
    if isinstance(node, Const):
        return node
    if isinstance(node, And):
        parts = [_residual(c, context, mode) for c in node.operands]
        if any(p == NEVER for p in parts):
            return NEVER
        return all_of(*(p for p in parts if p != ALWAYS))
    if isinstance(node, Or):
        parts = [_residual(c, context, mode) for c in node.operands]
        if any(p == ALWAYS for p in parts):
            return ALWAYS
        return any_of(*(p for p in parts if p != NEVER))
    if isinstance(node, Not):
        inner = _residual(node.operand, context, mode)
        if isinstance(inner, Const):
            return NEVER if inner.value else ALWAYS
        return Not(inner)
    if isinstance(node, Compare):
        return _residual_compare(node, context, mode)
    raise UnsupportedConditionError(f"Unsupported condition node: {type(node).__name__}")


def _residual_compare(
    node: Compare, context: EvaluationContext, mode: OnMissingAttribute
) -> Condition:
    left_is_resource = _is_resource(node.left)
    right_is_resource = _is_resource(node.right)

    if left_is_resource and right_is_resource:
        return node

    if not left_is_resource and not right_is_resource:
        left = resolve_operand(node.left, context, on_missing_attribute=mode)
        right = resolve_operand(node.right, context, on_missing_attribute=mode)
        if left is MISSING or right is MISSING:
            return NEVER
        return ALWAYS if apply_operator(node.op, left, right) else NEVER

    if left_is_resource:
        right = resolve_operand(node.right, context, on_missing_attribute=mode)
        if right is MISSING:
            return NEVER
        return Compare(node.op, node.left, right)

    # Resource reference on the right: move it to the left.
    left = resolve_operand(node.left, context, on_missing_attribute=mode)
    if left is MISSING:
        return NEVER
    target: Ref = node.right
    if node.op == "not_in":
        return Not(Compare("contains", target, left))
    if node.op == "contains" and isinstance(left, (tuple, list, frozenset)):
        return Compare("in", target, left)
    mirrored = _MIRRORED.get(node.op)
    if mirrored is None:
        raise UnsupportedConditionError(
            f"Cannot scope a collection by {node.left!r} {node.op} {target!r}; "
            "put the resource attribute on the left-hand side"
        )
    return Compare(mirrored, target, left)
