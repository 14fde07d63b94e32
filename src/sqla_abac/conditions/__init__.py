"""Condition language — a small, serializable expression tree over attributes."""

from sqla_abac.conditions._eval import apply_operator, evaluate_condition
from sqla_abac.conditions._nodes import (
    ALWAYS,
    NEVER,
    OPERATORS,
    And,
    Compare,
    Condition,
    Const,
    Not,
    Or,
    Ref,
    all_of,
    any_of,
    environment,
    not_,
    ref,
    resource,
    subject,
)
from sqla_abac.conditions._partial import residualize
from sqla_abac.conditions._serialize import condition_from_dict, condition_to_dict

__all__ = [
    "ALWAYS",
    "NEVER",
    "OPERATORS",
    "And",
    "Compare",
    "Condition",
    "Const",
    "Not",
    "Or",
    "Ref",
    "all_of",
    "any_of",
    "apply_operator",
    "condition_from_dict",
    "condition_to_dict",
    "environment",
    "evaluate_condition",
    "not_",
    "ref",
    "residualize",
    "resource",
    "subject",
]
