"""Condition expression tree — attribute comparisons and logical connectives."""

from __future__ import annotations

import ipaddress
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqla_abac._types import SCOPES
from sqla_abac.context._builder import freeze
from sqla_abac.exceptions import UnsupportedConditionError

__all__ = [
    "ALWAYS",
    "NEVER",
    "OPERATORS",
    "And",
    "AttributeNamespace",
    "Compare",
    "Condition",
    "Const",
    "Not",
    "Or",
    "Ref",
    "all_of",
    "any_of",
    "environment",
    "not_",
    "ref",
    "resource",
    "subject",
]

OPERATORS: frozenset[str] = frozenset(
    {
        "equals",
        "not_equals",
        "in",
        "not_in",
        "contains",
        "starts_with",
        "ends_with",
        "greater_than",
        "less_than",
        "greater_or_equal",
        "less_or_equal",
        "between",
        "ip_in_range",
    }
)


class Condition:
    """Base class for condition nodes.

    Supports ``&`` (AND), ``|`` (OR) and ``~`` (NOT) composition, the
    same way composable predicates do::

        owner = resource.owner_id.equals(subject.id)
        active = resource.status.equals("active")
        condition = owner | active
    """

    __slots__ = ()

    def __and__(self, other: Condition) -> Condition:
        return all_of(self, other)

    def __or__(self, other: Condition) -> Condition:
        return any_of(self, other)

    def __invert__(self) -> Condition:
        return not_(self)


@dataclass(frozen=True, slots=True)
class Ref:
    """Reference to a context attribute by dotted path (``"subject.id"``).

    Comparison builders return :class:`Compare` nodes::

        resource.owner_id.equals(subject.id)
        environment.client_address.ip_in_range(["10.0.0.0/8"])
    """

    path: str

    def __post_init__(self) -> None:
        scope, _, name = self.path.partition(".")
        if scope not in SCOPES or not name:
            raise UnsupportedConditionError(
                f"Attribute reference must look like '<scope>.<name>' with scope in "
                f"{SCOPES!r}, got {self.path!r}"
            )

    @property
    def scope(self) -> str:
        return self.path.partition(".")[0]

    @property
    def name(self) -> str:
        return self.path.partition(".")[2]

    def equals(self, other: Any) -> Compare:
        return Compare("equals", self, other)

    def not_equals(self, other: Any) -> Compare:
        return Compare("not_equals", self, other)

    def in_(self, values: Any) -> Compare:
        return Compare("in", self, values)

    def not_in(self, values: Any) -> Compare:
        return Compare("not_in", self, values)

    def contains(self, value: Any) -> Compare:
        return Compare("contains", self, value)

    def starts_with(self, prefix: Any) -> Compare:
        return Compare("starts_with", self, prefix)

    def ends_with(self, suffix: Any) -> Compare:
        return Compare("ends_with", self, suffix)

    def greater_than(self, other: Any) -> Compare:
        return Compare("greater_than", self, other)

    def less_than(self, other: Any) -> Compare:
        return Compare("less_than", self, other)

    def greater_or_equal(self, other: Any) -> Compare:
        return Compare("greater_or_equal", self, other)

    def less_or_equal(self, other: Any) -> Compare:
        return Compare("less_or_equal", self, other)

    def between(self, low: Any, high: Any) -> Compare:
        return Compare("between", self, (low, high))

    def ip_in_range(self, networks: Sequence[str]) -> Compare:
        return Compare("ip_in_range", self, tuple(networks))

    def __repr__(self) -> str:
        return self.path


@dataclass(frozen=True, slots=True)
class Compare(Condition):
    """Compare an attribute (``left``) with a literal or another attribute."""

    op: str
    left: Ref
    right: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise UnsupportedConditionError(
                f"Unknown operator {self.op!r}; expected one of {sorted(OPERATORS)!r}"
            )
        if not isinstance(self.left, Ref):
            raise UnsupportedConditionError(
                f"Left side of a comparison must be an attribute reference, got {self.left!r}"
            )
        right = self.right if isinstance(self.right, Ref) else freeze(self.right)
        if isinstance(right, frozenset):
            right = tuple(sorted(right, key=repr))
        object.__setattr__(self, "right", right)
        if isinstance(right, Ref):
            return
        if self.op in ("in", "not_in") and not isinstance(right, tuple):
            raise UnsupportedConditionError(f"{self.op!r} expects a list of values, got {right!r}")
        if self.op == "between" and (not isinstance(right, tuple) or len(right) != 2):
            raise UnsupportedConditionError(f"'between' expects (low, high), got {right!r}")
        if self.op == "ip_in_range":
            networks = right if isinstance(right, tuple) else (right,)
            try:
                for network in networks:
                    ipaddress.ip_network(network, strict=False)
            except (TypeError, ValueError) as exc:
                raise UnsupportedConditionError(f"Invalid network in ip_in_range: {exc}") from exc
            object.__setattr__(self, "right", networks)

    def __repr__(self) -> str:
        return f"({self.left!r} {self.op} {self.right!r})"


@dataclass(frozen=True, slots=True)
class And(Condition):
    operands: tuple[Condition, ...]

    def __repr__(self) -> str:
        return "(" + " & ".join(repr(c) for c in self.operands) + ")"


@dataclass(frozen=True, slots=True)
class Or(Condition):
    operands: tuple[Condition, ...]

    def __repr__(self) -> str:
        return "(" + " | ".join(repr(c) for c in self.operands) + ")"


@dataclass(frozen=True, slots=True)
class Not(Condition):
    operand: Condition

    def __repr__(self) -> str:
        return f"~{self.operand!r}"


@dataclass(frozen=True, slots=True)
class Const(Condition):
    value: bool

    def __repr__(self) -> str:
        return "ALWAYS" if self.value else "NEVER"


ALWAYS = Const(True)
NEVER = Const(False)


def _check(node: Any) -> Condition:
    if not isinstance(node, Condition):
        raise UnsupportedConditionError(f"Expected a Condition, got {type(node).__name__}")
    return node


def all_of(*conditions: Condition) -> Condition:
    """AND the conditions together, flattening nested ANDs."""
    flat: list[Condition] = []
    for c in conditions:
        flat.extend(c.operands if isinstance(c, And) else (_check(c),))
    if not flat:
        return ALWAYS
    if len(flat) == 1:
        return flat[0]
    return And(tuple(flat))


def any_of(*conditions: Condition) -> Condition:
    """OR the conditions together, flattening nested ORs."""
    flat: list[Condition] = []
    for c in conditions:
        flat.extend(c.operands if isinstance(c, Or) else (_check(c),))
    if not flat:
        return NEVER
    if len(flat) == 1:
        return flat[0]
    return Or(tuple(flat))


def not_(condition: Condition) -> Condition:
    condition = _check(condition)
    if isinstance(condition, Not):
        return condition.operand
    return Not(condition)


def ref(path: str) -> Ref:
    """Create a :class:`Ref` from a dotted path.

    Example::

        ref("environment.method").equals("GET")
    """
    return Ref(path)


class AttributeNamespace:
    """Attribute access sugar: ``subject.id`` is ``Ref("subject.id")``."""

    __slots__ = ("_scope",)

    def __init__(self, scope: str) -> None:
        if scope not in SCOPES:
            raise UnsupportedConditionError(f"Unknown attribute scope {scope!r}")
        self._scope = scope

    def __getattr__(self, name: str) -> Ref:
        if name.startswith("__"):
            raise AttributeError(name)
        return Ref(f"{self._scope}.{name}")

    def __getitem__(self, name: str) -> Ref:
        return Ref(f"{self._scope}.{name}")

    def __repr__(self) -> str:
        return f"AttributeNamespace({self._scope!r})"


subject = AttributeNamespace("subject")
resource = AttributeNamespace("resource")
environment = AttributeNamespace("environment")
