"""Tests for conditions/_nodes.py — the condition tree and its builders."""

from __future__ import annotations

import pytest

from sqla_abac.conditions import (
    ALWAYS,
    NEVER,
    And,
    Compare,
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
from sqla_abac.exceptions import InvalidInput, UnsupportedConditionError


class TestRef:
    def test_namespace_sugar(self):
        r = resource.owner_id
        assert r == Ref("resource.owner_id")
        assert r.scope == "resource"
        assert r.name == "owner_id"

    def test_item_access(self):
        assert subject["department"] == Ref("subject.department")

    def test_ref_helper(self):
        assert ref("environment.method") == environment.method

    @pytest.mark.parametrize("path", ["owner_id", "tenant.id", "subject.", ""])
    def test_rejects_bad_paths(self, path):
        with pytest.raises(UnsupportedConditionError):
            Ref(path)

    def test_unsupported_condition_is_invalid_input(self):
        with pytest.raises(InvalidInput):
            Ref("nope")


class TestCompare:
    def test_builders(self):
        assert resource.owner_id.equals(subject.id) == Compare(
            "equals", Ref("resource.owner_id"), Ref("subject.id")
        )
        assert resource.rank.between(1, 5).right == (1, 5)
        assert resource.status.in_(["active", "draft"]).right == ("active", "draft")

    def test_right_side_is_frozen(self):
        cond = resource.status.in_(["active"])
        assert isinstance(cond.right, tuple)
        assert hash(cond) == hash(resource.status.in_(("active",)))

    def test_sets_become_sorted_tuples(self):
        assert resource.status.in_({"b", "a"}).right == ("a", "b")

    def test_unknown_operator(self):
        with pytest.raises(UnsupportedConditionError, match="Unknown operator"):
            Compare("like", Ref("resource.name"), "x")

    def test_left_must_be_ref(self):
        with pytest.raises(UnsupportedConditionError):
            Compare("equals", "resource.name", "x")  # type: ignore[arg-type]

    def test_in_requires_collection(self):
        with pytest.raises(UnsupportedConditionError):
            resource.status.in_("active")

    def test_between_requires_pair(self):
        with pytest.raises(UnsupportedConditionError):
            Compare("between", Ref("resource.rank"), (1, 2, 3))

    def test_ip_in_range_validates_networks(self):
        with pytest.raises(UnsupportedConditionError, match="Invalid network"):
            environment.client_address.ip_in_range(["not-a-network"])

    def test_ip_in_range_single_network(self):
        cond = Compare("ip_in_range", Ref("environment.client_address"), "10.0.0.0/8")
        assert cond.right == ("10.0.0.0/8",)


class TestComposition:
    def test_operators(self):
        a = resource.status.equals("active")
        b = resource.owner_id.equals(subject.id)
        assert (a & b) == And((a, b))
        assert (a | b) == Or((a, b))
        assert ~a == Not(a)

    def test_flattening(self):
        a, b, c = (resource[f"f{i}"].equals(i) for i in range(3))
        assert ((a & b) & c).operands == (a, b, c)
        assert ((a | b) | c).operands == (a, b, c)

    def test_double_negation(self):
        a = resource.status.equals("active")
        assert not_(not_(a)) == a

    def test_empty_combinators(self):
        assert all_of() == ALWAYS
        assert any_of() == NEVER

    def test_single_operand(self):
        a = resource.status.equals("active")
        assert all_of(a) is a
        assert any_of(a) is a

    def test_rejects_non_conditions(self):
        with pytest.raises(UnsupportedConditionError):
            all_of(resource.status)  # type: ignore[arg-type]

    def test_repr(self):
        assert repr(resource.owner_id.equals(subject.id)) == "(resource.owner_id equals subject.id)"
        assert repr(ALWAYS) == "ALWAYS"
