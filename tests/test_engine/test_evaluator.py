"""Tests for engine/_evaluator.py — item-level decisions."""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest

from sqla_abac._audit import add_audit_sink
from sqla_abac.conditions import ALWAYS, environment, resource, subject
from sqla_abac.config import AbacConfig
from sqla_abac.context import RequestMeta, Resource
from sqla_abac.engine import PolicyEvaluator, evaluate
from sqla_abac.exceptions import (
    InvalidInput,
    PolicyStoreUnavailable,
    UnknownModelError,
    UnsupportedConditionError,
)
from sqla_abac.policy import Policy, PolicyStore, StaticPolicySource, TimeWindow
from tests.conftest import FIXED_NOW

OWN_COLLEGE = Resource("colleges", {"id": 1, "owner_id": 1, "status": "active"})
OTHER_COLLEGE = Resource("colleges", {"id": 2, "owner_id": 2, "status": "active"})
ARCHIVED_COLLEGE = Resource("colleges", {"id": 3, "owner_id": 1, "status": "archived"})


@pytest.fixture()
def evaluator(store, builder):
    return PolicyEvaluator(store, context_builder=builder)


def _owner_policy(**kwargs) -> Policy:
    return Policy(
        id=kwargs.pop("id", "owner-update"),
        model="colleges",
        actions=kwargs.pop("actions", ("update",)),
        condition=resource.owner_id.equals(subject.id),
        **kwargs,
    )


def _archived_deny(**kwargs) -> Policy:
    return Policy(
        id=kwargs.pop("id", "archived-frozen"),
        model="colleges",
        actions=("*",),
        condition=resource.status.equals("archived"),
        effect="deny",
        **kwargs,
    )


class TestDefaultDeny:
    def test_no_policies(self, evaluator, alice):
        decision = evaluator.evaluate(alice, OWN_COLLEGE, "update")
        assert decision.effect == "deny"
        assert decision.default_applied
        assert decision.decisive is None
        assert decision.results == ()

    def test_no_match(self, store, evaluator, alice):
        store.register(_owner_policy())
        decision = evaluator.evaluate(alice, OTHER_COLLEGE, "update")
        assert not decision.allowed
        assert decision.default_applied
        assert [r.matched for r in decision.results] == [False]

    def test_other_action_does_not_apply(self, store, evaluator, alice):
        store.register(_owner_policy())
        assert evaluator.evaluate(alice, OWN_COLLEGE, "delete").default_applied

    def test_default_deny_warns(self, evaluator, alice, caplog):
        evaluator = PolicyEvaluator(
            evaluator.store, config=AbacConfig(log_policy_decisions=True)
        )
        with caplog.at_level(logging.WARNING, logger="sqla_abac"):
            evaluator.evaluate(alice, OWN_COLLEGE, "update")
        assert "deny-by-default" in caplog.text


class TestAllow:
    def test_matching_allow(self, store, evaluator, alice):
        store.register(_owner_policy())
        decision = evaluator.evaluate(alice, OWN_COLLEGE, "update")
        assert decision.allowed
        assert decision.decisive.policy_id == "owner-update"
        assert decision.resource_id == 1
        assert decision.principal_id == 1
        assert decision.snapshot_version == store.version

    def test_first_matching_allow_is_decisive(self, store, evaluator, alice):
        store.replace(
            [
                Policy(id="late", model="colleges", actions=("read",), priority=50),
                Policy(id="early", model="colleges", actions=("read",), priority=10),
            ]
        )
        decision = evaluator.evaluate(alice, OWN_COLLEGE, "read")
        assert decision.decisive.policy_id == "early"
        assert [r.policy_id for r in decision.results] == ["early", "late"]


class TestDenyOverrides:
    def test_deny_beats_allow(self, store, evaluator, alice):
        store.replace([_owner_policy(priority=1), _archived_deny(priority=200)])
        decision = evaluator.evaluate(alice, ARCHIVED_COLLEGE, "update")
        assert decision.effect == "deny"
        assert not decision.default_applied
        assert decision.decisive.policy_id == "archived-frozen"
        assert [r.policy_id for r in decision.matched] == ["owner-update", "archived-frozen"]

    def test_first_deny_by_priority_is_decisive(self, store, evaluator, alice):
        store.replace(
            [
                _archived_deny(id="deny-b", priority=20),
                _archived_deny(id="deny-a", priority=5),
            ]
        )
        assert evaluator.evaluate(alice, ARCHIVED_COLLEGE, "read").decisive.policy_id == "deny-a"

    def test_unmatched_deny_does_not_block(self, store, evaluator, alice):
        store.replace([_owner_policy(), _archived_deny()])
        assert evaluator.evaluate(alice, OWN_COLLEGE, "update").allowed


class TestSuperAdmin:
    def test_bypasses_denies(self, store, evaluator, root):
        store.replace([_archived_deny()])
        decision = evaluator.evaluate(root, ARCHIVED_COLLEGE, "delete")
        assert decision.allowed
        assert decision.bypassed
        assert decision.results == ()

    def test_bypass_does_not_read_store(self, builder, root):
        store = PolicyStore(source=StaticPolicySource([]))
        evaluator = PolicyEvaluator(store, context_builder=builder)
        assert evaluator.evaluate(root, OWN_COLLEGE, "read").allowed


class TestTimeWindows:
    def test_outside_window_does_not_match(self, store, evaluator, alice):
        store.register(_owner_policy(time_window=TimeWindow(allowed_days=("saturday",))))
        decision = evaluator.evaluate(alice, OWN_COLLEGE, "update")
        assert decision.default_applied

    def test_inside_window(self, store, evaluator, alice):
        store.register(
            _owner_policy(time_window=TimeWindow(valid_until=FIXED_NOW + timedelta(hours=1)))
        )
        assert evaluator.evaluate(alice, OWN_COLLEGE, "update").allowed


class TestEnvironment:
    def test_network_condition(self, store, evaluator, builder, alice):
        store.register(
            Policy(
                id="intranet-read",
                model="colleges",
                actions=("read",),
                condition=environment.client_address.ip_in_range(["10.0.0.0/8"]),
            )
        )
        inside = builder.build(alice, RequestMeta(client_address="10.2.3.4"))
        outside = builder.build(alice, RequestMeta(client_address="203.0.113.9"))
        assert evaluator.evaluate(alice, OWN_COLLEGE, "read", inside).allowed
        assert not evaluator.evaluate(alice, OWN_COLLEGE, "read", outside).allowed

    def test_explicit_context_is_rebound_to_resource(self, store, evaluator, builder, alice):
        store.register(_owner_policy())
        ctx = builder.build(alice, resource=OTHER_COLLEGE)
        assert evaluator.evaluate(alice, OWN_COLLEGE, "update", ctx).allowed


class TestInvalidInput:
    def test_missing_principal(self, evaluator):
        with pytest.raises(InvalidInput):
            evaluator.evaluate(None, OWN_COLLEGE, "read")  # type: ignore[arg-type]

    def test_unknown_action(self, evaluator, alice):
        with pytest.raises(InvalidInput, match="Unknown action"):
            evaluator.evaluate(alice, OWN_COLLEGE, "publish")

    def test_wildcard_is_not_a_request_action(self, evaluator, alice):
        with pytest.raises(InvalidInput):
            evaluator.evaluate(alice, OWN_COLLEGE, "*")

    def test_non_resource_target(self, evaluator, alice):
        with pytest.raises(InvalidInput):
            evaluator.evaluate(alice, {"id": 1}, "read")  # type: ignore[arg-type]

    def test_unknown_model_with_registry(self, store, builder, resources, alice):
        evaluator = PolicyEvaluator(store, resources=resources, context_builder=builder)
        with pytest.raises(UnknownModelError):
            evaluator.evaluate(alice, Resource("students", {"id": 1}), "read")

    def test_missing_attribute_raise_mode(self, store, builder, alice):
        store.register(
            Policy(
                id="tenant",
                model="colleges",
                actions=("read",),
                condition=resource.tenant.equals(subject.tenant),
            )
        )
        evaluator = PolicyEvaluator(
            store, config=AbacConfig(on_missing_attribute="raise"), context_builder=builder
        )
        with pytest.raises(UnsupportedConditionError):
            evaluator.evaluate(alice, OWN_COLLEGE, "read")


class TestStoreFailure:
    def test_unavailable_store_fails_closed(self, builder, alice):
        store = PolicyStore(source=StaticPolicySource([]))
        evaluator = PolicyEvaluator(store, context_builder=builder)
        with pytest.raises(PolicyStoreUnavailable):
            evaluator.evaluate(alice, OWN_COLLEGE, "read")


class TestAuditing:
    def test_sink_receives_event(self, store, evaluator, builder, alice):
        events = []
        add_audit_sink(events.append)
        store.register(_owner_policy())
        ctx = builder.build(alice, RequestMeta(client_address="10.0.0.1", user_agent="pytest"))
        evaluator.evaluate(alice, OWN_COLLEGE, "update", ctx)
        (event,) = events
        assert event.kind == "decision"
        assert event.effect == "allow"
        assert event.resource_id == 1
        assert event.ip_address == "10.0.0.1"
        assert event.user_agent == "pytest"
        assert event.policies[0]["decisive"] is True
        assert "method" not in event.request_context
        assert event.evaluation_time_ms >= 0

    def test_info_log(self, store, alice, caplog):
        store.register(Policy(id="all", model="colleges", actions=("read",), condition=ALWAYS))
        evaluator = PolicyEvaluator(store, config=AbacConfig(log_policy_decisions=True))
        with caplog.at_level(logging.INFO, logger="sqla_abac"):
            evaluator.evaluate(alice, OWN_COLLEGE, "read")
        assert "decisive: all" in caplog.text

    def test_quiet_by_default(self, store, alice, caplog):
        with caplog.at_level(logging.DEBUG, logger="sqla_abac"):
            PolicyEvaluator(store).evaluate(alice, OWN_COLLEGE, "read")
        assert caplog.records == []


class TestModuleFunction:
    def test_evaluate(self, store, alice):
        store.register(_owner_policy())
        assert evaluate(alice, OWN_COLLEGE, "update", store=store).allowed

    def test_uses_default_store(self, alice):
        from sqla_abac.testing import isolated_abac

        with isolated_abac() as (_, default_store, _):
            default_store.register(_owner_policy())
            assert evaluate(alice, OWN_COLLEGE, "update").allowed
