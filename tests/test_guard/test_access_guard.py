"""Tests for guard/_guard.py — AccessGuard and AccessGrant."""

from __future__ import annotations

import time

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from sqla_abac.conditions import environment, resource, subject
from sqla_abac.config import AbacConfig
from sqla_abac.context import RequestMeta
from sqla_abac.exceptions import (
    AccessDenied,
    InvalidInput,
    NotFound,
    ResourceFetchError,
    UnknownModelError,
)
from sqla_abac.guard import AccessGrant, AccessGuard, GuardState, http_outcome
from sqla_abac.policy import Policy, permission_policy
from sqla_abac.resources import SessionResourceLoader
from sqla_abac.testing import isolated_abac
from tests.models import Base, College


class _SlowLoader:
    def fetch(self, descriptor, resource_id):
        time.sleep(0.5)
        return {"id": resource_id}


@pytest.fixture()
def make_guard(store, resources, memory_loader, builder):
    def factory(model="colleges", action="read", **kwargs):
        kwargs.setdefault("store", store)
        kwargs.setdefault("resources", resources)
        kwargs.setdefault("loader", memory_loader)
        kwargs.setdefault("context_builder", builder)
        return AccessGuard(model, action, **kwargs)

    return factory


@pytest.fixture()
def owner_policies(store):
    store.replace(
        [
            Policy(
                id="own",
                model="colleges",
                actions=("read", "update"),
                condition=resource.owner_id.equals(subject.id),
            ),
            Policy(
                id="archived-frozen",
                model="colleges",
                actions=("update",),
                condition=resource.status.equals("archived"),
                effect="deny",
            ),
        ]
    )
    return store


class TestConstruction:
    def test_rejects_unknown_action(self):
        with pytest.raises(InvalidInput):
            AccessGuard("colleges", "list")

    def test_rejects_empty_model(self):
        with pytest.raises(InvalidInput):
            AccessGuard("", "read")

    def test_repr(self):
        assert repr(AccessGuard("colleges", "read")) == "AccessGuard('colleges', 'read')"


class TestCollectionChecks:
    def test_grant_carries_filter(self, make_guard, owner_policies, alice):
        grant = make_guard().check(alice, RequestMeta(method="GET"))
        assert grant.filter == {"owner_id": 1}
        assert grant.evaluated is GuardState.COLLECTION_EVALUATED
        assert grant.state is GuardState.CONTINUED
        assert grant.resource is None
        assert grant.scope.has_access

    def test_denied(self, make_guard, alice):
        with pytest.raises(AccessDenied) as exc_info:
            make_guard().check(alice)
        assert exc_info.value.guard_state is GuardState.REJECTED
        assert exc_info.value.policies == []

    def test_apply_to_query(self, make_guard, owner_policies, session, sample_data, alice):
        grant = make_guard().check(alice)
        rows = session.scalars(grant.apply(select(College), College)).all()
        assert sorted(c.id for c in rows) == [1, 3]

    def test_filter_on_undeclared_field(self, make_guard, store, alice):
        store.register(
            Policy(
                id="secret",
                model="colleges",
                actions=("read",),
                condition=resource.secret.equals(1),
            )
        )
        with pytest.raises(InvalidInput, match=r"undeclared fields \['secret'\]") as exc_info:
            make_guard().check(alice)
        assert exc_info.value.guard_state is GuardState.REJECTED
        assert http_outcome(exc_info.value).status == 500


class TestItemChecks:
    def test_allowed(self, make_guard, owner_policies, alice):
        grant = make_guard(action="update").check(alice, resource_id=1)
        assert grant.evaluated is GuardState.ITEM_EVALUATED
        assert grant.resource.attributes["name"] == "Engineering"
        assert grant.decision.decisive.policy_id == "own"
        assert grant.data_scope().filter == {}

    def test_denied_with_diagnostics(self, make_guard, owner_policies, alice):
        with pytest.raises(AccessDenied) as exc_info:
            make_guard(action="update").check(alice, resource_id=3)
        assert [p["id"] for p in exc_info.value.policies] == ["own", "archived-frozen"]
        assert exc_info.value.model == "colleges"
        assert exc_info.value.action == "update"

    def test_decisive_only_diagnostics(self, make_guard, owner_policies, alice):
        guard = make_guard(action="update", config=AbacConfig(disclose_matched_policies=False))
        with pytest.raises(AccessDenied) as exc_info:
            guard.check(alice, resource_id=3)
        assert [p["id"] for p in exc_info.value.policies] == ["archived-frozen"]

    def test_not_found(self, make_guard, owner_policies, alice):
        with pytest.raises(NotFound) as exc_info:
            make_guard().check(alice, resource_id=99)
        assert exc_info.value.guard_state is GuardState.REJECTED

    def test_requires_loader(self, make_guard, alice):
        with pytest.raises(InvalidInput, match="No resource loader"):
            make_guard(loader=None).check(alice, resource_id=1)

    def test_per_call_loader(self, make_guard, owner_policies, session, sample_data, alice):
        grant = make_guard(loader=None).check(
            alice, resource_id=1, loader=SessionResourceLoader(session)
        )
        assert grant.resource.attributes["rank"] == 3

    def test_session_loader_on_default_pool_engine(self, make_guard, owner_policies, alice):
        engine = create_engine("sqlite://")
        Base.metadata.create_all(engine)
        with Session(engine) as session:
            session.add(College(id=1, name="Engineering", owner_id=1, status="active", rank=3))
            session.flush()
            session.expunge_all()
            guard = make_guard(loader=SessionResourceLoader(session))
            grant = guard.check(alice, resource_id=1)
        assert grant.resource.attributes["name"] == "Engineering"
        engine.dispose()

    def test_fetch_timeout(self, make_guard, alice):
        guard = make_guard(loader=_SlowLoader(), config=AbacConfig(resource_fetch_timeout=0.05))
        with pytest.raises(ResourceFetchError):
            guard.check(alice, resource_id=1)

    def test_request_meta_reaches_conditions(self, make_guard, store, alice):
        store.register(
            Policy(
                id="get-only",
                model="colleges",
                actions=("read",),
                condition=environment.method.equals("GET")
                & resource.owner_id.equals(subject.id),
            )
        )
        guard = make_guard()
        assert guard.check(alice, RequestMeta(method="get"), resource_id=1).has_access
        with pytest.raises(AccessDenied):
            guard.check(alice, RequestMeta(method="POST"), resource_id=1)


class TestSuperAdmin:
    def test_skips_fetch_and_evaluation(self, make_guard, root):
        grant = make_guard(loader=None).check(root, resource_id="anything")
        assert grant.bypassed
        assert grant.evaluated is GuardState.SUPER_ADMIN_BYPASS
        assert grant.filter == {}


class TestRegistry:
    def test_unknown_model(self, make_guard, alice):
        with pytest.raises(UnknownModelError) as exc_info:
            make_guard(model="students").check(alice)
        assert exc_info.value.guard_state is GuardState.REJECTED

    def test_default_registry(self, store, alice):
        store.register(permission_policy("colleges", "read"))
        with isolated_abac() as (_, _, default_resources):
            guard = AccessGuard("colleges", "read", store=store)
            with pytest.raises(UnknownModelError):
                guard.check(alice)
            default_resources.register("colleges", College)
            assert guard.check(alice).filter == {}


class TestAccessGrant:
    def test_to_dict(self, make_guard, owner_policies, alice):
        data = make_guard(action="update").check(alice, resource_id=1).to_dict()
        assert data["has_access"] is True
        assert data["resource"]["id"] == 1
        assert data["decision"]["effect"] == "allow"

    def test_default_scope(self):
        grant = AccessGrant(model="colleges", action="read", filter={"owner_id": 1})
        assert grant.data_scope().filter == {"owner_id": 1}
        assert not grant.bypassed
