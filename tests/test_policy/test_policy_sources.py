"""Tests for policy/_sources.py — static and JSON file sources."""

from __future__ import annotations

import json

import pytest

from sqla_abac.conditions import resource, subject
from sqla_abac.exceptions import InvalidInput, PolicyStoreUnavailable
from sqla_abac.policy import (
    JsonFilePolicySource,
    Policy,
    PolicySource,
    PolicyStore,
    StaticPolicySource,
    policies_from_documents,
)

OWNER_DOC = {
    "id": "owner-update",
    "model": "colleges",
    "actions": ["update"],
    "condition": {"attr": "resource.owner_id", "op": "equals", "ref": "subject.id"},
}


class TestPoliciesFromDocuments:
    def test_builds_policies(self):
        (p,) = policies_from_documents([OWNER_DOC])
        assert p.condition == resource.owner_id.equals(subject.id)

    def test_rejects_non_mapping(self):
        with pytest.raises(InvalidInput, match="#1"):
            policies_from_documents([OWNER_DOC, ["nope"]])


class TestStaticPolicySource:
    def test_protocol(self):
        assert isinstance(StaticPolicySource([]), PolicySource)

    def test_load(self):
        p = Policy(id="a", model="colleges", actions=("read",))
        assert list(StaticPolicySource([p]).load()) == [p]


class TestJsonFilePolicySource:
    def test_list_document(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text(json.dumps([OWNER_DOC]), encoding="utf-8")
        (p,) = JsonFilePolicySource(path).load()
        assert p.id == "owner-update"

    def test_wrapped_document(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text(json.dumps({"policies": [OWNER_DOC]}), encoding="utf-8")
        assert len(JsonFilePolicySource(path).load()) == 1

    def test_rejects_other_shapes(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text(json.dumps({"rules": []}), encoding="utf-8")
        with pytest.raises(InvalidInput):
            JsonFilePolicySource(path).load()

    def test_rereads_on_refresh(self, tmp_path):
        path = tmp_path / "policies.json"
        path.write_text(json.dumps([OWNER_DOC]), encoding="utf-8")
        store = PolicyStore(source=JsonFilePolicySource(path))
        store.refresh()
        doc = dict(OWNER_DOC, id="owner-delete", actions=["delete"])
        path.write_text(json.dumps([OWNER_DOC, doc]), encoding="utf-8")
        store.refresh()
        assert [p.id for p in store.lookup("colleges", "delete")] == ["owner-delete"]

    def test_missing_file_fails_closed(self, tmp_path):
        store = PolicyStore(source=JsonFilePolicySource(tmp_path / "absent.json"))
        with pytest.raises(PolicyStoreUnavailable):
            store.refresh()
