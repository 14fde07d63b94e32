"""Tests for policy/_store.py — snapshots, ordering, and refresh."""

from __future__ import annotations

import logging
import threading
import time

import pytest

from sqla_abac.config import AbacConfig
from sqla_abac.exceptions import InvalidInput, PolicyStoreUnavailable
from sqla_abac.policy import Policy, PolicySnapshot, PolicyStore, StaticPolicySource


def _p(pid: str, *, model: str = "colleges", actions=("read",), **kwargs) -> Policy:
    return Policy(id=pid, model=model, actions=actions, **kwargs)


class _FailingSource:
    def load(self):
        raise RuntimeError("database is down")


class _SlowSource:
    def __init__(self, delay: float) -> None:
        self.delay = delay

    def load(self):
        time.sleep(self.delay)
        return [_p("late")]


class _CountingSource:
    def __init__(self) -> None:
        self.calls = 0
        self.loaded = threading.Event()

    def load(self):
        self.calls += 1
        if self.calls >= 2:
            self.loaded.set()
        return [_p(f"gen-{self.calls}")]


class TestPolicySnapshot:
    def test_orders_by_priority_then_declaration(self):
        snap = PolicySnapshot(
            version=1,
            policies=(_p("c", priority=50), _p("a", priority=10), _p("b", priority=50)),
        )
        assert [p.id for p in snap.lookup("colleges", "read")] == ["a", "c", "b"]

    def test_excludes_inactive_and_other_actions(self):
        snap = PolicySnapshot(
            version=1,
            policies=(_p("off", active=False), _p("upd", actions=("update",)), _p("on")),
        )
        assert [p.id for p in snap.lookup("colleges", "read")] == ["on"]
        assert snap.get("off") is not None

    def test_wildcard_is_indexed_for_every_action(self):
        snap = PolicySnapshot(version=1, policies=(_p("freeze", actions=("*",), effect="deny"),))
        assert [p.id for p in snap.lookup("colleges", "delete")] == ["freeze"]
        assert snap.lookup("departments", "read") == ()

    def test_duplicate_ids(self):
        with pytest.raises(InvalidInput, match="Duplicate"):
            PolicySnapshot(version=1, policies=(_p("a"), _p("a")))

    def test_models_and_len(self):
        snap = PolicySnapshot(version=1, policies=(_p("a"), _p("b", model="departments")))
        assert snap.models() == frozenset({"colleges", "departments"})
        assert len(snap) == 2


class TestPolicyStore:
    def test_empty_store_is_ready(self, store):
        assert store.version == 1
        assert store.lookup("colleges", "read") == ()

    def test_register_publishes_new_version(self, store):
        snap = store.register(_p("a"))
        assert snap.version == 2
        assert store.version == 2
        assert [p.id for p in store.lookup("colleges", "read")] == ["a"]

    def test_snapshot_is_unaffected_by_later_writes(self, store):
        store.register(_p("a"))
        before = store.snapshot()
        store.register(_p("b"))
        assert [p.id for p in before.lookup("colleges", "read")] == ["a"]
        assert len(store.snapshot()) == 2

    def test_register_duplicate_keeps_old_snapshot(self, store):
        store.register(_p("a"))
        with pytest.raises(InvalidInput):
            store.register(_p("a"))
        assert store.version == 2

    def test_register_rejects_non_policy(self, store):
        with pytest.raises(InvalidInput):
            store.register({"id": "a"})  # type: ignore[arg-type]

    def test_remove(self, store):
        store.register(_p("a"))
        store.remove("a")
        assert store.lookup("colleges", "read") == ()
        with pytest.raises(InvalidInput):
            store.remove("a")

    def test_replace_and_clear(self, store):
        store.replace([_p("a"), _p("b")])
        assert len(store.snapshot()) == 2
        store.clear()
        assert len(store.snapshot()) == 0

    def test_refresh_without_source(self, store):
        with pytest.raises(PolicyStoreUnavailable):
            store.refresh()

    def test_concurrent_registration(self, store):
        def worker(n: int) -> None:
            for i in range(20):
                store.register(_p(f"w{n}-{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store.snapshot()) == 80
        assert store.version == 81


class TestSourcedStore:
    def test_unavailable_before_first_load(self):
        store = PolicyStore(source=StaticPolicySource([_p("a")]))
        assert store.version == 0
        with pytest.raises(PolicyStoreUnavailable):
            store.lookup("colleges", "read")

    def test_refresh_loads(self):
        store = PolicyStore(source=StaticPolicySource([_p("a")]))
        snap = store.refresh()
        assert snap.version == 1
        assert [p.id for p in store.lookup("colleges", "read")] == ["a"]

    def test_failing_source_keeps_previous_snapshot(self, caplog):
        source = StaticPolicySource([_p("a")])
        store = PolicyStore(source=source)
        store.refresh()
        store._source = _FailingSource()
        with caplog.at_level(logging.ERROR, logger="sqla_abac.store"):
            with pytest.raises(PolicyStoreUnavailable, match="database is down"):
                store.refresh()
        assert "failed" in caplog.text
        assert isinstance(store.last_error, RuntimeError)
        assert [p.id for p in store.lookup("colleges", "read")] == ["a"]

    def test_failing_first_load_fails_closed(self):
        store = PolicyStore(source=_FailingSource())
        with pytest.raises(PolicyStoreUnavailable):
            store.refresh()
        with pytest.raises(PolicyStoreUnavailable, match="database is down"):
            store.snapshot()

    def test_refresh_timeout(self):
        store = PolicyStore(
            source=_SlowSource(0.5), config=AbacConfig(policy_store_timeout=0.05)
        )
        with pytest.raises(PolicyStoreUnavailable, match="did not respond"):
            store.refresh()
        assert store.version == 0

    def test_stale_snapshot(self):
        store = PolicyStore(
            source=StaticPolicySource([_p("a")]), config=AbacConfig(max_snapshot_age=0.05)
        )
        store.refresh()
        assert store.lookup("colleges", "read")
        time.sleep(0.1)
        with pytest.raises(PolicyStoreUnavailable, match="max_snapshot_age"):
            store.lookup("colleges", "read")

    def test_background_refresh(self):
        source = _CountingSource()
        store = PolicyStore(source=source)
        store.refresh()
        store.start_refresh(interval=0.01)
        try:
            assert source.loaded.wait(2.0)
        finally:
            store.stop_refresh(timeout=1.0)
        assert store.version >= 2

    def test_background_refresh_requires_source(self, store):
        with pytest.raises(PolicyStoreUnavailable):
            store.start_refresh(interval=1)

    def test_repr(self):
        store = PolicyStore(source=StaticPolicySource([]))
        assert "version=0" in repr(store)
