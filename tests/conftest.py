"""Shared test fixtures for sqla-abac tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sqla_abac._audit import _clear_audit_sinks
from sqla_abac.config._config import _reset_global_config
from sqla_abac.context import ContextBuilder, Principal
from sqla_abac.policy import PolicyStore
from sqla_abac.resources import InMemoryResourceLoader, ResourceRegistry
from tests.models import Base, College, Department

# Wednesday, 10:30 UTC.
FIXED_NOW = datetime(2024, 5, 15, 10, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Global state
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_global_state():
    """Reset global config and audit sinks around every test."""
    _reset_global_config()
    _clear_audit_sinks()
    yield
    _reset_global_config()
    _clear_audit_sinks()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    """In-memory SQLite shared across threads (FastAPI runs sync handlers in a worker)."""
    eng = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine):
    """Provide a session that rolls back after each test."""
    factory = sessionmaker(bind=engine)
    sess = factory()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


@pytest.fixture()
def sample_data(session: Session) -> dict[str, list]:
    """Seed the database with colleges and departments."""
    colleges = [
        College(id=1, name="Engineering", owner_id=1, status="active", rank=3),
        College(id=2, name="Arts", owner_id=2, status="active", rank=7),
        College(id=3, name="Medicine", owner_id=1, status="archived", rank=1),
        College(id=4, name="Law", owner_id=3, status=None, rank=5),
    ]
    session.add_all(colleges)
    departments = [
        Department(id="X", name="Physics", college_id=1, head_id=1),
        Department(id="Y", name="History", college_id=2, head_id=2),
    ]
    session.add_all(departments)
    session.flush()
    return {"colleges": colleges, "departments": departments}


# ---------------------------------------------------------------------------
# Engine collaborators
# ---------------------------------------------------------------------------


@pytest.fixture()
def store() -> PolicyStore:
    """A fresh, empty policy store."""
    return PolicyStore()


@pytest.fixture()
def resources() -> ResourceRegistry:
    """Registry with the test models registered."""
    registry = ResourceRegistry()
    registry.register("colleges", College)
    registry.register("departments", Department)
    return registry


@pytest.fixture()
def memory_loader() -> InMemoryResourceLoader:
    return InMemoryResourceLoader(
        {
            "colleges": {
                1: {"id": 1, "name": "Engineering", "owner_id": 1, "status": "active"},
                3: {"id": 3, "name": "Medicine", "owner_id": 1, "status": "archived"},
            },
            "departments": {
                "X": {"id": "X", "name": "Physics", "college_id": 1, "head_id": 1},
            },
        }
    )


@pytest.fixture()
def builder() -> ContextBuilder:
    """A context builder with a pinned clock."""
    return ContextBuilder(clock=lambda: FIXED_NOW)


@pytest.fixture()
def alice() -> Principal:
    return Principal(
        id=1,
        permissions=frozenset({"colleges.read", "colleges.update"}),
        attributes={"department": "cs", "role": "editor"},
    )


@pytest.fixture()
def bob() -> Principal:
    return Principal(id=2, permissions=frozenset({"colleges.read"}), attributes={"role": "viewer"})


@pytest.fixture()
def root() -> Principal:
    return Principal(id="root", is_super_admin=True)
