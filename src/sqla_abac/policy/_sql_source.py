"""Database-backed policy source over the ``abac_policies`` table."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from sqla_abac.conditions._serialize import condition_to_dict
from sqla_abac.policy._base import Policy

__all__ = ["PolicyBase", "PolicyRecord", "SQLAlchemyPolicySource"]


class PolicyBase(DeclarativeBase):
    """Declarative base owning the policy table's metadata."""


class PolicyRecord(PolicyBase):
    """One stored policy.

    ``condition`` and ``time_window`` hold the plain-data forms produced by
    :meth:`Policy.to_dict`.
    """

    __tablename__ = "abac_policies"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    model: Mapped[str] = mapped_column(String(100), index=True)
    actions: Mapped[list[str]] = mapped_column(JSON)
    effect: Mapped[str] = mapped_column(String(5), default="allow")
    priority: Mapped[int] = mapped_column(Integer, default=100)
    condition: Mapped[dict[str, Any]] = mapped_column(JSON, default=lambda: {"const": True})
    time_window: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    def to_policy(self) -> Policy:
        return Policy.from_dict(
            {
                "id": self.id,
                "name": self.name,
                "description": self.description,
                "model": self.model,
                "actions": self.actions,
                "effect": self.effect,
                "priority": self.priority,
                "condition": self.condition,
                "time_window": self.time_window,
                "active": self.is_active,
            }
        )

    @classmethod
    def from_policy(cls, policy: Policy) -> PolicyRecord:
        return cls(
            id=policy.id,
            name=policy.name,
            description=policy.description,
            model=policy.model,
            actions=list(policy.actions),
            effect=policy.effect,
            priority=policy.priority,
            condition=condition_to_dict(policy.condition),
            time_window=policy.time_window.to_dict() if policy.time_window else None,
            is_active=policy.active,
        )


class SQLAlchemyPolicySource:
    """Load active policies from ``abac_policies``.

    Rows are ordered by ``priority`` then ``id``, which becomes the
    declaration order for equal priorities.

    Example::

        source = SQLAlchemyPolicySource(sessionmaker(engine))
        store = PolicyStore(source=source)
        store.refresh()
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def load(self) -> Sequence[Policy]:
        stmt = (
            select(PolicyRecord)
            .where(PolicyRecord.is_active.is_(True))
            .order_by(PolicyRecord.priority, PolicyRecord.id)
        )
        with self._session_factory() as session:
            return [record.to_policy() for record in session.execute(stmt).scalars()]

    def __repr__(self) -> str:
        return "SQLAlchemyPolicySource(abac_policies)"
