"""Permission-key grants expressed as ordinary allow policies."""

from __future__ import annotations

from collections.abc import Iterable

from sqla_abac._types import ACTIONS
from sqla_abac.conditions._nodes import subject
from sqla_abac.context._principal import permission_key
from sqla_abac.exceptions import InvalidInput
from sqla_abac.policy._base import Policy

__all__ = ["permission_policies", "permission_policy"]


def permission_policy(model: str, action: str, *, priority: int = 100) -> Policy:
    """Allow *action* on *model* to principals holding ``"<model>.<action>"``.

    The policy has no resource conditions, so its data scope is unrestricted.

    Example::

        store.register(permission_policy("colleges", "read"))
    """
    if action not in ACTIONS:
        raise InvalidInput(f"Unknown action {action!r}; expected one of {sorted(ACTIONS)!r}")
    key = permission_key(model, action)
    return Policy(
        id=f"permission:{key}",
        model=model,
        actions=(action,),
        condition=subject.permissions.contains(key),
        priority=priority,
        name=f"permission {key}",
        description=f"Allow principals holding the {key!r} permission.",
    )


def permission_policies(
    models: Iterable[str],
    actions: Iterable[str] = ("create", "read", "update", "delete"),
    *,
    priority: int = 100,
) -> list[Policy]:
    """Return :func:`permission_policy` for every (model, action) pair."""
    action_list = tuple(actions)
    return [permission_policy(m, a, priority=priority) for m in models for a in action_list]
