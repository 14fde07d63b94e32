"""@policy decorator — register condition-returning functions as policies."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Sequence
from typing import TypeVar

from sqla_abac._types import Effect
from sqla_abac.conditions._nodes import Condition
from sqla_abac.exceptions import InvalidInput
from sqla_abac.policy._base import Policy, TimeWindow
from sqla_abac.policy._store import PolicyStore, get_default_store

__all__ = ["policy"]

F = TypeVar("F", bound=Callable[[], Condition])


def policy(
    model: str,
    action: str | Sequence[str],
    *,
    effect: Effect = "allow",
    priority: int = 100,
    id: str | None = None,  # noqa: A002
    time_window: TimeWindow | None = None,
    store: PolicyStore | None = None,
) -> Callable[[F], F]:
    """Decorator that registers a policy for (model, action).

    The decorated function takes no arguments and returns the policy's
    :class:`~sqla_abac.conditions.Condition`. It is called once, at
    decoration time. The function name becomes the policy id (unless *id*
    is given) and its docstring the description.

    Args:
        model: The resource-model name.
        action: An action, a sequence of actions, or ``"*"``.
        effect: ``"allow"`` or ``"deny"``.
        priority: Lower numbers take precedence.
        id: Optional explicit policy id.
        time_window: Optional restriction on when the policy is in effect.
        store: Optional custom store. Defaults to the global store.

    Returns:
        A decorator that registers the function and returns it unchanged.

    Example::

        @policy("colleges", "update")
        def college_owner_update() -> Condition:
            \"\"\"Owners may update their own college.\"\"\"
            return resource.owner_id.equals(subject.id)

        @policy("colleges", "*", effect="deny", priority=10)
        def archived_is_frozen() -> Condition:
            return resource.status.equals("archived")
    """

    def decorator(fn: F) -> F:
        condition = fn()
        if not isinstance(condition, Condition):
            raise InvalidInput(
                f"@policy function {fn.__name__!r} must return a Condition, "
                f"got {type(condition).__name__}"
            )
        target = store if store is not None else get_default_store()
        target.register(
            Policy(
                id=id or fn.__name__,
                model=model,
                actions=(action,) if isinstance(action, str) else tuple(action),
                condition=condition,
                effect=effect,
                priority=priority,
                name=fn.__name__,
                description=inspect.cleandoc(fn.__doc__ or ""),
                time_window=time_window,
            )
        )
        return fn

    return decorator
