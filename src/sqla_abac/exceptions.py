"""Exception hierarchy for sqla-abac."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

__all__ = [
    "AbacError",
    "AccessDenied",
    "InvalidInput",
    "NotFound",
    "PolicyStoreUnavailable",
    "ResourceFetchError",
    "UnknownModelError",
    "UnsupportedConditionError",
]


class AbacError(Exception):
    """Base exception for all sqla-abac errors.

    Attributes:
        guard_state: Set to ``GuardState.REJECTED`` when raised through an
            ``AccessGuard``; ``None`` otherwise.
    """

    guard_state: Any = None


class InvalidInput(AbacError):  # noqa: N818
    """A call was made with malformed arguments.

    This is a programmer error: the engine never turns it into an allow
    or a deny, it surfaces to the caller (HTTP 500 at the adapter).
    """


class UnknownModelError(InvalidInput):
    """A resource-model name is not present in the resource registry.

    Attributes:
        model: The unknown model name.
    """

    def __init__(self, *, model: str) -> None:
        self.model = model
        super().__init__(f"Unknown resource model {model!r}")


class UnsupportedConditionError(InvalidInput):
    """A condition cannot be evaluated, serialized, or turned into a filter."""


class NotFound(AbacError):  # noqa: N818
    """The target of an item-level request does not exist.

    Attributes:
        model: The resource-model name.
        resource_id: The identifier that was looked up.

    Example::

        try:
            guard.check(principal, resource_id="missing-id")
        except NotFound as exc:
            print(f"{exc.model} {exc.resource_id} does not exist")
    """

    def __init__(self, *, model: str, resource_id: Any) -> None:
        self.model = model
        self.resource_id = resource_id
        super().__init__(f"{model} {resource_id!r} not found")


class AccessDenied(AbacError):  # noqa: N818
    """The principal is not allowed to perform the action.

    Raised on an explicit deny or when no allow policy matched.

    Attributes:
        principal_id: Identifier of the denied principal.
        action: The action that was attempted.
        model: The resource-model name.
        policies: Diagnostics for the evaluated-and-matched policies
            (``id``, ``name``, ``effect``, ``decisive``). Empty when no
            policy matched at all.

    Example::

        try:
            guard.check(principal, resource_id="X")
        except AccessDenied as exc:
            print([p["id"] for p in exc.policies if p["decisive"]])
    """

    def __init__(
        self,
        *,
        principal_id: Any,
        action: str,
        model: str,
        policies: Sequence[dict[str, Any]] = (),
        message: str | None = None,
    ) -> None:
        self.principal_id = principal_id
        self.action = action
        self.model = model
        self.policies = [dict(p) for p in policies]
        if message is None:
            message = f"Principal {principal_id!r} is not authorized to {action} {model}"
        super().__init__(message)


class PolicyStoreUnavailable(AbacError):  # noqa: N818
    """Policies could not be read, so no decision can be made.

    Callers must treat this as fail-closed: the request never proceeds
    as if it had been allowed.
    """


class ResourceFetchError(AbacError):
    """The resource loader failed or timed out while fetching a target.

    Attributes:
        model: The resource-model name.
        resource_id: The identifier being fetched.
    """

    def __init__(self, *, model: str, resource_id: Any, message: str | None = None) -> None:
        self.model = model
        self.resource_id = resource_id
        if message is None:
            message = f"Failed to fetch {model} {resource_id!r}"
        super().__init__(message)
