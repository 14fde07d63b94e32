"""Attribute context builder — subject, resource and environment attributes."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping, Set
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

from sqla_abac._types import SCOPES
from sqla_abac.context._principal import Principal
from sqla_abac.exceptions import InvalidInput

__all__ = [
    "MISSING",
    "Clock",
    "ContextBuilder",
    "EvaluationContext",
    "RequestMeta",
    "Resource",
    "WEEKDAYS",
    "build_context",
    "freeze",
    "thaw",
]

Clock = Callable[[], datetime]

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class _Missing:
    """Sentinel for attributes absent from a context."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def freeze(value: Any) -> Any:
    """Return a deeply read-only copy of *value*.

    Mappings become ``MappingProxyType``, lists and tuples become tuples,
    sets become frozensets. Scalars are returned unchanged.
    """
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, Set):
        return frozenset(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze` producing plain JSON-friendly containers."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (tuple, list)):
        return [thaw(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((thaw(v) for v in value), key=repr)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass(frozen=True, slots=True)
class RequestMeta:
    """Request metadata bundle handed over by the HTTP layer.

    Every field is optional; absent values stay ``None`` in the
    environment attributes.
    """

    method: str | None = None
    path: str | None = None
    client_address: str | None = None
    user_agent: str | None = None
    query: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "query", freeze(self.query or {}))


@dataclass(frozen=True, slots=True)
class Resource:
    """A concrete entity under access, tagged with its model name.

    Attributes:
        model: Resource-model name (e.g. ``"colleges"``).
        attributes: Field values of the entity.
        id: Identifier; taken from ``attributes["id"]`` when omitted.
    """

    model: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    id: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.model, str) or not self.model:
            raise InvalidInput(f"Resource.model must be a non-empty string, got {self.model!r}")
        object.__setattr__(self, "attributes", freeze(self.attributes))
        if self.id is None and "id" in self.attributes:
            object.__setattr__(self, "id", self.attributes["id"])


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    """Immutable attribute bag for a single evaluation call.

    Attributes:
        subject: Attributes of the principal.
        environment: Request and clock attributes.
        resource: Field values of the target entity, or ``None`` for
            collection-level checks.
        model: Model name of the target resource, if bound.
    """

    subject: Mapping[str, Any]
    environment: Mapping[str, Any]
    resource: Mapping[str, Any] | None = None
    model: str | None = None

    def scope(self, name: str) -> Mapping[str, Any] | None:
        """Return the attribute mapping for *name* (``subject``, ``resource``, ``environment``)."""
        if name == "subject":
            return self.subject
        if name == "environment":
            return self.environment
        if name == "resource":
            return self.resource
        raise InvalidInput(f"Unknown attribute scope {name!r}; expected one of {SCOPES!r}")

    def lookup(self, path: str) -> Any:
        """Resolve a dotted attribute path such as ``"resource.owner_id"``.

        Nested mappings are traversed (``"environment.query.page"``).

        Returns:
            The attribute value, or :data:`MISSING` when any segment is absent.
        """
        scope_name, _, rest = path.partition(".")
        current: Any = self.scope(scope_name)
        if current is None or not rest:
            return MISSING
        for part in rest.split("."):
            if not isinstance(current, Mapping) or part not in current:
                return MISSING
            current = current[part]
        return current

    def with_resource(self, resource: Resource) -> EvaluationContext:
        """Return a copy bound to *resource*."""
        return dataclasses.replace(self, resource=resource.attributes, model=resource.model)

    def without_resource(self) -> EvaluationContext:
        """Return a copy with no resource bound (collection-level)."""
        return dataclasses.replace(self, resource=None, model=None)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "subject": thaw(self.subject),
            "resource": thaw(self.resource) if self.resource is not None else None,
            "environment": thaw(self.environment),
            "model": self.model,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContextBuilder:
    """Assembles an :class:`EvaluationContext` from a principal and request meta.

    The clock is injectable so that tests, and audit replays, can pin the
    time attributes.

    Example::

        builder = ContextBuilder()
        ctx = builder.build(principal, RequestMeta(method="GET", path="/colleges"))
        ctx.lookup("environment.method")  # "GET"
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock if clock is not None else _utcnow

    def build(
        self,
        principal: Principal,
        request_meta: RequestMeta | None = None,
        *,
        resource: Resource | None = None,
    ) -> EvaluationContext:
        """Build the context for one evaluation.

        Raises:
            InvalidInput: If *principal* is ``None`` or not a ``Principal``,
                or *request_meta* is of the wrong type.
        """
        if principal is None:
            raise InvalidInput("A principal is required to build an evaluation context")
        if not isinstance(principal, Principal):
            raise InvalidInput(f"Expected a Principal, got {type(principal).__name__}")
        if request_meta is None:
            request_meta = RequestMeta()
        elif not isinstance(request_meta, RequestMeta):
            raise InvalidInput(f"Expected RequestMeta, got {type(request_meta).__name__}")

        now = self._clock()
        subject: dict[str, Any] = dict(principal.attributes)
        subject.update(
            id=principal.id,
            permissions=tuple(sorted(principal.permissions)),
            is_super_admin=principal.is_super_admin,
        )
        environment: dict[str, Any] = {
            "method": request_meta.method.upper() if request_meta.method else None,
            "path": request_meta.path,
            "client_address": request_meta.client_address,
            "user_agent": request_meta.user_agent,
            "query": request_meta.query,
            "current_time": now,
            "current_hour": now.hour,
            "current_day": WEEKDAYS[now.weekday()],
        }
        return EvaluationContext(
            subject=freeze(subject),
            environment=freeze(environment),
            resource=resource.attributes if resource is not None else None,
            model=resource.model if resource is not None else None,
        )


_default_builder = ContextBuilder()


def build_context(
    principal: Principal,
    request_meta: RequestMeta | None = None,
    *,
    resource: Resource | None = None,
    clock: Clock | None = None,
) -> EvaluationContext:
    """Build an evaluation context with the default (or a one-off) clock.

    Example::

        ctx = build_context(principal, RequestMeta(client_address="10.0.0.5"))
    """
    builder = _default_builder if clock is None else ContextBuilder(clock=clock)
    return builder.build(principal, request_meta, resource=resource)
