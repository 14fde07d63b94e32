"""Resource loaders — fetch a target entity by model name and identifier."""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from sqla_abac._deadline import DeadlineExceeded, call_with_timeout
from sqla_abac.context._builder import Resource
from sqla_abac.exceptions import AbacError, InvalidInput, NotFound, ResourceFetchError
from sqla_abac.resources._registry import ResourceDescriptor

__all__ = [
    "InMemoryResourceLoader",
    "ResourceLoader",
    "SessionResourceLoader",
    "column_values",
    "load_resource",
]


@runtime_checkable
class ResourceLoader(Protocol):
    """Fetch a resource's field values, or ``None`` when it does not exist."""

    def fetch(
        self, descriptor: ResourceDescriptor, resource_id: Any
    ) -> Mapping[str, Any] | None: ...


def column_values(instance: Any) -> dict[str, Any]:
    """Extract the loaded column values of a mapped instance, keyed by attribute."""
    mapper = sa_inspect(type(instance))
    instance_state = sa_inspect(instance)
    return {
        prop.key: instance_state.attrs[prop.key].loaded_value for prop in mapper.column_attrs
    }


class SessionResourceLoader:
    """Fetch resources through SQLAlchemy by primary key.

    Bound to a ``Session``, the fetch runs on the caller's thread, since a
    session must not be shared across threads. Given a session factory
    (such as a ``sessionmaker``), each fetch opens and closes its own
    session, so it may run in a worker bounded by ``resource_fetch_timeout``.

    Example::

        loader = SessionResourceLoader(session)
        loader.fetch(resources.get("colleges"), 7)  # {"id": 7, "name": ..., ...}

        loader = SessionResourceLoader(sessionmaker(bind=engine))
    """

    def __init__(self, session: Session | Callable[[], Session]) -> None:
        self._session = session

    @property
    def runs_inline(self) -> bool:
        """Whether fetches must stay on the calling thread."""
        return isinstance(self._session, Session)

    def fetch(self, descriptor: ResourceDescriptor, resource_id: Any) -> Mapping[str, Any] | None:
        if descriptor.model is None:
            raise InvalidInput(
                f"Resource {descriptor.name!r} has no mapped model; "
                "SessionResourceLoader needs one"
            )
        if isinstance(self._session, Session):
            return self._get(self._session, descriptor.model, resource_id)
        with self._session() as session:
            return self._get(session, descriptor.model, resource_id)

    @staticmethod
    def _get(session: Session, model: type[Any], resource_id: Any) -> dict[str, Any] | None:
        instance = session.get(model, resource_id)
        if instance is None:
            return None
        return column_values(instance)


class InMemoryResourceLoader:
    """Serve resources from dictionaries, keyed by model name then id.

    Example::

        loader = InMemoryResourceLoader({
            "colleges": {"c1": {"id": "c1", "owner_id": 1}},
        })
    """

    def __init__(self, data: Mapping[str, Mapping[Any, Mapping[str, Any]]] | None = None) -> None:
        self._data: dict[str, dict[Any, Mapping[str, Any]]] = {
            model: dict(rows) for model, rows in (data or {}).items()
        }

    def add(self, model: str, resource_id: Any, attributes: Mapping[str, Any]) -> None:
        self._data.setdefault(model, {})[resource_id] = attributes

    def fetch(self, descriptor: ResourceDescriptor, resource_id: Any) -> Mapping[str, Any] | None:
        return self._data.get(descriptor.name, {}).get(resource_id)


def _fetch(
    loader: ResourceLoader, descriptor: ResourceDescriptor, resource_id: Any, timeout: float | None
) -> Mapping[str, Any] | None:
    if not getattr(loader, "runs_inline", False):
        return call_with_timeout(lambda: loader.fetch(descriptor, resource_id), timeout)
    started = time.monotonic()
    attributes = loader.fetch(descriptor, resource_id)
    if timeout is not None and time.monotonic() - started > timeout:
        raise DeadlineExceeded()
    return attributes


def load_resource(
    loader: ResourceLoader,
    descriptor: ResourceDescriptor,
    resource_id: Any,
    *,
    timeout: float | None,
) -> Resource:
    """Fetch and wrap a resource, bounded by *timeout*.

    Loaders exposing a true ``runs_inline`` attribute are called on the
    current thread and fail once they return past the deadline; others
    run in a worker and are abandoned when the deadline passes.

    Raises:
        NotFound: If the loader reports no such resource.
        ResourceFetchError: If the loader failed or timed out.
    """
    try:
        attributes = _fetch(loader, descriptor, resource_id, timeout)
    except DeadlineExceeded as exc:
        raise ResourceFetchError(
            model=descriptor.name,
            resource_id=resource_id,
            message=f"Fetching {descriptor.name} {resource_id!r} timed out after {timeout}s",
        ) from exc
    except AbacError:
        raise
    except Exception as exc:
        raise ResourceFetchError(model=descriptor.name, resource_id=resource_id) from exc
    if attributes is None:
        raise NotFound(model=descriptor.name, resource_id=resource_id)
    attributes = dict(attributes)
    attributes.setdefault(descriptor.id_field, resource_id)
    return Resource(
        model=descriptor.name, attributes=attributes, id=attributes[descriptor.id_field]
    )
