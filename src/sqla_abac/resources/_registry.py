"""ResourceRegistry — static mapping of model names to resource descriptors."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import inspect as sa_inspect

from sqla_abac.exceptions import InvalidInput, UnknownModelError

__all__ = ["ResourceDescriptor", "ResourceRegistry", "get_default_resource_registry"]


@dataclass(frozen=True, slots=True)
class ResourceDescriptor:
    """Describes one resource model known to the engine.

    Attributes:
        name: The model name used in policies (e.g. ``"colleges"``).
        model: Optional SQLAlchemy mapped class backing the resource.
        id_field: Name of the identifier attribute.
        fields: Attribute names that filters may reference. Derived from
            the mapped columns when *model* is given and *fields* is not.
    """

    name: str
    model: type[Any] | None = None
    id_field: str = "id"
    fields: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise InvalidInput(f"Resource name must be a non-empty string, got {self.name!r}")
        fields = frozenset(self.fields)
        if not fields and self.model is not None:
            mapper = sa_inspect(self.model)
            fields = frozenset(prop.key for prop in mapper.column_attrs)
        object.__setattr__(self, "fields", fields)

    def has_field(self, name: str) -> bool:
        """``True`` if *name* is a known field (or no field list is declared)."""
        return not self.fields or name in self.fields


class ResourceRegistry:
    """Registry mapping model-name strings to :class:`ResourceDescriptor`.

    Built at startup; lookups of unregistered names fail with
    :class:`~sqla_abac.exceptions.UnknownModelError`.

    Example::

        resources = ResourceRegistry()
        resources.register("colleges", College)
        resources.register("departments", Department)
        resources.get("colleges").model  # College
    """

    def __init__(self, descriptors: Iterable[ResourceDescriptor] = ()) -> None:
        self._descriptors: dict[str, ResourceDescriptor] = {}
        for descriptor in descriptors:
            self.add(descriptor)

    def add(self, descriptor: ResourceDescriptor) -> ResourceDescriptor:
        if descriptor.name in self._descriptors:
            raise InvalidInput(f"Resource {descriptor.name!r} is already registered")
        self._descriptors[descriptor.name] = descriptor
        return descriptor

    def register(
        self,
        name: str,
        model: type[Any] | None = None,
        *,
        id_field: str = "id",
        fields: Iterable[str] = (),
    ) -> ResourceDescriptor:
        """Register a resource model under *name*.

        Args:
            name: The model name policies refer to.
            model: Optional SQLAlchemy mapped class.
            id_field: Identifier attribute name.
            fields: Filterable attribute names (defaults to mapped columns).

        Returns:
            The new descriptor.
        """
        return self.add(
            ResourceDescriptor(name=name, model=model, id_field=id_field, fields=frozenset(fields))
        )

    def get(self, name: str) -> ResourceDescriptor:
        """Return the descriptor for *name*.

        Raises:
            UnknownModelError: If *name* was never registered.
        """
        try:
            return self._descriptors[name]
        except (KeyError, TypeError):
            raise UnknownModelError(model=name) from None

    def names(self) -> frozenset[str]:
        return frozenset(self._descriptors)

    def clear(self) -> None:
        """Remove all descriptors. Primarily for test teardown."""
        self._descriptors.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __iter__(self) -> Iterator[ResourceDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)


_default_registry = ResourceRegistry()


def get_default_resource_registry() -> ResourceRegistry:
    """Return the global default resource registry."""
    return _default_registry
