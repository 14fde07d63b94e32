"""Resource models known to the engine and how to fetch them."""

from sqla_abac.resources._loaders import (
    InMemoryResourceLoader,
    ResourceLoader,
    SessionResourceLoader,
    column_values,
    load_resource,
)
from sqla_abac.resources._registry import (
    ResourceDescriptor,
    ResourceRegistry,
    get_default_resource_registry,
)

__all__ = [
    "InMemoryResourceLoader",
    "ResourceDescriptor",
    "ResourceLoader",
    "ResourceRegistry",
    "SessionResourceLoader",
    "column_values",
    "get_default_resource_registry",
    "load_resource",
]
