"""Attribute context — principal, request metadata and evaluation context."""

from sqla_abac.context._builder import (
    MISSING,
    ContextBuilder,
    EvaluationContext,
    RequestMeta,
    Resource,
    build_context,
)
from sqla_abac.context._principal import Principal, permission_key

__all__ = [
    "MISSING",
    "ContextBuilder",
    "EvaluationContext",
    "Principal",
    "RequestMeta",
    "Resource",
    "build_context",
    "permission_key",
]
