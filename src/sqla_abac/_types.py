"""Shared type aliases and constants for sqla-abac."""

from __future__ import annotations

from typing import Any, Literal

__all__ = [
    "ACTIONS",
    "Action",
    "Effect",
    "FilterDocument",
    "OnMissingAttribute",
    "SCOPES",
    "WILDCARD_ACTION",
]

# The fixed CRUD verbs a policy can target.
Action = Literal["create", "read", "update", "delete"]

ACTIONS: frozenset[str] = frozenset({"create", "read", "update", "delete"})

# Policies registered under this action apply to every verb of their model.
WILDCARD_ACTION = "*"

# Valid values for Policy.effect and Decision.effect.
Effect = Literal["allow", "deny"]

# Valid values for AbacConfig.on_missing_attribute.
OnMissingAttribute = Literal["no_match", "raise"]

# Attribute namespaces a condition may reference.
SCOPES: tuple[str, ...] = ("subject", "resource", "environment")

# A declarative, JSON-serializable query filter (Mongo-style vocabulary).
FilterDocument = dict[str, Any]
