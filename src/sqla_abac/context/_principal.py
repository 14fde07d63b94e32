"""Principal — the authenticated actor of a request."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from sqla_abac.exceptions import InvalidInput

__all__ = ["Principal", "permission_key"]

# Claim names consumed by Principal.from_claims(); everything else becomes
# an extra subject attribute.
_ID_CLAIMS = ("sub", "id", "user_id")
_RESERVED_CLAIMS = frozenset(
    {"sub", "id", "user_id", "permissions", "is_super_admin", "exp", "iat", "nbf", "iss", "aud"}
)


def permission_key(model: str, action: str) -> str:
    """Return the permission key ``<model>.<action>``.

    Example::

        permission_key("colleges", "read")  # "colleges.read"
    """
    return f"{model}.{action}"


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated actor, immutable for the duration of a request.

    Attributes:
        id: Stable identifier of the principal.
        permissions: Assigned permission keys of the form ``<model>.<action>``.
        is_super_admin: When true every check is bypassed with an allow.
        attributes: Extra subject attributes (department, roles, ...).

    Example::

        alice = Principal(id="u1", permissions={"colleges.read"}, attributes={"department": "cs"})
        alice.has_permission("colleges.read")  # True
    """

    id: str | int
    permissions: frozenset[str] = frozenset()
    is_super_admin: bool = False
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.id is None or self.id == "":
            raise InvalidInput("Principal.id must be a non-empty identifier")
        if isinstance(self.permissions, str):
            raise InvalidInput("Principal.permissions must be a collection of keys, not a string")
        perms = frozenset(self.permissions)
        for key in perms:
            if not isinstance(key, str) or "." not in key:
                raise InvalidInput(
                    f"Permission keys must look like '<model>.<action>', got {key!r}"
                )
        object.__setattr__(self, "permissions", perms)
        object.__setattr__(self, "is_super_admin", bool(self.is_super_admin))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def has_permission(self, key: str) -> bool:
        """Return ``True`` if *key* is among the assigned permissions."""
        return key in self.permissions

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> Principal:
        """Build a principal from an already-verified token payload.

        The identifier is read from ``sub``, ``id`` or ``user_id`` (first
        present wins); ``permissions`` and ``is_super_admin`` map directly;
        every other non-registered claim becomes a subject attribute.

        Raises:
            InvalidInput: If no identifier claim is present.

        Example::

            principal = Principal.from_claims(
                {"sub": "u1", "permissions": ["colleges.read"], "department": "cs"}
            )
        """
        ident = next((claims[k] for k in _ID_CLAIMS if claims.get(k) is not None), None)
        if ident is None:
            raise InvalidInput("Token claims carry no principal identifier")
        permissions: Iterable[str] = claims.get("permissions") or ()
        extra = {k: v for k, v in claims.items() if k not in _RESERVED_CLAIMS}
        return cls(
            id=ident,
            permissions=frozenset(permissions),
            is_super_admin=bool(claims.get("is_super_admin", False)),
            attributes=extra,
        )
