"""Principal factory functions for testing sqla-abac policies."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqla_abac.context._principal import Principal

__all__ = ["make_anonymous", "make_principal", "make_super_admin"]


def make_principal(
    id: int | str = 1,  # noqa: A002
    permissions: Iterable[str] = (),
    **attributes: Any,
) -> Principal:
    """Create a regular (non-super-admin) ``Principal``.

    Args:
        id: The principal's identifier. Defaults to ``1``.
        permissions: Permission keys such as ``"colleges.read"``.
        **attributes: Extra subject attributes (``role``, ``department``, ...).

    Example::

        user = make_principal(id=5, permissions=["colleges.read"], role="editor")
        assert user.has_permission("colleges.read")
    """
    return Principal(id=id, permissions=frozenset(permissions), attributes=attributes)


def make_super_admin(id: int | str = "admin") -> Principal:  # noqa: A002
    """Create a super-admin ``Principal``.

    Example::

        admin = make_super_admin()
        assert admin.is_super_admin
    """
    return Principal(id=id, is_super_admin=True)


def make_anonymous() -> Principal:
    """Create a principal with no permissions and ``role="anonymous"``."""
    return Principal(id="anonymous", attributes={"role": "anonymous"})
