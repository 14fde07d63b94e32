"""sqla-abac testing utilities — principal factories, assertions, and fixtures.

Provides test helpers for verifying access policies:

- **Principal factories**: ``make_principal``, ``make_super_admin``,
  ``make_anonymous``.
- **Assertion helpers**: ``assert_allowed``, ``assert_denied``,
  ``assert_scope``, ``assert_no_access``.
- **Fixtures**: ``abac_store``, ``abac_resources``, ``abac_config``,
  ``isolated_abac_state``.

Example::

    from sqla_abac.testing import assert_scope, make_principal

    def test_reader_sees_everything(abac_store):
        abac_store.register(permission_policy("colleges", "read"))
        user = make_principal(permissions=["colleges.read"])
        assert_scope(user, "colleges", "read", expected_filter={}, store=abac_store)
"""

from sqla_abac.testing._assertions import (
    assert_allowed,
    assert_denied,
    assert_no_access,
    assert_scope,
)
from sqla_abac.testing._fixtures import (
    abac_config,
    abac_resources,
    abac_store,
    isolated_abac_state,
)
from sqla_abac.testing._isolation import isolated_abac
from sqla_abac.testing._principals import make_anonymous, make_principal, make_super_admin

__all__ = [
    "abac_config",
    "abac_resources",
    "abac_store",
    "assert_allowed",
    "assert_denied",
    "assert_no_access",
    "assert_scope",
    "isolated_abac",
    "isolated_abac_state",
    "make_anonymous",
    "make_principal",
    "make_super_admin",
]
