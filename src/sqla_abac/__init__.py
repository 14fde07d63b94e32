"""sqla-abac — Embedded attribute-based access control for SQLAlchemy 2.0 apps.

Decides per request whether a principal may act on a resource, and for
list endpoints which records they may see, as a declarative filter that
compiles to SQL WHERE clauses.

Example::

    from sqla_abac import Policy, PolicyStore, Principal, get_data_scope, resource, subject

    store = PolicyStore([
        Policy(
            id="own-colleges",
            model="colleges",
            actions=("read", "update"),
            condition=resource.owner_id.equals(subject.id),
        ),
    ])
    scope = get_data_scope(Principal(id=42), "colleges", "read", store=store)
    # DataScope(has_access=True, filter={"owner_id": 42}, ...)
    stmt = apply_data_scope(select(College), scope, College)
"""

from importlib.metadata import PackageNotFoundError, version

from sqla_abac._audit import AuditEvent, add_audit_sink, remove_audit_sink
from sqla_abac.conditions import ALWAYS, NEVER, Condition, environment, ref, resource, subject
from sqla_abac.config._config import AbacConfig, configure
from sqla_abac.context import ContextBuilder, Principal, RequestMeta, Resource, build_context
from sqla_abac.engine import (
    DataScope,
    DataScopeResolver,
    Decision,
    PolicyEvaluator,
    PolicyResult,
    evaluate,
    get_data_scope,
)
from sqla_abac.exceptions import (
    AbacError,
    AccessDenied,
    InvalidInput,
    NotFound,
    PolicyStoreUnavailable,
    ResourceFetchError,
    UnknownModelError,
    UnsupportedConditionError,
)
from sqla_abac.filters import apply_data_scope, compile_filter, matches_filter
from sqla_abac.guard import AccessGrant, AccessGuard, GuardState, HttpOutcome, http_outcome
from sqla_abac.policy import (
    Policy,
    PolicyStore,
    TimeWindow,
    permission_policies,
    permission_policy,
    policy,
)
from sqla_abac.resources import (
    InMemoryResourceLoader,
    ResourceRegistry,
    SessionResourceLoader,
)

try:
    __version__ = version("sqla-abac")
except PackageNotFoundError:
    __version__ = "dev"

__all__ = [
    "__version__",
    "ALWAYS",
    "NEVER",
    "AbacConfig",
    "AbacError",
    "AccessDenied",
    "AccessGrant",
    "AccessGuard",
    "AuditEvent",
    "Condition",
    "ContextBuilder",
    "DataScope",
    "DataScopeResolver",
    "Decision",
    "GuardState",
    "HttpOutcome",
    "InMemoryResourceLoader",
    "InvalidInput",
    "NotFound",
    "Policy",
    "PolicyEvaluator",
    "PolicyResult",
    "PolicyStore",
    "PolicyStoreUnavailable",
    "Principal",
    "RequestMeta",
    "Resource",
    "ResourceFetchError",
    "ResourceRegistry",
    "SessionResourceLoader",
    "TimeWindow",
    "UnknownModelError",
    "UnsupportedConditionError",
    "add_audit_sink",
    "apply_data_scope",
    "build_context",
    "compile_filter",
    "configure",
    "environment",
    "evaluate",
    "get_data_scope",
    "http_outcome",
    "matches_filter",
    "permission_policies",
    "permission_policy",
    "policy",
    "ref",
    "remove_audit_sink",
    "resource",
    "subject",
]
