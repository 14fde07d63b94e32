"""AccessGuard — the per-request boundary between HTTP handlers and the engine."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Select

from sqla_abac._types import FilterDocument
from sqla_abac.config._config import AbacConfig, resolve_config
from sqla_abac.context._builder import ContextBuilder, RequestMeta, Resource, thaw
from sqla_abac.context._principal import Principal
from sqla_abac.engine._evaluator import PolicyEvaluator, check_action, check_principal
from sqla_abac.engine._models import DataScope, Decision
from sqla_abac.engine._scope import DataScopeResolver, check_filter_fields
from sqla_abac.exceptions import AbacError, AccessDenied, InvalidInput
from sqla_abac.filters._sql import apply_data_scope
from sqla_abac.policy._store import PolicyStore
from sqla_abac.resources._loaders import ResourceLoader, load_resource
from sqla_abac.resources._registry import (
    ResourceDescriptor,
    ResourceRegistry,
    get_default_resource_registry,
)

__all__ = ["AccessGrant", "AccessGuard", "GuardState"]

logger = logging.getLogger("sqla_abac.guard")


class GuardState(enum.Enum):
    """Per-request evaluation states."""

    UNEVALUATED = "unevaluated"
    SUPER_ADMIN_BYPASS = "super_admin_bypass"
    ITEM_EVALUATED = "item_evaluated"
    COLLECTION_EVALUATED = "collection_evaluated"
    CONTINUED = "continued"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class AccessGrant:
    """What a successful check attaches to the request.

    Attributes:
        model: Resource-model name.
        action: The action granted.
        has_access: Always ``True`` on a grant.
        filter: Filter to AND into list queries (``{}`` = unrestricted).
        resource: The fetched target for item-level checks.
        decision: The item-level decision, if one was made.
        scope: The collection-level data scope, if one was resolved.
        evaluated: The evaluation state that led to the grant.
        state: Terminal state (``CONTINUED``).
    """

    model: str
    action: str
    has_access: bool = True
    filter: FilterDocument = field(default_factory=dict)
    resource: Resource | None = None
    decision: Decision | None = None
    scope: DataScope | None = None
    evaluated: GuardState = GuardState.UNEVALUATED
    state: GuardState = GuardState.CONTINUED

    @property
    def bypassed(self) -> bool:
        return self.evaluated is GuardState.SUPER_ADMIN_BYPASS

    def data_scope(self) -> DataScope:
        """The grant as a :class:`DataScope` (item grants are unrestricted)."""
        if self.scope is not None:
            return self.scope
        return DataScope(
            has_access=True, filter=dict(self.filter), model=self.model, action=self.action
        )

    def apply(self, stmt: Select[Any], model: type[Any] | ResourceDescriptor) -> Select[Any]:
        """AND the grant's filter into *stmt*.

        Example::

            stmt = grant.apply(select(College), College)
        """
        return apply_data_scope(stmt, self.data_scope(), model)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        data: dict[str, Any] = {"has_access": self.has_access, "filter": self.filter}
        if self.resource is not None:
            data["resource"] = thaw(self.resource.attributes)
        if self.decision is not None:
            data["decision"] = self.decision.to_dict()
        return data


class AccessGuard:
    """Checks one (model, action) pair for incoming requests.

    Item-level requests (a resource id is given) fetch the target first,
    so a missing target is reported as ``NotFound`` before any policy is
    evaluated. Collection-level requests resolve a data scope.

    Raises from :meth:`check`:

    - ``NotFound`` (404), ``AccessDenied`` (403)
    - ``PolicyStoreUnavailable``, ``ResourceFetchError``, ``InvalidInput``
      and any unexpected error (500)

    The raised ``AbacError`` carries ``guard_state = GuardState.REJECTED``.

    Example::

        guard = AccessGuard("colleges", "update", loader=SessionResourceLoader(session))
        grant = guard.check(principal, RequestMeta(method="PUT"), resource_id=7)
    """

    def __init__(
        self,
        model: str,
        action: str,
        *,
        store: PolicyStore | None = None,
        resources: ResourceRegistry | None = None,
        loader: ResourceLoader | None = None,
        config: AbacConfig | None = None,
        context_builder: ContextBuilder | None = None,
    ) -> None:
        if not isinstance(model, str) or not model:
            raise InvalidInput(f"Model name must be a non-empty string, got {model!r}")
        self.model = model
        self.action = check_action(action)
        self._resources = resources
        self._loader = loader
        self._config = config
        self._builder = context_builder if context_builder is not None else ContextBuilder()
        self._evaluator = PolicyEvaluator(store, config=config, context_builder=self._builder)
        self._resolver = DataScopeResolver(store, config=config, context_builder=self._builder)

    @property
    def resources(self) -> ResourceRegistry:
        return self._resources if self._resources is not None else get_default_resource_registry()

    def check(
        self,
        principal: Principal,
        request_meta: RequestMeta | None = None,
        resource_id: Any = None,
        *,
        loader: ResourceLoader | None = None,
    ) -> AccessGrant:
        """Evaluate the request once and return the grant, or raise.

        Args:
            principal: The authenticated principal.
            request_meta: Request metadata for environment attributes.
            resource_id: Target id for item-level requests; ``None`` for
                collection requests.
            loader: Per-call loader overriding the guard's loader.
        """
        try:
            return self._check(principal, request_meta, resource_id, loader)
        except AbacError as exc:
            exc.guard_state = GuardState.REJECTED
            raise

    def _check(
        self,
        principal: Principal,
        request_meta: RequestMeta | None,
        resource_id: Any,
        loader: ResourceLoader | None,
    ) -> AccessGrant:
        principal = check_principal(principal)
        descriptor = self.resources.get(self.model)

        if principal.is_super_admin:
            logger.debug("%s.%s: super-admin bypass for %r", self.model, self.action, principal.id)
            return AccessGrant(
                model=self.model,
                action=self.action,
                evaluated=GuardState.SUPER_ADMIN_BYPASS,
            )

        config = resolve_config(self._config)
        if resource_id is not None:
            return self._check_item(
                principal, request_meta, resource_id, descriptor, loader, config
            )
        return self._check_collection(principal, request_meta, descriptor, config)

    def _check_item(
        self,
        principal: Principal,
        request_meta: RequestMeta | None,
        resource_id: Any,
        descriptor: ResourceDescriptor,
        loader: ResourceLoader | None,
        config: AbacConfig,
    ) -> AccessGrant:
        target_loader = loader if loader is not None else self._loader
        if target_loader is None:
            raise InvalidInput(f"No resource loader configured for {self.model!r}")
        resource = load_resource(
            target_loader, descriptor, resource_id, timeout=config.resource_fetch_timeout
        )
        context = self._builder.build(principal, request_meta, resource=resource)
        decision = self._evaluator.evaluate(principal, resource, self.action, context)
        if not decision.allowed:
            raise AccessDenied(
                principal_id=principal.id,
                action=self.action,
                model=self.model,
                policies=decision.diagnostics(disclose_matched=config.disclose_matched_policies),
            )
        logger.debug("%s.%s: allowed %r on %r", self.model, self.action, principal.id, resource.id)
        return AccessGrant(
            model=self.model,
            action=self.action,
            resource=resource,
            decision=decision,
            evaluated=GuardState.ITEM_EVALUATED,
        )

    def _check_collection(
        self,
        principal: Principal,
        request_meta: RequestMeta | None,
        descriptor: ResourceDescriptor,
        config: AbacConfig,
    ) -> AccessGrant:
        context = self._builder.build(principal, request_meta)
        scope = self._resolver.get_data_scope(principal, self.model, self.action, context)
        if not scope.has_access:
            raise AccessDenied(
                principal_id=principal.id,
                action=self.action,
                model=self.model,
                policies=scope.diagnostics(disclose_matched=config.disclose_matched_policies),
            )
        check_filter_fields(scope.filter, descriptor)
        logger.debug("%s.%s: scope %s for %r", self.model, self.action, scope.filter, principal.id)
        return AccessGrant(
            model=self.model,
            action=self.action,
            filter=scope.filter,
            scope=scope,
            evaluated=GuardState.COLLECTION_EVALUATED,
        )

    def __repr__(self) -> str:
        return f"AccessGuard({self.model!r}, {self.action!r})"
