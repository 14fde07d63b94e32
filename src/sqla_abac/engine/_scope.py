"""DataScopeResolver — collection-level access as a declarative filter."""

from __future__ import annotations

import time

from sqla_abac._audit import AuditEvent, emit_audit_event, has_audit_sinks, log_data_scope
from sqla_abac._types import FilterDocument
from sqla_abac.conditions._nodes import ALWAYS, NEVER, Condition
from sqla_abac.conditions._partial import residualize
from sqla_abac.config._config import AbacConfig, resolve_config
from sqla_abac.context._builder import ContextBuilder, EvaluationContext
from sqla_abac.context._principal import Principal
from sqla_abac.engine._evaluator import check_action, check_principal, context_time, request_context
from sqla_abac.engine._models import DataScope, PolicyResult
from sqla_abac.exceptions import InvalidInput
from sqla_abac.filters._build import (
    condition_to_filter,
    exclude_filters,
    filter_fields,
    is_match_nothing,
    union_filters,
)
from sqla_abac.policy._store import PolicyStore, get_default_store
from sqla_abac.resources._registry import ResourceDescriptor, ResourceRegistry

__all__ = ["DataScopeResolver", "check_filter_fields", "get_data_scope"]


def check_filter_fields(document: FilterDocument, descriptor: ResourceDescriptor) -> None:
    """Reject a filter that references fields *descriptor* does not declare.

    Raises:
        InvalidInput: Naming the undeclared fields.
    """
    undeclared = sorted(f for f in filter_fields(document) if not descriptor.has_field(f))
    if undeclared:
        raise InvalidInput(
            f"Data scope for {descriptor.name!r} filters on undeclared fields {undeclared!r}"
        )


class DataScopeResolver:
    """Turns the applicable policies for a list operation into a filter.

    Each policy condition is partially evaluated against the subject and
    environment. Resource-independent outcomes decide access outright;
    the rest leave a residual over resource fields, which becomes a filter:

    - allow residuals are ORed (a principal sees the union of what each
      allow policy grants);
    - a deny that matches regardless of the resource removes access;
    - a deny whose match depends on the resource excludes those records.

    Example::

        resolver = DataScopeResolver(store)
        scope = resolver.get_data_scope(principal, "colleges", "read")
        # DataScope(has_access=True, filter={"owner_id": 42}, ...)
    """

    def __init__(
        self,
        store: PolicyStore | None = None,
        *,
        config: AbacConfig | None = None,
        resources: ResourceRegistry | None = None,
        context_builder: ContextBuilder | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._resources = resources
        self._builder = context_builder if context_builder is not None else ContextBuilder()

    @property
    def store(self) -> PolicyStore:
        return self._store if self._store is not None else get_default_store()

    def get_data_scope(
        self,
        principal: Principal,
        model_name: str,
        action: str,
        context: EvaluationContext | None = None,
    ) -> DataScope:
        """Resolve the data scope of *principal* for *action* on *model_name*.

        Raises:
            InvalidInput: On a missing principal, unknown action, empty model
                name or (with a registry) unknown model; also when a
                condition cannot be expressed as a filter, or (with a
                registry) the filter names an undeclared field.
            PolicyStoreUnavailable: If the policy snapshot cannot be read.
        """
        started = time.perf_counter()
        principal = check_principal(principal)
        action = check_action(action)
        if not isinstance(model_name, str) or not model_name:
            raise InvalidInput(f"Model name must be a non-empty string, got {model_name!r}")
        descriptor = self._resources.get(model_name) if self._resources is not None else None
        config = resolve_config(self._config)
        if context is None:
            context = self._builder.build(principal)
        else:
            context = context.without_resource()

        if principal.is_super_admin:
            scope = DataScope(
                has_access=True,
                filter={},
                model=model_name,
                action=action,
                principal_id=principal.id,
                bypassed=True,
            )
        else:
            scope = self._resolve(principal, model_name, action, context, config)
            if descriptor is not None:
                check_filter_fields(scope.filter, descriptor)

        self._audit(scope, context, config, started)
        return scope

    def _resolve(
        self,
        principal: Principal,
        model_name: str,
        action: str,
        context: EvaluationContext,
        config: AbacConfig,
    ) -> DataScope:
        snapshot = self.store.snapshot()
        policies = snapshot.lookup(model_name, action)
        moment = context_time(context)

        residuals: list[Condition] = []
        for p in policies:
            if not p.in_effect(moment):
                residuals.append(NEVER)
            else:
                residuals.append(
                    residualize(
                        p.condition, context, on_missing_attribute=config.on_missing_attribute
                    )
                )

        decisive: int | None = None
        first_allow: int | None = None
        allow_filters: list[FilterDocument] = []
        deny_filters: list[FilterDocument] = []
        for i, (p, residual) in enumerate(zip(policies, residuals)):
            if residual == NEVER:
                continue
            if p.effect == "deny":
                if residual == ALWAYS:
                    # Model-wide deny.
                    decisive = i
                    break
                deny_filters.append(condition_to_filter(residual))
            else:
                if first_allow is None:
                    first_allow = i
                allow_filters.append(condition_to_filter(residual))

        has_access = False
        scope_filter: FilterDocument = {}
        if decisive is None and allow_filters:
            scope_filter = exclude_filters(union_filters(*allow_filters), *deny_filters)
            has_access = not is_match_nothing(scope_filter)
            if has_access:
                decisive = first_allow

        results = tuple(
            PolicyResult(
                policy_id=p.id,
                name=p.name,
                effect=p.effect,
                priority=p.priority,
                matched=r != NEVER,
                decisive=i == decisive,
            )
            for i, (p, r) in enumerate(zip(policies, residuals))
        )
        return DataScope(
            has_access=has_access,
            filter=scope_filter,
            model=model_name,
            action=action,
            principal_id=principal.id,
            results=results,
            snapshot_version=snapshot.version,
        )

    def _audit(
        self,
        scope: DataScope,
        context: EvaluationContext,
        config: AbacConfig,
        started: float,
    ) -> None:
        if config.log_policy_decisions:
            log_data_scope(scope)
        if has_audit_sinks():
            emit_audit_event(
                AuditEvent(
                    kind="data_scope",
                    principal_id=scope.principal_id,
                    model=scope.model,
                    action=scope.action,
                    resource_id=None,
                    effect="allow" if scope.has_access else "deny",
                    bypassed=scope.bypassed,
                    policies=tuple(r.to_dict() for r in scope.results),
                    request_context=request_context(context),
                    evaluation_time_ms=(time.perf_counter() - started) * 1000.0,
                    ip_address=context.environment.get("client_address"),
                    user_agent=context.environment.get("user_agent"),
                )
            )


def get_data_scope(
    principal: Principal,
    model_name: str,
    action: str,
    context: EvaluationContext | None = None,
    *,
    store: PolicyStore | None = None,
    config: AbacConfig | None = None,
) -> DataScope:
    """Resolve a data scope with a one-off :class:`DataScopeResolver`.

    Example::

        scope = get_data_scope(principal, "colleges", "read")
        stmt = apply_data_scope(select(College), scope, College)
    """
    return DataScopeResolver(store, config=config).get_data_scope(
        principal, model_name, action, context
    )
