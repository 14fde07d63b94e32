"""PolicyEvaluator — item-level allow/deny decisions."""

from __future__ import annotations

import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqla_abac._audit import AuditEvent, emit_audit_event, has_audit_sinks, log_decision
from sqla_abac._types import ACTIONS
from sqla_abac.conditions._eval import evaluate_condition
from sqla_abac.config._config import AbacConfig, resolve_config
from sqla_abac.context._builder import ContextBuilder, EvaluationContext, Resource, thaw
from sqla_abac.context._principal import Principal
from sqla_abac.engine._models import Decision, PolicyResult
from sqla_abac.exceptions import InvalidInput
from sqla_abac.policy._base import Policy
from sqla_abac.policy._store import PolicyStore, get_default_store
from sqla_abac.resources._registry import ResourceRegistry

__all__ = ["PolicyEvaluator", "evaluate"]


def check_principal(principal: Any) -> Principal:
    if principal is None:
        raise InvalidInput("A principal is required")
    if not isinstance(principal, Principal):
        raise InvalidInput(f"Expected a Principal, got {type(principal).__name__}")
    return principal


def check_action(action: Any) -> str:
    if action not in ACTIONS:
        raise InvalidInput(f"Unknown action {action!r}; expected one of {sorted(ACTIONS)!r}")
    return action


def context_time(context: EvaluationContext) -> datetime:
    """The evaluation instant recorded in the context (now, if absent)."""
    moment = context.environment.get("current_time")
    if isinstance(moment, datetime):
        return moment
    return datetime.now(timezone.utc)


def request_context(context: EvaluationContext) -> dict[str, Any]:
    return {k: v for k, v in thaw(context.environment).items() if v is not None}


def resolve(policies: Sequence[Policy], matched: Sequence[bool]) -> tuple[int | None, str | None]:
    """Pick the decisive policy index and the effect among *policies*.

    Deny overrides allow: the first matched deny wins; otherwise the first
    matched allow; otherwise ``(None, None)``.
    """
    first_allow: int | None = None
    for i, (p, hit) in enumerate(zip(policies, matched)):
        if not hit:
            continue
        if p.effect == "deny":
            return i, "deny"
        if first_allow is None:
            first_allow = i
    if first_allow is not None:
        return first_allow, "allow"
    return None, None


class PolicyEvaluator:
    """Decides whether a principal may perform an action on a resource.

    Each call reads one :class:`~sqla_abac.policy.PolicySnapshot`, so a
    concurrent store update never changes the policy set mid-decision.

    Example::

        evaluator = PolicyEvaluator(store)
        decision = evaluator.evaluate(
            principal, Resource("colleges", {"id": 7, "owner_id": 42}), "update"
        )
        if not decision.allowed:
            print(decision.diagnostics())
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

    def evaluate(
        self,
        principal: Principal,
        resource: Resource,
        action: str,
        context: EvaluationContext | None = None,
    ) -> Decision:
        """Evaluate *action* on *resource* for *principal*.

        Args:
            principal: The authenticated principal.
            resource: The concrete target, tagged with its model name.
            action: One of ``create``, ``read``, ``update``, ``delete``.
            context: Evaluation context; built from *principal* when omitted.
                It is bound to *resource* before evaluation.

        Returns:
            A :class:`Decision`.

        Raises:
            InvalidInput: On a missing principal, non-``Resource`` target,
                unknown action or (with a registry) unknown model.
            PolicyStoreUnavailable: If the policy snapshot cannot be read.
        """
        started = time.perf_counter()
        principal = check_principal(principal)
        action = check_action(action)
        if not isinstance(resource, Resource):
            raise InvalidInput(f"Expected a Resource, got {type(resource).__name__}")
        if self._resources is not None:
            self._resources.get(resource.model)
        config = resolve_config(self._config)

        if context is None:
            context = self._builder.build(principal, resource=resource)
        else:
            context = context.with_resource(resource)

        if principal.is_super_admin:
            decision = Decision(
                effect="allow",
                model=resource.model,
                action=action,
                principal_id=principal.id,
                resource_id=resource.id,
                bypassed=True,
            )
        else:
            decision = self._decide(principal, resource, action, context, config)

        self._audit(decision, context, config, started)
        return decision

    def _decide(
        self,
        principal: Principal,
        resource: Resource,
        action: str,
        context: EvaluationContext,
        config: AbacConfig,
    ) -> Decision:
        snapshot = self.store.snapshot()
        policies = snapshot.lookup(resource.model, action)
        moment = context_time(context)
        matched = [
            p.in_effect(moment)
            and evaluate_condition(
                p.condition, context, on_missing_attribute=config.on_missing_attribute
            )
            for p in policies
        ]
        decisive, effect = resolve(policies, matched)
        results = tuple(
            PolicyResult(
                policy_id=p.id,
                name=p.name,
                effect=p.effect,
                priority=p.priority,
                matched=hit,
                decisive=i == decisive,
            )
            for i, (p, hit) in enumerate(zip(policies, matched))
        )
        return Decision(
            effect="deny" if effect is None else effect,  # type: ignore[arg-type]
            model=resource.model,
            action=action,
            principal_id=principal.id,
            resource_id=resource.id,
            results=results,
            default_applied=effect is None,
            snapshot_version=snapshot.version,
        )

    def _audit(
        self,
        decision: Decision,
        context: EvaluationContext,
        config: AbacConfig,
        started: float,
    ) -> None:
        if config.log_policy_decisions:
            log_decision(decision)
        if has_audit_sinks():
            emit_audit_event(
                AuditEvent(
                    kind="decision",
                    principal_id=decision.principal_id,
                    model=decision.model,
                    action=decision.action,
                    resource_id=decision.resource_id,
                    effect=decision.effect,
                    bypassed=decision.bypassed,
                    policies=tuple(r.to_dict() for r in decision.results),
                    request_context=request_context(context),
                    evaluation_time_ms=(time.perf_counter() - started) * 1000.0,
                    ip_address=context.environment.get("client_address"),
                    user_agent=context.environment.get("user_agent"),
                )
            )


def evaluate(
    principal: Principal,
    resource: Resource,
    action: str,
    context: EvaluationContext | None = None,
    *,
    store: PolicyStore | None = None,
    config: AbacConfig | None = None,
) -> Decision:
    """Evaluate with a one-off :class:`PolicyEvaluator`.

    Example::

        decision = evaluate(principal, Resource("departments", {"id": "X"}), "delete")
        assert not decision.allowed
    """
    return PolicyEvaluator(store, config=config).evaluate(principal, resource, action, context)
