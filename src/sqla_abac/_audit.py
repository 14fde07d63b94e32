"""Audit logging and observability events for access decisions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqla_abac.engine._models import DataScope, Decision, PolicyResult

__all__ = [
    "AuditEvent",
    "AuditSink",
    "add_audit_sink",
    "emit_audit_event",
    "has_audit_sinks",
    "log_data_scope",
    "log_decision",
    "remove_audit_sink",
]

logger = logging.getLogger("sqla_abac")


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """One evaluation, as delivered to audit sinks.

    Attributes:
        kind: ``"decision"`` (item-level) or ``"data_scope"`` (collection).
        principal_id: Identifier of the evaluated principal.
        model: Resource-model name.
        action: The action evaluated.
        resource_id: Target identifier, ``None`` for collection checks.
        effect: ``"allow"`` or ``"deny"``.
        bypassed: ``True`` for super-admin bypasses.
        policies: Per-policy results (id, name, effect, matched, decisive).
        request_context: Environment attributes of the request.
        evaluation_time_ms: Wall-clock evaluation time.
        ip_address: Client address, if known.
        user_agent: Client user agent, if known.
        timestamp: When the event was recorded (UTC).
    """

    kind: str
    principal_id: Any
    model: str
    action: str
    resource_id: Any
    effect: str
    bypassed: bool
    policies: tuple[dict[str, Any], ...]
    request_context: Mapping[str, Any]
    evaluation_time_ms: float
    ip_address: str | None = None
    user_agent: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "kind": self.kind,
            "principal_id": self.principal_id,
            "model": self.model,
            "action": self.action,
            "resource_id": self.resource_id,
            "effect": self.effect,
            "bypassed": self.bypassed,
            "policies": [dict(p) for p in self.policies],
            "request_context": dict(self.request_context),
            "evaluation_time_ms": self.evaluation_time_ms,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp.isoformat(),
        }


AuditSink = Callable[[AuditEvent], None]

_sinks: list[AuditSink] = []
_sinks_lock = threading.Lock()


def add_audit_sink(sink: AuditSink) -> None:
    """Register *sink* to receive every :class:`AuditEvent`.

    Example::

        events: list[AuditEvent] = []
        add_audit_sink(events.append)
    """
    with _sinks_lock:
        _sinks.append(sink)


def remove_audit_sink(sink: AuditSink) -> None:
    """Unregister *sink*. Unknown sinks are ignored."""
    with _sinks_lock:
        if sink in _sinks:
            _sinks.remove(sink)


def has_audit_sinks() -> bool:
    return bool(_sinks)


def _clear_audit_sinks() -> None:
    """Remove every sink. For testing only."""
    with _sinks_lock:
        _sinks.clear()


def emit_audit_event(event: AuditEvent) -> None:
    """Deliver *event* to every sink.

    A failing sink is logged on ``sqla_abac.audit`` and skipped.
    """
    for sink in tuple(_sinks):
        try:
            sink(event)
        except Exception:
            logging.getLogger("sqla_abac.audit").exception("Audit sink %r failed", sink)


def _names(results: tuple[PolicyResult, ...]) -> list[str]:
    return [r.policy_id for r in results if r.matched]


def log_decision(decision: Decision) -> None:
    """Log an item-level decision.

    Logging levels:
    - INFO: Summary (model, action, effect, principal)
    - DEBUG: Detailed (per-policy matched/decisive flags)
    - WARNING: No policy matched (deny-by-default triggered)
    """
    if decision.bypassed:
        logger.info(
            "Super-admin bypass: %s.%s allowed for principal %r",
            decision.model,
            decision.action,
            decision.principal_id,
        )
        return

    if decision.default_applied:
        logger.warning(
            "No policy matched for (%s, %r) — deny-by-default applied for principal %r",
            decision.model,
            decision.action,
            decision.principal_id,
        )
    else:
        decisive = decision.decisive
        logger.info(
            "Policy decision: %s.%s — %s for principal %r (decisive: %s)",
            decision.model,
            decision.action,
            decision.effect,
            decision.principal_id,
            decisive.policy_id if decisive is not None else None,
        )

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Policies evaluated for %s.%s on %r: %s — matched: %s",
            decision.model,
            decision.action,
            decision.resource_id,
            [r.policy_id for r in decision.results],
            _names(decision.results),
        )


def log_data_scope(scope: DataScope) -> None:
    """Log a collection-level data scope resolution."""
    if scope.bypassed:
        logger.info(
            "Super-admin bypass: %s.%s unrestricted for principal %r",
            scope.model,
            scope.action,
            scope.principal_id,
        )
        return

    if not scope.has_access and scope.decisive is None:
        logger.warning(
            "No policy grants (%s, %r) — deny-by-default applied for principal %r",
            scope.model,
            scope.action,
            scope.principal_id,
        )
        return

    logger.info(
        "Data scope: %s.%s — has_access=%s for principal %r",
        scope.model,
        scope.action,
        scope.has_access,
        scope.principal_id,
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Policies applied for %s.%s: %s — filter: %s",
            scope.model,
            scope.action,
            _names(scope.results),
            scope.filter,
        )
