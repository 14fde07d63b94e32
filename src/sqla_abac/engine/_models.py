"""Decision and DataScope — outputs of the evaluator and the scope resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqla_abac._types import Effect, FilterDocument
from sqla_abac.filters._build import match_nothing

__all__ = ["DataScope", "Decision", "PolicyResult"]


@dataclass(frozen=True, slots=True)
class PolicyResult:
    """Outcome of one policy within a decision.

    Attributes:
        policy_id: The policy's id.
        name: The policy's name.
        effect: The policy's effect.
        priority: The policy's priority.
        matched: Whether the condition (and time window) held.
        decisive: Whether this policy determined the final effect.
    """

    policy_id: str
    name: str
    effect: Effect
    priority: int
    matched: bool
    decisive: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "id": self.policy_id,
            "name": self.name,
            "effect": self.effect,
            "priority": self.priority,
            "matched": self.matched,
            "decisive": self.decisive,
        }

    def diagnostic(self) -> dict[str, Any]:
        return {
            "id": self.policy_id,
            "name": self.name,
            "effect": self.effect,
            "decisive": self.decisive,
        }


def _diagnostics(results: tuple[PolicyResult, ...], disclose_matched: bool) -> list[dict[str, Any]]:
    return [
        r.diagnostic()
        for r in results
        if r.decisive or (disclose_matched and r.matched)
    ]


@dataclass(frozen=True, slots=True)
class Decision:
    """The evaluator's item-level verdict.

    Exactly one policy is decisive, except when the super-admin bypass
    applied (``bypassed``) or no policy matched (``default_applied``).

    Attributes:
        effect: ``"allow"`` or ``"deny"``.
        model: Resource-model name.
        action: The action evaluated.
        principal_id: The evaluated principal.
        resource_id: The target's identifier.
        results: Every considered policy, in evaluation order.
        bypassed: Super-admin bypass; ``results`` is empty.
        default_applied: No policy matched; secure default ``deny``.
        snapshot_version: Version of the policy snapshot used.
    """

    effect: Effect
    model: str
    action: str
    principal_id: Any
    resource_id: Any = None
    results: tuple[PolicyResult, ...] = ()
    bypassed: bool = False
    default_applied: bool = False
    snapshot_version: int | None = None

    @property
    def allowed(self) -> bool:
        return self.effect == "allow"

    @property
    def decisive(self) -> PolicyResult | None:
        """The policy that determined the effect, if any."""
        for r in self.results:
            if r.decisive:
                return r
        return None

    @property
    def matched(self) -> tuple[PolicyResult, ...]:
        return tuple(r for r in self.results if r.matched)

    def diagnostics(self, *, disclose_matched: bool = True) -> list[dict[str, Any]]:
        """Matched policies for an error payload, decisive one flagged.

        Unmatched policies are never included. With
        ``disclose_matched=False`` only the decisive policy is listed.
        """
        return _diagnostics(self.results, disclose_matched)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "effect": self.effect,
            "model": self.model,
            "action": self.action,
            "principal_id": self.principal_id,
            "resource_id": self.resource_id,
            "policies": [r.to_dict() for r in self.results],
            "bypassed": self.bypassed,
            "default_applied": self.default_applied,
            "snapshot_version": self.snapshot_version,
        }

    def __str__(self) -> str:
        """Return a human-readable multi-line explanation."""
        lines = [
            f"Decision: {self.effect.upper()} {self.action} on {self.model} "
            f"{self.resource_id!r} for principal {self.principal_id!r}"
        ]
        if self.bypassed:
            lines.append("  SUPER-ADMIN BYPASS (no policies evaluated)")
            return "\n".join(lines)
        if self.default_applied:
            lines.append("  DENY BY DEFAULT (no policy matched)")
        for r in self.results:
            status = "MATCH" if r.matched else "no match"
            marker = " [decisive]" if r.decisive else ""
            lines.append(f"  - {r.policy_id} ({r.effect}, priority {r.priority}): {status}{marker}")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class DataScope:
    """The resolver's collection-level verdict.

    When ``has_access`` is false the filter matches nothing and callers
    must reject the whole operation. When true, ``filter`` (``{}`` means
    unrestricted) must be ANDed into every list query.

    Attributes:
        has_access: Whether any record may be accessed.
        filter: Declarative filter document over resource fields.
        model: Resource-model name.
        action: The action evaluated.
        principal_id: The evaluated principal.
        results: Policies considered; ``matched`` means the policy can
            apply to at least some records.
        bypassed: Super-admin bypass.
        snapshot_version: Version of the policy snapshot used.
    """

    has_access: bool
    filter: FilterDocument = field(default_factory=dict)
    model: str = ""
    action: str = ""
    principal_id: Any = None
    results: tuple[PolicyResult, ...] = ()
    bypassed: bool = False
    snapshot_version: int | None = None

    def __post_init__(self) -> None:
        if not self.has_access:
            object.__setattr__(self, "filter", match_nothing())

    @property
    def decisive(self) -> PolicyResult | None:
        for r in self.results:
            if r.decisive:
                return r
        return None

    def diagnostics(self, *, disclose_matched: bool = True) -> list[dict[str, Any]]:
        """Matched policies for an error payload, decisive one flagged."""
        return _diagnostics(self.results, disclose_matched)

    def to_dict(self) -> dict[str, Any]:
        """Return ``{"has_access": ..., "filter": ...}`` (no filter when denied)."""
        if not self.has_access:
            return {"has_access": False}
        return {"has_access": True, "filter": self.filter}
