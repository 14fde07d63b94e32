"""Policy and TimeWindow dataclasses — the data a policy store holds."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqla_abac._types import ACTIONS, WILDCARD_ACTION, Effect
from sqla_abac.conditions._nodes import ALWAYS, Condition
from sqla_abac.conditions._serialize import condition_from_dict, condition_to_dict
from sqla_abac.context._builder import WEEKDAYS
from sqla_abac.exceptions import InvalidInput

__all__ = ["Policy", "TimeWindow"]

_EFFECTS = frozenset({"allow", "deny"})


def _as_utc(value: datetime | str | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as exc:
            raise InvalidInput(f"Invalid ISO timestamp {value!r}") from exc
    if value.tzinfo is None:
        # Naive timestamps are taken to be UTC.
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_hour(value: int | str) -> int:
    hour = int(value.split(":")[0]) if isinstance(value, str) else int(value)
    if not 0 <= hour <= 23:
        raise InvalidInput(f"Hour must be within 0..23, got {value!r}")
    return hour


@dataclass(frozen=True, slots=True)
class TimeWindow:
    """Restricts when a policy is in effect.

    Hour ranges are inclusive on both ends (``(9, 17)`` covers 09:00 to
    17:59). Days are lowercase English weekday names.

    Example::

        office_hours = TimeWindow(
            allowed_days=("monday", "tuesday", "wednesday", "thursday", "friday"),
            allowed_hours=((9, 17),),
        )
    """

    valid_from: datetime | None = None
    valid_until: datetime | None = None
    allowed_days: tuple[str, ...] = ()
    allowed_hours: tuple[tuple[int, int], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "valid_from", _as_utc(self.valid_from))
        object.__setattr__(self, "valid_until", _as_utc(self.valid_until))
        days = tuple(d.lower() for d in self.allowed_days)
        for day in days:
            if day not in WEEKDAYS:
                raise InvalidInput(f"Unknown weekday {day!r}")
        object.__setattr__(self, "allowed_days", days)
        hours: list[tuple[int, int]] = []
        for slot in self.allowed_hours:
            if isinstance(slot, Mapping):
                start, end = slot["start"], slot["end"]
            else:
                start, end = slot
            hours.append((_parse_hour(start), _parse_hour(end)))
        object.__setattr__(self, "allowed_hours", tuple(hours))

    def contains(self, moment: datetime) -> bool:
        """Return ``True`` if *moment* falls inside the window."""
        moment = _as_utc(moment)  # type: ignore[assignment]
        if self.valid_from is not None and moment < self.valid_from:
            return False
        if self.valid_until is not None and moment > self.valid_until:
            return False
        if self.allowed_days and WEEKDAYS[moment.weekday()] not in self.allowed_days:
            return False
        if self.allowed_hours and not any(
            start <= moment.hour <= end for start, end in self.allowed_hours
        ):
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "valid_from": self.valid_from.isoformat() if self.valid_from else None,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "allowed_days": list(self.allowed_days),
            "allowed_hours": [
                {"start": f"{start:02d}:00", "end": f"{end:02d}:00"}
                for start, end in self.allowed_hours
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TimeWindow:
        return cls(
            valid_from=data.get("valid_from"),
            valid_until=data.get("valid_until"),
            allowed_days=tuple(data.get("allowed_days") or ()),
            allowed_hours=tuple(data.get("allowed_hours") or ()),
        )


@dataclass(frozen=True, slots=True)
class Policy:
    """A named allow/deny rule for one resource model.

    Attributes:
        id: Unique identifier, reported in denial diagnostics.
        model: The resource-model name the policy targets.
        actions: Verbs the policy applies to; ``"*"`` means every verb.
        condition: Condition tree over subject/resource/environment.
        effect: ``"allow"`` or ``"deny"``.
        priority: Lower numbers take precedence when picking the decisive
            policy; ties keep declaration order.
        name: Human-readable name (defaults to ``id``).
        description: Free-form description.
        active: Inactive policies are never considered.
        time_window: Optional restriction on when the policy is in effect.

    Example::

        Policy(
            id="college-owner-update",
            model="colleges",
            actions=("update",),
            condition=resource.owner_id.equals(subject.id),
        )
    """

    id: str
    model: str
    actions: tuple[str, ...]
    condition: Condition = ALWAYS
    effect: Effect = "allow"
    priority: int = 100
    name: str = ""
    description: str = ""
    active: bool = True
    time_window: TimeWindow | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise InvalidInput(f"Policy.id must be a non-empty string, got {self.id!r}")
        if not isinstance(self.model, str) or not self.model:
            raise InvalidInput(f"Policy {self.id!r}: model must be a non-empty string")
        actions: Iterable[str] = (
            (self.actions,) if isinstance(self.actions, str) else tuple(self.actions)
        )
        actions = tuple(actions)
        if not actions:
            raise InvalidInput(f"Policy {self.id!r}: at least one action is required")
        for action in actions:
            if action != WILDCARD_ACTION and action not in ACTIONS:
                raise InvalidInput(
                    f"Policy {self.id!r}: unknown action {action!r}; "
                    f"expected one of {sorted(ACTIONS)!r} or {WILDCARD_ACTION!r}"
                )
        object.__setattr__(self, "actions", actions)
        if self.effect not in _EFFECTS:
            raise InvalidInput(f"Policy {self.id!r}: effect must be 'allow' or 'deny'")
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise InvalidInput(f"Policy {self.id!r}: priority must be an integer")
        if not isinstance(self.condition, Condition):
            raise InvalidInput(f"Policy {self.id!r}: condition must be a Condition")
        if not self.name:
            object.__setattr__(self, "name", self.id)

    def applies_to(self, action: str) -> bool:
        """Return ``True`` if the policy targets *action* (directly or via ``*``)."""
        return action in self.actions or WILDCARD_ACTION in self.actions

    def in_effect(self, moment: datetime) -> bool:
        """Return ``True`` if the time window (if any) admits *moment*."""
        return self.time_window is None or self.time_window.contains(moment)

    def summary(self) -> dict[str, Any]:
        """Identifying fields only — never the condition."""
        return {"id": self.id, "name": self.name, "effect": self.effect, "priority": self.priority}

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "model": self.model,
            "actions": list(self.actions),
            "effect": self.effect,
            "priority": self.priority,
            "active": self.active,
            "condition": condition_to_dict(self.condition),
            "time_window": self.time_window.to_dict() if self.time_window else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Policy:
        """Build a policy from a :meth:`to_dict`-shaped document.

        Raises:
            InvalidInput: If required keys are missing or values are invalid.
        """
        try:
            policy_id = data["id"]
            model = data["model"]
            actions: Sequence[str] | str = data["actions"]
        except KeyError as exc:
            raise InvalidInput(f"Policy document is missing {exc.args[0]!r}") from exc
        condition_doc = data.get("condition")
        window_doc = data.get("time_window")
        return cls(
            id=policy_id,
            model=model,
            actions=(actions,) if isinstance(actions, str) else tuple(actions),
            condition=condition_from_dict(condition_doc) if condition_doc else ALWAYS,
            effect=data.get("effect", "allow"),
            priority=data.get("priority", 100),
            name=data.get("name") or "",
            description=data.get("description") or "",
            active=bool(data.get("active", True)),
            time_window=TimeWindow.from_dict(window_doc) if window_doc else None,
        )
