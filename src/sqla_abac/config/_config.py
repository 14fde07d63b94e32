"""Layered configuration for sqla-abac."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from sqla_abac._types import OnMissingAttribute

__all__ = [
    "AbacConfig",
    "configure",
    "get_global_config",
    "_reset_global_config",
    "_set_global_config",
]

_VALID_MISSING_ATTRIBUTE: set[str] = {"no_match", "raise"}

# Marks an override argument that was not passed.
_UNSET: Any = object()


def _check_timeout(name: str, value: float | None) -> None:
    if value is not None and value <= 0:
        raise ValueError(f"{name} must be positive or None, got {value!r}")


@dataclass(frozen=True, slots=True)
class AbacConfig:
    """Layered configuration with merge semantics (global -> component).

    Attributes:
        log_policy_decisions: Log every decision on the ``sqla_abac`` logger.
        on_missing_attribute: Behavior when a condition references an
            attribute absent from the context. ``"no_match"`` makes the
            comparison false; ``"raise"`` raises ``UnsupportedConditionError``.
        policy_store_timeout: Seconds a ``PolicySource`` load may take
            before the store reports itself unavailable. ``None`` waits.
        resource_fetch_timeout: Seconds an item-level resource fetch may
            take before it fails with ``ResourceFetchError``.
        max_snapshot_age: Seconds after which an un-refreshed snapshot is
            considered stale and lookups raise ``PolicyStoreUnavailable``.
            ``None`` disables the check.
        refresh_interval: Seconds between background source refreshes.
        disclose_matched_policies: Include matched-but-not-decisive
            policies in denial diagnostics. When false only the decisive
            policy is reported.

    Example::

        config = AbacConfig(policy_store_timeout=0.5)
        merged = config.merge(log_policy_decisions=True)
    """

    log_policy_decisions: bool = False
    on_missing_attribute: OnMissingAttribute = "no_match"
    policy_store_timeout: float | None = 2.0
    resource_fetch_timeout: float | None = 2.0
    max_snapshot_age: float | None = None
    refresh_interval: float = 30.0
    disclose_matched_policies: bool = True

    def __post_init__(self) -> None:
        if self.on_missing_attribute not in _VALID_MISSING_ATTRIBUTE:
            raise ValueError(
                f"on_missing_attribute must be one of {_VALID_MISSING_ATTRIBUTE!r}, "
                f"got {self.on_missing_attribute!r}"
            )
        _check_timeout("policy_store_timeout", self.policy_store_timeout)
        _check_timeout("resource_fetch_timeout", self.resource_fetch_timeout)
        _check_timeout("max_snapshot_age", self.max_snapshot_age)
        if self.refresh_interval <= 0:
            raise ValueError(f"refresh_interval must be positive, got {self.refresh_interval!r}")

    def merge(
        self,
        *,
        log_policy_decisions: bool = _UNSET,
        on_missing_attribute: OnMissingAttribute = _UNSET,
        policy_store_timeout: float | None = _UNSET,
        resource_fetch_timeout: float | None = _UNSET,
        max_snapshot_age: float | None = _UNSET,
        refresh_interval: float = _UNSET,
        disclose_matched_policies: bool = _UNSET,
    ) -> AbacConfig:
        """Return a new config with the given overrides applied.

        Omitted arguments keep their current value. ``None`` is a real
        value for the timeout settings, so ``merge(resource_fetch_timeout=None)``
        disables that timeout.

        Returns:
            A new ``AbacConfig`` with overrides merged.

        Example::

            base = AbacConfig()
            strict = base.merge(on_missing_attribute="raise")
        """
        overrides = {
            "log_policy_decisions": log_policy_decisions,
            "on_missing_attribute": on_missing_attribute,
            "policy_store_timeout": policy_store_timeout,
            "resource_fetch_timeout": resource_fetch_timeout,
            "max_snapshot_age": max_snapshot_age,
            "refresh_interval": refresh_interval,
            "disclose_matched_policies": disclose_matched_policies,
        }
        return replace(self, **{k: v for k, v in overrides.items() if v is not _UNSET})


# ---------------------------------------------------------------------------
# Global configuration singleton
# ---------------------------------------------------------------------------

_global_config = AbacConfig()


def get_global_config() -> AbacConfig:
    """Return the current global configuration.

    Example::

        config = get_global_config()
        print(config.on_missing_attribute)  # "no_match"
    """
    return _global_config


def configure(
    *,
    log_policy_decisions: bool = _UNSET,
    on_missing_attribute: OnMissingAttribute = _UNSET,
    policy_store_timeout: float | None = _UNSET,
    resource_fetch_timeout: float | None = _UNSET,
    max_snapshot_age: float | None = _UNSET,
    refresh_interval: float = _UNSET,
    disclose_matched_policies: bool = _UNSET,
) -> AbacConfig:
    """Update the global configuration by merging overrides.

    Only the arguments passed are applied, as in :meth:`AbacConfig.merge`.
    Returns the new global config.

    Example::

        configure(log_policy_decisions=True)
        configure(resource_fetch_timeout=None)  # wait indefinitely
    """
    global _global_config
    _global_config = _global_config.merge(
        log_policy_decisions=log_policy_decisions,
        on_missing_attribute=on_missing_attribute,
        policy_store_timeout=policy_store_timeout,
        resource_fetch_timeout=resource_fetch_timeout,
        max_snapshot_age=max_snapshot_age,
        refresh_interval=refresh_interval,
        disclose_matched_policies=disclose_matched_policies,
    )
    return _global_config


def resolve_config(config: AbacConfig | None) -> AbacConfig:
    """Return *config* if given, otherwise the global configuration."""
    return config if config is not None else _global_config


def _set_global_config(cfg: AbacConfig) -> None:
    """Replace global config with an exact snapshot. For testing only."""
    global _global_config
    _global_config = cfg


def _reset_global_config() -> None:
    """Reset global config to defaults. For testing only."""
    global _global_config
    _global_config = AbacConfig()
