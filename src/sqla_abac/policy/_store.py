"""PolicyStore — versioned, immutable policy snapshots with atomic swap."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from sqla_abac._deadline import DeadlineExceeded, call_with_timeout
from sqla_abac._types import ACTIONS
from sqla_abac.config._config import AbacConfig, resolve_config
from sqla_abac.exceptions import InvalidInput, PolicyStoreUnavailable
from sqla_abac.policy._base import Policy

if TYPE_CHECKING:
    from sqla_abac.policy._sources import PolicySource

__all__ = ["PolicySnapshot", "PolicyStore", "get_default_store"]

logger = logging.getLogger("sqla_abac.store")


def _order(policies: Iterable[Policy]) -> tuple[Policy, ...]:
    # sorted() is stable: equal priorities keep declaration order.
    return tuple(sorted(policies, key=lambda p: p.priority))


@dataclass(frozen=True, slots=True)
class PolicySnapshot:
    """An immutable, totally ordered view of the policy set.

    Policies are ordered by ascending ``priority``; equal priorities keep
    declaration order. Each ``(model, action)`` lookup returns the active
    policies in that order, wildcard-action policies included.
    """

    version: int
    policies: tuple[Policy, ...]
    loaded_at: float = field(default_factory=time.monotonic)
    _index: Mapping[tuple[str, str], tuple[Policy, ...]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        ordered = _order(self.policies)
        seen: set[str] = set()
        for p in ordered:
            if p.id in seen:
                raise InvalidInput(f"Duplicate policy id {p.id!r}")
            seen.add(p.id)
        object.__setattr__(self, "policies", ordered)
        index: dict[tuple[str, str], tuple[Policy, ...]] = {}
        for model in {p.model for p in ordered}:
            for action in ACTIONS:
                matches = tuple(
                    p for p in ordered if p.active and p.model == model and p.applies_to(action)
                )
                if matches:
                    index[(model, action)] = matches
        object.__setattr__(self, "_index", MappingProxyType(index))

    def lookup(self, model: str, action: str) -> tuple[Policy, ...]:
        """Return the active policies for ``(model, action)`` in total order."""
        return self._index.get((model, action), ())

    def models(self) -> frozenset[str]:
        """Return every model name that has at least one policy."""
        return frozenset(p.model for p in self.policies)

    def get(self, policy_id: str) -> Policy | None:
        for p in self.policies:
            if p.id == policy_id:
                return p
        return None

    def age(self) -> float:
        """Seconds since this snapshot was published."""
        return time.monotonic() - self.loaded_at

    def __len__(self) -> int:
        return len(self.policies)


class PolicyStore:
    """Holds the current :class:`PolicySnapshot` for the evaluator.

    Readers take one snapshot per decision and never block writers.
    Writers (``register``, ``replace``, ``refresh``) build a new snapshot
    and publish it by swapping a single reference under a lock.

    A store built without a *source* starts with an empty snapshot (every
    lookup denies). A store built with a *source* has no snapshot until
    :meth:`refresh` succeeds; until then every read raises
    :class:`~sqla_abac.exceptions.PolicyStoreUnavailable`.

    Example::

        store = PolicyStore([permission_policy("colleges", "read")])
        store.lookup("colleges", "read")

        db_store = PolicyStore(source=SQLAlchemyPolicySource(Session))
        db_store.refresh()
        db_store.start_refresh(interval=30)
    """

    def __init__(
        self,
        policies: Iterable[Policy] | None = None,
        *,
        source: PolicySource | None = None,
        config: AbacConfig | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._source = source
        self._config = config
        self._snapshot: PolicySnapshot | None = None
        self._last_error: BaseException | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        if policies is not None or source is None:
            self._snapshot = PolicySnapshot(version=1, policies=tuple(policies or ()))

    @property
    def source(self) -> PolicySource | None:
        return self._source

    @property
    def version(self) -> int:
        """Version of the current snapshot, or ``0`` before the first load."""
        snap = self._snapshot
        return snap.version if snap is not None else 0

    @property
    def last_error(self) -> BaseException | None:
        """The most recent refresh failure, cleared by a successful refresh."""
        return self._last_error

    def snapshot(self) -> PolicySnapshot:
        """Return the current snapshot.

        Raises:
            PolicyStoreUnavailable: If nothing has been loaded yet, or the
                snapshot is older than ``max_snapshot_age``.
        """
        snap = self._snapshot
        if snap is None:
            detail = f": {self._last_error}" if self._last_error is not None else ""
            raise PolicyStoreUnavailable(f"Policy store has not loaded any policies{detail}")
        max_age = resolve_config(self._config).max_snapshot_age
        if max_age is not None and snap.age() > max_age:
            raise PolicyStoreUnavailable(
                f"Policy snapshot v{snap.version} is {snap.age():.1f}s old "
                f"(max_snapshot_age={max_age}s)"
            )
        return snap

    def lookup(self, model: str, action: str) -> tuple[Policy, ...]:
        """Look up the active policies for ``(model, action)``.

        Example::

            for p in store.lookup("colleges", "update"):
                print(p.id, p.priority)
        """
        return self.snapshot().lookup(model, action)

    def _publish(self, policies: Iterable[Policy]) -> PolicySnapshot:
        # Caller holds self._lock.
        current = self._snapshot
        version = current.version + 1 if current is not None else 1
        snap = PolicySnapshot(version=version, policies=tuple(policies))
        self._snapshot = snap
        return snap

    def register(self, policy: Policy) -> PolicySnapshot:
        """Add *policy*, publishing a new snapshot.

        Raises:
            InvalidInput: If a policy with the same id is already present.
        """
        if not isinstance(policy, Policy):
            raise InvalidInput(f"Expected a Policy, got {type(policy).__name__}")
        with self._lock:
            existing = self._snapshot.policies if self._snapshot is not None else ()
            snap = self._publish((*existing, policy))
        logger.debug("Registered policy %r (snapshot v%d)", policy.id, snap.version)
        return snap

    def remove(self, policy_id: str) -> PolicySnapshot:
        """Remove the policy with *policy_id*, publishing a new snapshot."""
        with self._lock:
            existing = self._snapshot.policies if self._snapshot is not None else ()
            remaining = tuple(p for p in existing if p.id != policy_id)
            if len(remaining) == len(existing):
                raise InvalidInput(f"No policy with id {policy_id!r}")
            return self._publish(remaining)

    def replace(self, policies: Iterable[Policy]) -> PolicySnapshot:
        """Replace the whole policy set atomically."""
        with self._lock:
            snap = self._publish(policies)
        logger.info("Published policy snapshot v%d with %d policies", snap.version, len(snap))
        return snap

    def clear(self) -> None:
        """Publish an empty snapshot (every decision denies)."""
        self.replace(())

    def refresh(self) -> PolicySnapshot:
        """Reload policies from the source and publish them.

        The load is bounded by ``policy_store_timeout``. On failure the
        previous snapshot (if any) stays in place.

        Raises:
            PolicyStoreUnavailable: If there is no source, or the source
                failed or timed out.
        """
        if self._source is None:
            raise PolicyStoreUnavailable("Policy store has no source to refresh from")
        timeout = resolve_config(self._config).policy_store_timeout
        source = self._source
        try:
            policies = call_with_timeout(lambda: tuple(source.load()), timeout)
            with self._lock:
                snap = self._publish(policies)
        except DeadlineExceeded as exc:
            self._last_error = exc
            logger.error("Policy source %r timed out after %ss", source, timeout)
            raise PolicyStoreUnavailable(
                f"Policy source did not respond within {timeout}s"
            ) from exc
        except Exception as exc:
            self._last_error = exc
            logger.error("Policy source %r failed: %s", source, exc)
            raise PolicyStoreUnavailable(f"Policy source failed: {exc}") from exc
        self._last_error = None
        logger.info("Refreshed policy snapshot v%d with %d policies", snap.version, len(snap))
        return snap

    def start_refresh(self, interval: float | None = None) -> None:
        """Refresh from the source every *interval* seconds in a daemon thread.

        Defaults to ``refresh_interval`` from the configuration. Failures are
        logged and retried on the next tick.
        """
        if self._source is None:
            raise PolicyStoreUnavailable("Policy store has no source to refresh from")
        if self._thread is not None and self._thread.is_alive():
            return
        period = interval if interval is not None else resolve_config(self._config).refresh_interval
        if period <= 0:
            raise InvalidInput(f"Refresh interval must be positive, got {period!r}")
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._refresh_loop, args=(period,), name="sqla-abac-refresh", daemon=True
        )
        self._thread.start()

    def _refresh_loop(self, period: float) -> None:
        while not self._stop.wait(period):
            try:
                self.refresh()
            except PolicyStoreUnavailable:
                # Already logged by refresh(); the old snapshot stays until it ages out.
                continue

    def stop_refresh(self, timeout: float | None = None) -> None:
        """Stop the background refresh thread, if running."""
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None

    def __repr__(self) -> str:
        return f"PolicyStore(version={self.version}, source={self._source!r})"


# Module-level default store (singleton).
_default_store = PolicyStore()


def get_default_store() -> PolicyStore:
    """Return the global default policy store.

    This is the store used by ``@policy``, :func:`~sqla_abac.evaluate` and
    :func:`~sqla_abac.get_data_scope` when no explicit store is given.

    Example::

        store = get_default_store()
        store.clear()  # reset between tests
    """
    return _default_store
