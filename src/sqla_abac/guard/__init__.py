"""Access guard — per-request checks and their HTTP outcomes."""

from sqla_abac.guard._guard import AccessGrant, AccessGuard, GuardState
from sqla_abac.guard._outcome import HttpOutcome, http_outcome

__all__ = ["AccessGrant", "AccessGuard", "GuardState", "HttpOutcome", "http_outcome"]
