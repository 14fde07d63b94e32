"""Translate the error taxonomy into transport-level outcomes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqla_abac.exceptions import AccessDenied, NotFound

__all__ = ["HttpOutcome", "http_outcome"]

logger = logging.getLogger("sqla_abac.guard")

INTERNAL_ERROR_DETAIL = "Access control evaluation failed"


@dataclass(frozen=True, slots=True)
class HttpOutcome:
    """Status code and JSON body for a rejected request."""

    status: int
    body: dict[str, Any] = field(default_factory=dict)


def http_outcome(exc: BaseException) -> HttpOutcome:
    """Map an exception raised by :class:`AccessGuard` to an :class:`HttpOutcome`.

    - ``NotFound`` -> 404
    - ``AccessDenied`` -> 403, with the diagnostic policy list
    - anything else -> 500, with a generic message

    Example::

        try:
            grant = guard.check(principal, resource_id=pk)
        except Exception as exc:
            outcome = http_outcome(exc)
            return JSONResponse(outcome.body, status_code=outcome.status)
    """
    if isinstance(exc, NotFound):
        return HttpOutcome(404, {"detail": str(exc)})
    if isinstance(exc, AccessDenied):
        return HttpOutcome(403, {"detail": str(exc), "policies": list(exc.policies)})
    logger.error("Access check failed: %s: %s", type(exc).__name__, exc)
    return HttpOutcome(500, {"detail": INTERNAL_ERROR_DETAIL})
