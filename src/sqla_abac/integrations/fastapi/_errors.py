"""Exception handlers for FastAPI integration."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from sqla_abac.exceptions import AbacError
from sqla_abac.guard._outcome import http_outcome

__all__ = ["install_error_handlers"]


def install_error_handlers(app: FastAPI) -> None:
    """Install exception handlers for sqla-abac errors on a FastAPI app.

    Converts access-control exceptions into HTTP responses:

    - ``NotFound`` -> 404 Not Found
    - ``AccessDenied`` -> 403 Forbidden (body includes ``policies``)
    - any other ``AbacError`` -> 500 Internal Server Error

    Example::

        app = FastAPI()
        install_error_handlers(app)
    """

    @app.exception_handler(AbacError)
    async def abac_error_handler(  # pyright: ignore[reportUnusedFunction]
        request: object, exc: AbacError
    ) -> JSONResponse:
        outcome = http_outcome(exc)
        return JSONResponse(status_code=outcome.status, content=outcome.body)
