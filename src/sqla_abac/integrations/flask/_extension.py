"""Flask extension for sqla-abac access checks."""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Flask, g, jsonify, request
from sqlalchemy import Select

from sqla_abac.config._config import AbacConfig
from sqla_abac.context._builder import RequestMeta
from sqla_abac.context._principal import Principal
from sqla_abac.exceptions import AbacError, InvalidInput
from sqla_abac.guard._guard import AccessGrant, AccessGuard
from sqla_abac.guard._outcome import http_outcome
from sqla_abac.policy._store import PolicyStore
from sqla_abac.resources._loaders import ResourceLoader
from sqla_abac.resources._registry import ResourceDescriptor, ResourceRegistry

__all__ = ["AbacExtension", "request_meta_from"]

F = TypeVar("F", bound=Callable[..., Any])


def request_meta_from() -> RequestMeta:
    """Collect the environment attributes of the current Flask request."""
    return RequestMeta(
        method=request.method,
        path=request.path,
        client_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        query=request.args.to_dict(),
    )


class AbacExtension:
    """Flask extension that guards views with access checks.

    Registers error handlers mapping sqla-abac exceptions to 404/403/500
    JSON responses, and provides :meth:`require_access` to guard views.
    The grant of a successful check is stored on ``flask.g.abac``.

    Supports the Flask app-factory pattern via ``init_app()``.

    Args:
        app: Optional Flask application. If provided, calls ``init_app()``
            immediately.
        principal_provider: A callable ``() -> Principal`` returning the
            current principal. Called within request context.
        loader: A resource loader, or a callable ``() -> ResourceLoader``
            called per request (e.g. to bind the request's session).
        store: Optional policy store. Defaults to the global store.
        resources: Optional resource registry. Defaults to the global one.
        config: Optional config. Defaults to the global config.

    Example::

        app = Flask(__name__)
        abac = AbacExtension(app, principal_provider=current_principal, loader=loader)

        @app.get("/colleges")
        @abac.require_access("colleges", "read")
        def list_colleges():
            stmt = abac.apply_scope(select(College), College)
            ...
    """

    def __init__(
        self,
        app: Flask | None = None,
        *,
        principal_provider: Callable[[], Principal],
        loader: ResourceLoader | Callable[[], ResourceLoader] | None = None,
        store: PolicyStore | None = None,
        resources: ResourceRegistry | None = None,
        config: AbacConfig | None = None,
    ) -> None:
        self._principal_provider = principal_provider
        self._loader = loader
        self._store = store
        self._resources = resources
        self._config = config

        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize the extension with a Flask application.

        Stores the extension on ``app.extensions["sqla_abac"]`` and
        registers the error handler.
        """
        app.extensions["sqla_abac"] = self

        @app.errorhandler(AbacError)
        def handle_abac_error(exc: AbacError):  # pyright: ignore[reportUnusedFunction]
            outcome = http_outcome(exc)
            return jsonify(outcome.body), outcome.status

    def _current_loader(self) -> ResourceLoader | None:
        loader = self._loader
        if loader is None or isinstance(loader, ResourceLoader):
            return loader
        return loader()

    def require_access(
        self,
        model: str,
        action: str,
        *,
        id_param: str | None = None,
        id_type: Callable[[Any], Any] | None = None,
    ) -> Callable[[F], F]:
        """Decorator that checks access before the view runs.

        With ``id_param`` the named URL variable identifies the target and
        the check is item-level; otherwise it is collection-level.

        Example::

            @app.put("/colleges/<int:college_id>")
            @abac.require_access("colleges", "update", id_param="college_id")
            def update_college(college_id: int):
                college = g.abac.resource
                ...
        """
        guard = AccessGuard(
            model, action, store=self._store, resources=self._resources, config=self._config
        )

        def decorator(view: F) -> F:
            @functools.wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                principal = self._principal_provider()
                resource_id = None
                if id_param is not None:
                    resource_id = kwargs[id_param]
                    if id_type is not None:
                        resource_id = id_type(resource_id)
                g.abac = guard.check(
                    principal,
                    request_meta_from(),
                    resource_id,
                    loader=self._current_loader(),
                )
                return view(*args, **kwargs)

            return wrapper  # type: ignore[return-value]

        return decorator

    @staticmethod
    def grant() -> AccessGrant:
        """Return the grant of the current request.

        Raises:
            InvalidInput: If no access check ran for this request.
        """
        grant: AccessGrant | None = g.get("abac")
        if grant is None:
            raise InvalidInput("No access check ran for this request")
        return grant

    def apply_scope(self, stmt: Select[Any], model: type[Any] | ResourceDescriptor) -> Select[Any]:
        """AND the current request's data scope into *stmt*."""
        return self.grant().apply(stmt, model)

