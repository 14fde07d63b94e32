"""FastAPI dependencies for sqla-abac access checks."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from fastapi import Depends, Request

from sqla_abac.config._config import AbacConfig
from sqla_abac.context._builder import RequestMeta
from sqla_abac.context._principal import Principal
from sqla_abac.guard._guard import AccessGrant, AccessGuard
from sqla_abac.policy._store import PolicyStore
from sqla_abac.resources._loaders import ResourceLoader
from sqla_abac.resources._registry import ResourceRegistry

__all__ = ["AccessDep", "get_principal", "get_resource_loader", "request_meta_from"]


# ---------------------------------------------------------------------------
# Sentinel dependency functions for DI-based configuration
# ---------------------------------------------------------------------------


def get_principal(request: Request) -> Principal:
    """Sentinel dependency — override via ``app.dependency_overrides[get_principal]``.

    Raises ``NotImplementedError`` if not overridden, ensuring users
    configure their principal provider before using ``AccessDep``.

    Example::

        from sqla_abac.integrations.fastapi import get_principal

        app.dependency_overrides[get_principal] = current_principal
    """
    raise NotImplementedError(
        "Override get_principal via app.dependency_overrides[get_principal]."
    )


def get_resource_loader(request: Request) -> ResourceLoader:
    """Sentinel dependency — override via ``app.dependency_overrides[get_resource_loader]``.

    Only item-level dependencies (``id_param`` set) resolve it.

    Example::

        app.dependency_overrides[get_resource_loader] = lambda: SessionResourceLoader(session)
    """
    raise NotImplementedError(
        "Override get_resource_loader via app.dependency_overrides[get_resource_loader]."
    )


def request_meta_from(request: Request) -> RequestMeta:
    """Collect the environment attributes of a FastAPI request."""
    return RequestMeta(
        method=request.method,
        path=request.url.path,
        client_address=request.client.host if request.client is not None else None,
        user_agent=request.headers.get("user-agent"),
        query=dict(request.query_params),
    )


# ---------------------------------------------------------------------------
# Dependency builder
# ---------------------------------------------------------------------------


def _make_dependency(
    guard: AccessGuard,
    *,
    id_param: str | None,
    id_type: Callable[[str], Any],
) -> Callable[..., AccessGrant]:
    """Build the dependency function for a guard.

    Sync functions run in FastAPI's threadpool, so blocking resource
    fetches do not stall the event loop.
    """
    if id_param is None:

        def _resolve_collection(
            request: Request,
            principal: Principal = Depends(get_principal),
        ) -> AccessGrant:
            grant = guard.check(principal, request_meta_from(request))
            request.state.abac = grant
            return grant

        return _resolve_collection

    def _resolve_item(
        request: Request,
        principal: Principal = Depends(get_principal),
        loader: ResourceLoader = Depends(get_resource_loader),
    ) -> AccessGrant:
        resource_id = id_type(request.path_params[id_param])
        grant = guard.check(principal, request_meta_from(request), resource_id, loader=loader)
        request.state.abac = grant
        return grant

    return _resolve_item


def AccessDep(
    model: str,
    action: str,
    *,
    id_param: str | None = None,
    id_type: Callable[[str], Any] = str,
    store: PolicyStore | None = None,
    resources: ResourceRegistry | None = None,
    config: AbacConfig | None = None,
) -> Any:
    """FastAPI dependency that runs an access check and yields the grant.

    Without ``id_param`` the check is collection-level and the grant
    carries the data-scope filter. With ``id_param`` the named path
    parameter identifies the target, which is fetched through the
    ``get_resource_loader`` dependency before the policy decision.
    The grant is also stored on ``request.state.abac``.

    Install :func:`install_error_handlers` so rejections become
    404/403/500 responses.

    Args:
        model: The resource-model name.
        action: The action (``"read"``, ``"update"``, ...).
        id_param: Path parameter naming the target, for item-level routes.
        id_type: Converter applied to the path parameter (e.g. ``int``).
        store: Optional policy store. Defaults to the global store.
        resources: Optional resource registry. Defaults to the global one.
        config: Optional config. Defaults to the global config.

    Returns:
        A FastAPI ``Depends`` instance.

    Example::

        @app.get("/colleges")
        def list_colleges(grant: AccessGrant = AccessDep("colleges", "read")):
            stmt = grant.apply(select(College), College)
            ...

        @app.delete("/departments/{department_id}")
        def delete_department(
            grant: AccessGrant = AccessDep("departments", "delete", id_param="department_id"),
        ):
            ...
    """
    guard = AccessGuard(model, action, store=store, resources=resources, config=config)
    return Depends(_make_dependency(guard, id_param=id_param, id_type=id_type))
