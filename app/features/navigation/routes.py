"""
Navigation feature routes.

The web client builds its sidebar from ``GET /navigation`` and resolves every
navigation through ``GET /navigation/open`` before rendering a view. Both
apply the same two gates: module enablement and resource/action permission.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query

from app.core import config
from app.features.authz.dependencies import AuthorizationDenied, get_actor, get_grant_store, get_module_registry
from app.features.authz.engine import Actor, DenyReason
from app.features.authz.grants import GrantStore
from app.features.authz.guards import FallbackRedirect, GateState, ModuleGate, RouteGuard
from app.features.authz.modules import CORE_MODULES, UNGATED_ROUTES, ModuleRegistry, find_route
from app.features.navigation.schemas import NavigationItem, NavigationResponse, ViewResponse
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["navigation"])


@router.get("/", response_model=NavigationResponse)
async def get_navigation(
    actor: Annotated[Optional[Actor], Depends(get_actor)],
    grant_store: Annotated[GrantStore, Depends(get_grant_store)],
    registry: Annotated[ModuleRegistry, Depends(get_module_registry)],
):
    """Routes the caller can open: module enabled and permission granted."""
    if actor is None:
        raise AuthorizationDenied(DenyReason.UNAUTHENTICATED)

    items = []
    for module in CORE_MODULES.values():
        if await ModuleGate(module.id).check(actor, registry) is not GateState.ALLOWED:
            continue
        for route in module.routes:
            outcome = await RouteGuard(route.resource, route.action).check(
                actor, grant_store, config.GRANT_LOOKUP_TIMEOUT_SECONDS
            )
            if outcome.allowed:
                items.append(NavigationItem(path=route.path, module=module.id, resource=route.resource, action=route.action))

    for route in UNGATED_ROUTES:
        outcome = await RouteGuard(route.resource, route.action).check(
            actor, grant_store, config.GRANT_LOOKUP_TIMEOUT_SECONDS
        )
        if outcome.allowed:
            items.append(NavigationItem(path=route.path, resource=route.resource, action=route.action))

    return NavigationResponse(home=config.CLIENT_FALLBACK_ROUTE, items=items)


@router.get("/open", response_model=ViewResponse)
async def open_view(
    actor: Annotated[Optional[Actor], Depends(get_actor)],
    grant_store: Annotated[GrantStore, Depends(get_grant_store)],
    registry: Annotated[ModuleRegistry, Depends(get_module_registry)],
    path: str = Query(..., description="Client route to open, e.g. /invoices/new"),
):
    """
    Resolve a navigation.

    Denied or unknown paths redirect to the fallback route. An allowed path
    whose module is disabled returns the locked state instead of the view.
    """
    module, route = find_route(path)
    if route is None:
        log.debug(f"Unknown client route {path!r}, redirecting")
        raise FallbackRedirect(config.CLIENT_FALLBACK_ROUTE)

    outcome = await RouteGuard(route.resource, route.action).check(
        actor, grant_store, config.GRANT_LOOKUP_TIMEOUT_SECONDS
    )
    if not outcome.allowed:
        raise FallbackRedirect(outcome.redirect_to)

    content = {"resource": route.resource.value, "action": route.action.value}
    if module is None:
        return ViewResponse(path=route.path, state=GateState.ALLOWED, content=content)

    gate = ModuleGate(module.id)
    state = await gate.check(actor, registry)
    return ViewResponse(path=route.path, module=module.id, state=state, content=gate.render(state, content))
