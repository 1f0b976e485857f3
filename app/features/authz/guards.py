"""
Client-facing guards for navigable views and feature areas.

- RouteGuard / guard_view: a denied navigation is sent to a fixed fallback
  route instead of failing.
- ModuleGate: a feature area renders a locked state (or a caller-supplied
  fallback) when its module is not enabled for the organization.

Neither guard raises to its caller. Both share the decision engine with the
server guards, so a view and the API behind it cannot disagree.
"""
import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Depends, Request, status
from starlette.responses import RedirectResponse

from app.core import config
from app.features.authz.dependencies import get_actor, get_grant_store
from app.features.authz.engine import CHECK_FAILED, Actor, DenyReason, evaluate
from app.features.authz.enums import Action, Resource
from app.features.authz.grants import GrantStore
from app.features.authz.modules import CORE_MODULES, ModuleRegistry
from app.utils import get_logger


log = get_logger(__name__)


class FallbackRedirect(Exception):
    """Raised by view guards; rendered as a redirect to ``location``."""

    def __init__(self, location: str):
        super().__init__(location)
        self.location = location


async def fallback_redirect_handler(_request: Request, exc: FallbackRedirect) -> RedirectResponse:
    return RedirectResponse(exc.location, status_code=status.HTTP_303_SEE_OTHER)


# ============================================================================
# Route guard
# ============================================================================

@dataclass(frozen=True)
class RouteOutcome:
    allowed: bool
    redirect_to: Optional[str] = None
    reason: Optional[DenyReason] = None


class RouteGuard:
    """Guard for one navigable view bound to (resource, action)."""

    def __init__(self, resource: Resource, action: Action, fallback_route: Optional[str] = None):
        self.resource = resource
        self.action = action
        self._fallback_route = fallback_route

    @property
    def fallback_route(self) -> str:
        return self._fallback_route or config.CLIENT_FALLBACK_ROUTE

    async def check(
        self,
        actor: Optional[Actor],
        grant_store: GrantStore,
        timeout: Optional[float] = None,
    ) -> RouteOutcome:
        try:
            decision = await evaluate(actor, self.resource, self.action, grant_store, timeout)
        except Exception:
            log.exception(f"Route guard failed for {self.resource.value}:{self.action.value}")
            decision = CHECK_FAILED
        if decision.allowed:
            return RouteOutcome(allowed=True)
        return RouteOutcome(allowed=False, redirect_to=self.fallback_route, reason=decision.reason)


def guard_view(resource: Resource, action: Action, fallback_route: Optional[str] = None):
    """
    FastAPI dependency guarding a navigable view.

    Any denial, including an unauthenticated caller or a failed check,
    redirects to the fallback route.

    Usage:
        @router.get("/invoices/new")
        async def new_invoice_view(
            actor: Actor = Depends(guard_view(Resource.INVOICES, Action.CREATE))
        ):
            ...
    """
    guard = RouteGuard(resource, action, fallback_route)

    async def view_dependency(
        actor: Optional[Actor] = Depends(get_actor),
        grant_store: GrantStore = Depends(get_grant_store),
    ) -> Actor:
        outcome = await guard.check(actor, grant_store, config.GRANT_LOOKUP_TIMEOUT_SECONDS)
        if not outcome.allowed:
            log.debug(f"View {resource.value}:{action.value} denied ({outcome.reason}), redirecting")
            raise FallbackRedirect(outcome.redirect_to)
        return actor

    return view_dependency


# ============================================================================
# Module gate
# ============================================================================

class GateState(str, enum.Enum):
    ALLOWED = "allowed"
    # Confirmed: the module is not enabled for this organization
    BLOCKED = "blocked"
    # Enablement could not be determined
    UNKNOWN = "unknown"


def locked_view(module_id: str, state: GateState) -> dict[str, Any]:
    """Default content rendered in place of a gated feature area."""
    module = CORE_MODULES.get(module_id)
    name = module.name if module else module_id
    if state is GateState.UNKNOWN:
        return {
            "state": state.value,
            "module": module_id,
            "title": "Module Unavailable",
            "message": f"Access to the {name} module could not be verified. Please try again shortly.",
        }
    return {
        "state": state.value,
        "module": module_id,
        "title": "Module Not Available",
        "message": (
            f"The {name} module is not enabled for your organization "
            "or you don't have permission to access it."
        ),
        "hint": "Contact your administrator to enable this module or upgrade your subscription plan.",
    }


class ModuleGate:
    """
    Gate for a module-owned feature area.

    Usage:
        gate = ModuleGate("inventory")
        state = await gate.check(actor, registry)
        body = gate.render(state, content)
    """

    def __init__(self, module_id: str, fallback: Any = None, timeout: Optional[float] = None):
        self.module_id = module_id
        self.fallback = fallback
        self._timeout = timeout

    async def check(self, actor: Optional[Actor], registry: ModuleRegistry) -> GateState:
        if actor is None or not actor.organization_id:
            return GateState.BLOCKED

        timeout = self._timeout if self._timeout is not None else config.MODULE_LOOKUP_TIMEOUT_SECONDS
        try:
            lookup = registry.is_module_enabled(actor.organization_id, self.module_id)
            if timeout:
                enabled = await asyncio.wait_for(lookup, timeout)
            else:
                enabled = await lookup
        except Exception:
            log.exception(f"Module check failed: org={actor.organization_id} module={self.module_id}")
            return GateState.UNKNOWN

        return GateState.ALLOWED if enabled is True else GateState.BLOCKED

    def render(self, state: GateState, content: Any) -> Any:
        if state is GateState.ALLOWED:
            return content
        if self.fallback is not None:
            return self.fallback
        return locked_view(self.module_id, state)
