"""
Server-side request guards.

Implements:
- Actor extraction from the bearer token
- Access to the grant store and module registry held on app.state
- Guard dependencies for route protection (fixed role set, or resource/action)

Guards translate an engine Decision into an HTTP outcome:
    unauthenticated -> 401, forbidden -> 403, check failed -> 500
with body {"error": "<message>"}. On allow the route runs unchanged.
"""
from typing import Iterable, Optional

import jwt
from fastapi import Depends, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from starlette.responses import JSONResponse

from app.core import config
from app.features.authz.engine import Actor, DenyReason, check_role, evaluate
from app.features.authz.enums import Action, Resource, Role, parse_role
from app.features.authz.grants import GrantStore
from app.features.authz.modules import ModuleRegistry
from app.utils import get_logger


log = get_logger(__name__)

security = HTTPBearer(auto_error=False)


STATUS_BY_REASON: dict[DenyReason, int] = {
    DenyReason.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    DenyReason.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    DenyReason.CHECK_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

MESSAGE_BY_REASON: dict[DenyReason, str] = {
    DenyReason.UNAUTHENTICATED: "Unauthorized",
    DenyReason.FORBIDDEN: "Forbidden",
    DenyReason.CHECK_FAILED: "Authorization check failed",
}


class AuthorizationDenied(Exception):
    """Raised by guard dependencies; rendered by ``authorization_denied_handler``."""

    def __init__(self, reason: DenyReason):
        super().__init__(MESSAGE_BY_REASON[reason])
        self.reason = reason
        self.status_code = STATUS_BY_REASON[reason]
        self.message = MESSAGE_BY_REASON[reason]


async def authorization_denied_handler(_request: Request, exc: AuthorizationDenied) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if exc.reason is DenyReason.UNAUTHENTICATED else None
    return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=headers)


# ============================================================================
# Actor and collaborators
# ============================================================================

def decode_actor(token: str) -> Optional[Actor]:
    """
    Build an Actor from a signed bearer token.

    Expected claims: ``sub`` (user id), ``role``, ``org`` (organization id).
    Returns None for invalid or expired tokens. An unrecognized role claim
    yields an Actor with role None, which no rule authorizes.
    """
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.InvalidTokenError as e:
        log.info(f"Rejected bearer token: {e}")
        return None

    user_id = payload.get("sub")
    if not user_id:
        log.info("Rejected bearer token without subject")
        return None

    org = payload.get("org")
    return Actor(
        role=parse_role(payload.get("role")),
        organization_id=str(org) if org is not None else None,
        user_id=str(user_id),
    )


async def get_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Actor]:
    """
    Current actor, or None when the request carries no valid token.

    Never raises; guards decide what a missing actor means.
    """
    if credentials is None:
        return None
    return decode_actor(credentials.credentials)


def get_grant_store(request: Request) -> GrantStore:
    return request.app.state.grant_store


def get_module_registry(request: Request) -> ModuleRegistry:
    return request.app.state.module_registry


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def require_role(roles: Iterable[Role]):
    """
    FastAPI dependency to require one of a fixed set of roles.

    OWNER is always accepted.

    Usage:
        @router.post("/reconcile")
        async def reconcile(
            actor: Actor = Depends(require_role({Role.ADMIN, Role.ACCOUNTANT}))
        ):
            pass

    Raises:
        AuthorizationDenied: 401 without an actor, 403 for any other role
    """
    accepted = frozenset(roles)

    async def role_dependency(
        actor: Optional[Actor] = Depends(get_actor),
    ) -> Actor:
        decision = check_role(actor, accepted)
        if not decision.allowed:
            log.debug(f"Role guard denied {actor}: requires one of {sorted(r.value for r in accepted)}")
            raise AuthorizationDenied(decision.reason)
        return actor

    return role_dependency


def require_permission(resource: Resource, action: Action):
    """
    FastAPI dependency to require permission for ``action`` on ``resource``.

    Usage:
        @router.post("/invoices")
        async def create_invoice(
            actor: Actor = Depends(require_permission(Resource.INVOICES, Action.CREATE))
        ):
            pass

    Returns:
        Dependency function that returns the current Actor when allowed

    Raises:
        AuthorizationDenied: 401, 403, or 500 when the check itself failed
    """
    async def permission_dependency(
        actor: Optional[Actor] = Depends(get_actor),
        grant_store: GrantStore = Depends(get_grant_store),
    ) -> Actor:
        decision = await evaluate(
            actor, resource, action, grant_store, config.GRANT_LOOKUP_TIMEOUT_SECONDS
        )
        if not decision.allowed:
            raise AuthorizationDenied(decision.reason)
        return actor

    return permission_dependency
