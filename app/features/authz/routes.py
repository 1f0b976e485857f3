"""
Authorization API routes.

Provides endpoints for checking decisions, inspecting the caller's effective
permissions, editing the grant matrix, and toggling organization modules.
"""
from datetime import datetime, timezone
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.core import config
from app.core.database.engine import get_db
from app.features.authz.dependencies import (
    AuthorizationDenied,
    get_actor,
    get_grant_store,
    get_module_registry,
    require_permission,
    require_role,
)
from app.features.authz.engine import Actor, DenyReason, PermissionsUnavailable, evaluate, permitted_actions
from app.features.authz.enums import Action, Resource, Role, parse_resource, parse_role
from app.features.authz.grants import GrantStore
from app.features.authz.guards import ModuleGate
from app.features.authz.models import OrganizationModule, RolePermission
from app.features.authz.modules import CORE_MODULES, ModuleRegistry
from app.features.authz.overrides import is_overridden
from app.features.authz.schemas import (
    ActorPermissionsResponse,
    GrantCreate,
    GrantResponse,
    ModuleEnablementResponse,
    ModuleRouteResponse,
    ModuleStatusResponse,
    ModuleToggle,
    PermissionCheckRequest,
    PermissionCheckResponse,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Decision Routes
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check_request: PermissionCheckRequest,
    actor: Optional[Actor] = Depends(get_actor),
    grant_store: GrantStore = Depends(get_grant_store),
):
    """Check whether the caller may perform an action on a resource."""
    decision = await evaluate(
        actor,
        check_request.resource,
        check_request.action,
        grant_store,
        config.GRANT_LOOKUP_TIMEOUT_SECONDS,
    )
    return PermissionCheckResponse(allowed=decision.allowed, reason=decision.reason)


@router.get("/me", response_model=ActorPermissionsResponse)
async def get_my_permissions(
    actor: Optional[Actor] = Depends(get_actor),
    grant_store: GrantStore = Depends(get_grant_store),
):
    """Get the caller's role and effective permission matrix."""
    if actor is None:
        raise AuthorizationDenied(DenyReason.UNAUTHENTICATED)

    try:
        matrix = await permitted_actions(actor, grant_store, config.GRANT_LOOKUP_TIMEOUT_SECONDS)
    except PermissionsUnavailable:
        raise AuthorizationDenied(DenyReason.CHECK_FAILED)
    return ActorPermissionsResponse(
        user_id=actor.user_id,
        organization_id=actor.organization_id,
        role=actor.role,
        permissions=matrix,
    )


# ============================================================================
# Grant Routes
# ============================================================================

@router.get("/grants", response_model=List[GrantResponse])
async def list_grants(
    role: Optional[str] = None,
    resource: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_permission(Resource.SETTINGS, Action.VIEW)),
):
    """List grants with optional role/resource filtering."""
    stmt = select(RolePermission).order_by(
        RolePermission.role, RolePermission.resource, RolePermission.action
    )

    if role:
        parsed_role = parse_role(role)
        if parsed_role is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown role: {role}")
        stmt = stmt.where(RolePermission.role == parsed_role)
    if resource:
        parsed_resource = parse_resource(resource)
        if parsed_resource is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown resource: {resource}")
        stmt = stmt.where(RolePermission.resource == parsed_resource)

    result = await db.execute(stmt)
    return result.scalars().all()


@router.post("/grants", response_model=GrantResponse, status_code=status.HTTP_201_CREATED)
async def create_grant(
    grant: GrantCreate,
    db: AsyncSession = Depends(get_db),
    grant_store: GrantStore = Depends(get_grant_store),
    actor: Actor = Depends(require_permission(Resource.SETTINGS, Action.EDIT)),
):
    """Grant a role an action on a resource."""
    if is_overridden(grant.resource):
        # The override table decides these resources; a stored grant would never apply
        raise HTTPException(
            status_code=422,
            detail=f"{grant.resource.value} access is fixed by compliance rules and cannot be granted",
        )

    db_grant = RolePermission(**grant.model_dump(), created_by=actor.user_id)
    db.add(db_grant)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Grant already exists",
        )
    await db.refresh(db_grant)

    grant_store.invalidate()
    log.info(
        f"Grant added: {grant.role.value}:{grant.resource.value}:{grant.action.value} by user={actor.user_id}"
    )
    return db_grant


@router.delete("/grants/{grant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_grant(
    grant_id: str,
    db: AsyncSession = Depends(get_db),
    grant_store: GrantStore = Depends(get_grant_store),
    actor: Actor = Depends(require_permission(Resource.SETTINGS, Action.EDIT)),
):
    """Revoke a grant."""
    result = await db.execute(select(RolePermission).where(RolePermission.id == grant_id))
    db_grant = result.scalars().first()

    if not db_grant:
        raise HTTPException(status_code=404, detail="Grant not found")

    description = f"{db_grant.role.value}:{db_grant.resource.value}:{db_grant.action.value}"
    await db.delete(db_grant)
    await db.commit()

    grant_store.invalidate()
    log.info(f"Grant removed: {description} by user={actor.user_id}")


# ============================================================================
# Module Routes
# ============================================================================

@router.get("/modules", response_model=List[ModuleStatusResponse])
async def list_modules(
    actor: Optional[Actor] = Depends(get_actor),
    registry: ModuleRegistry = Depends(get_module_registry),
):
    """List the module catalogue with each module's state for the caller's organization."""
    if actor is None:
        raise AuthorizationDenied(DenyReason.UNAUTHENTICATED)

    modules = []
    for module in CORE_MODULES.values():
        state = await ModuleGate(module.id).check(actor, registry)
        modules.append(ModuleStatusResponse(
            id=module.id,
            name=module.name,
            description=module.description,
            category=module.category,
            state=state,
            routes=[
                ModuleRouteResponse(path=route.path, resource=route.resource, action=route.action)
                for route in module.routes
            ],
        ))
    return modules


@router.put("/modules/{module_id}", response_model=ModuleEnablementResponse)
async def set_module_enabled(
    module_id: str,
    toggle: ModuleToggle,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role({Role.ADMIN})),
):
    """Enable or disable a module for the caller's organization (owner/admin only)."""
    if module_id not in CORE_MODULES:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Module not found")

    if not actor.organization_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No current organization set. Please switch to an organization first.",
        )

    result = await db.execute(
        select(OrganizationModule).where(
            OrganizationModule.organization_id == actor.organization_id,
            OrganizationModule.module_id == module_id,
        )
    )
    record = result.scalar_one_or_none()

    if record is None:
        record = OrganizationModule(organization_id=actor.organization_id, module_id=module_id)
        db.add(record)

    record.is_enabled = toggle.enabled
    if toggle.enabled:
        record.enabled_at = datetime.now(timezone.utc)
        record.enabled_by = actor.user_id

    await db.commit()
    await db.refresh(record)

    log.info(
        f"Module {module_id} {'enabled' if toggle.enabled else 'disabled'} "
        f"for org={actor.organization_id} by user={actor.user_id}"
    )
    return record
