"""
Pydantic schemas for the authorization API.

Resource, action and role fields accept the loose spellings older clients send
and are parsed into the closed enums here, at the boundary.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.features.authz.engine import DenyReason
from app.features.authz.enums import Action, Resource, Role, parse_action, parse_resource, parse_role
from app.features.authz.guards import GateState


def _require(parsed: Any, kind: str, raw: Any):
    if parsed is None:
        raise ValueError(f"Unknown {kind}: {raw!r}")
    return parsed


# ============================================================================
# Decision Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking whether the caller may perform an action."""
    resource: Resource = Field(..., description="Resource (e.g., 'invoices', 'Goods Received')")
    action: Action = Field(..., description="Action (view, create, edit, delete)")

    @field_validator("resource", mode="before")
    @classmethod
    def parse_resource_name(cls, v: Any) -> Resource:
        return _require(parse_resource(v), "resource", v)

    @field_validator("action", mode="before")
    @classmethod
    def parse_action_name(cls, v: Any) -> Action:
        return _require(parse_action(v), "action", v)


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    allowed: bool
    reason: Optional[DenyReason] = None


class ActorPermissionsResponse(BaseModel):
    """The caller's role and effective resource -> actions matrix."""
    user_id: Optional[str]
    organization_id: Optional[str]
    role: Optional[Role]
    permissions: Dict[Resource, List[Action]] = Field(default_factory=dict)


# ============================================================================
# Grant Schemas
# ============================================================================

class GrantBase(BaseModel):
    role: Role = Field(..., description="Role receiving the grant")
    resource: Resource = Field(..., description="Resource")
    action: Action = Field(..., description="Action")

    @field_validator("role", mode="before")
    @classmethod
    def parse_role_name(cls, v: Any) -> Role:
        return _require(parse_role(v), "role", v)

    @field_validator("resource", mode="before")
    @classmethod
    def parse_resource_name(cls, v: Any) -> Resource:
        return _require(parse_resource(v), "resource", v)

    @field_validator("action", mode="before")
    @classmethod
    def parse_action_name(cls, v: Any) -> Action:
        return _require(parse_action(v), "action", v)


class GrantCreate(GrantBase):
    """Schema for adding a grant."""

    @field_validator("role")
    @classmethod
    def owner_needs_no_grants(cls, v: Role) -> Role:
        if v is Role.OWNER:
            raise ValueError("OWNER has full access and cannot be granted permissions")
        return v


class GrantResponse(GrantBase):
    id: str
    created_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Module Schemas
# ============================================================================

class ModuleRouteResponse(BaseModel):
    path: str
    resource: Resource
    action: Action


class ModuleStatusResponse(BaseModel):
    """A catalogue module and its gate state for the caller's organization."""
    id: str
    name: str
    description: str
    category: str
    state: GateState
    routes: List[ModuleRouteResponse] = Field(default_factory=list)


class ModuleToggle(BaseModel):
    enabled: bool = Field(..., description="True to enable the module, False to disable")


class ModuleEnablementResponse(BaseModel):
    organization_id: str
    module_id: str
    is_enabled: bool
    enabled_at: Optional[datetime] = None
    enabled_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
