"""
Pydantic schemas for navigation responses.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from app.features.authz.enums import Action, Resource
from app.features.authz.guards import GateState


class NavigationItem(BaseModel):
    path: str
    module: Optional[str] = None
    resource: Resource
    action: Action


class NavigationResponse(BaseModel):
    home: str = Field(..., description="Fallback route, always reachable")
    items: List[NavigationItem] = Field(default_factory=list)


class ViewResponse(BaseModel):
    """A resolved navigation: the view content, or the locked state that replaces it."""
    path: str
    module: Optional[str] = None
    state: GateState
    content: Dict[str, Any]
