"""
Persistence for the two external lookups the authorization engine consumes.

- RolePermission: the grant matrix, one row per (role, resource, action)
- OrganizationModule: per-organization enablement of optional feature modules

Only the minimal shape needed to answer those lookups lives here.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from app.core.database.base import Base, TimestampMixin
from app.features.authz.enums import Action, Resource, Role


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.new())


class RolePermission(Base, TimestampMixin):
    """
    A single grant: members with ``role`` may perform ``action`` on ``resource``.

    Presence is binary; there are no conditional grants.
    """
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role", "resource", "action", name="uq_role_permissions_triple"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    role: Mapped[Role] = mapped_column(SQLEnum(Role), nullable=False, index=True)
    resource: Mapped[Resource] = mapped_column(SQLEnum(Resource), nullable=False, index=True)
    action: Mapped[Action] = mapped_column(SQLEnum(Action), nullable=False)

    # Who added the grant (user id from the token), if known
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<RolePermission(role={self.role}, resource={self.resource}, action={self.action})>"


class OrganizationModule(Base, TimestampMixin):
    """
    Enablement record for an optional module within one organization.

    A missing row means the module is disabled.
    """
    __tablename__ = "organization_modules"
    __table_args__ = (
        UniqueConstraint("organization_id", "module_id", name="uq_organization_modules_org_module"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    organization_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    module_id: Mapped[str] = mapped_column(String(50), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    enabled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    enabled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<OrganizationModule(org_id={self.organization_id}, module={self.module_id!r}, "
            f"enabled={self.is_enabled})>"
        )
