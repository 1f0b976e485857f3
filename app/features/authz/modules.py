"""
Module access registry.

Modules are optional, organization-scoped feature areas. Whether a module is
enabled is a separate axis from resource/action authorization: the navigation
layer requires both, the decision engine never looks at modules.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.authz.enums import Action, Resource
from app.features.authz.models import OrganizationModule
from app.utils import get_logger


log = get_logger(__name__)


class ModuleLookupError(Exception):
    """The module enablement store could not be read."""


@dataclass(frozen=True)
class ModuleRoute:
    path: str
    resource: Resource
    action: Action = Action.VIEW


@dataclass(frozen=True)
class Module:
    id: str
    name: str
    description: str
    category: str
    routes: tuple[ModuleRoute, ...] = field(default_factory=tuple)


CORE_MODULES: dict[str, Module] = {
    "appointments": Module(
        id="appointments",
        name="Appointments",
        description="Schedule and manage client appointments",
        category="Customer Management",
        routes=(
            ModuleRoute("/appointments", Resource.APPOINTMENTS),
            ModuleRoute("/appointments/new", Resource.APPOINTMENTS, Action.CREATE),
        ),
    ),
    "sales": Module(
        id="sales",
        name="Sales",
        description="Manage clients, invoices, and payments",
        category="Sales Management",
        routes=(
            ModuleRoute("/clients", Resource.CLIENTS),
            ModuleRoute("/invoices", Resource.INVOICES),
            ModuleRoute("/invoices/new", Resource.INVOICES, Action.CREATE),
            ModuleRoute("/payments", Resource.PAYMENTS),
        ),
    ),
    "job_cards": Module(
        id="job_cards",
        name="Job Cards",
        description="Track work orders and service jobs",
        category="Operations",
        routes=(
            ModuleRoute("/job-cards", Resource.JOBCARDS),
            ModuleRoute("/job-cards/new", Resource.JOBCARDS, Action.CREATE),
        ),
    ),
    "purchases": Module(
        id="purchases",
        name="Purchases",
        description="Manage suppliers, purchases, and expenses",
        category="Procurement",
        routes=(
            ModuleRoute("/suppliers", Resource.SUPPLIERS),
            ModuleRoute("/purchases", Resource.PURCHASES),
            ModuleRoute("/purchases/new", Resource.PURCHASES, Action.CREATE),
            ModuleRoute("/goods-received", Resource.GOODS_RECEIVED),
            ModuleRoute("/expenses", Resource.EXPENSES),
        ),
    ),
    "inventory": Module(
        id="inventory",
        name="Inventory",
        description="Manage products, stock levels, and transfers",
        category="Inventory Management",
        routes=(
            ModuleRoute("/inventory", Resource.PRODUCTS),
            ModuleRoute("/inventory/new", Resource.PRODUCTS, Action.CREATE),
            ModuleRoute("/inventory-adjustments", Resource.ADJUSTMENTS),
            ModuleRoute("/inventory-transfers", Resource.TRANSFERS),
        ),
    ),
    "accounting": Module(
        id="accounting",
        name="Accounting",
        description="Banking and financial reporting",
        category="Financial Management",
        routes=(
            ModuleRoute("/banking", Resource.BANKING),
            ModuleRoute("/reports", Resource.REPORTS),
        ),
    ),
}

# Routes that belong to no module and are gated by permissions only
UNGATED_ROUTES: tuple[ModuleRoute, ...] = (
    ModuleRoute("/settings", Resource.SETTINGS),
)


def find_route(path: str) -> tuple[Optional[Module], Optional[ModuleRoute]]:
    """Locate the route registered for ``path`` and the module that owns it."""
    normalized = "/" + path.strip().strip("/")
    for module in CORE_MODULES.values():
        for route in module.routes:
            if route.path == normalized:
                return module, route
    for route in UNGATED_ROUTES:
        if route.path == normalized:
            return None, route
    return None, None


class ModuleRegistry(ABC):
    """
    Read side of per-organization module enablement.

    Absence of a record means disabled. Implementations raise
    ModuleLookupError when they cannot answer.
    """

    @abstractmethod
    async def enabled_modules(self, organization_id: str) -> frozenset[str]:
        ...

    async def is_module_enabled(self, organization_id: Optional[str], module_id: str) -> bool:
        if not organization_id or module_id not in CORE_MODULES:
            return False
        return module_id in await self.enabled_modules(organization_id)


class StaticModuleRegistry(ModuleRegistry):
    """Registry over a fixed organization -> module ids mapping."""

    def __init__(self, enabled: Mapping[str, Iterable[str]] | None = None):
        self._enabled = {
            org_id: frozenset(modules) for org_id, modules in (enabled or {}).items()
        }

    async def enabled_modules(self, organization_id: str) -> frozenset[str]:
        return self._enabled.get(organization_id, frozenset())


class SqlModuleRegistry(ModuleRegistry):
    """Registry backed by the ``organization_modules`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def enabled_modules(self, organization_id: str) -> frozenset[str]:
        stmt = select(OrganizationModule.module_id).where(
            OrganizationModule.organization_id == organization_id,
            OrganizationModule.is_enabled == True,  # noqa: E712
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return frozenset(result.scalars().all())
        except (SQLAlchemyError, OSError) as e:
            raise ModuleLookupError(f"Module lookup failed for org {organization_id}") from e

    async def is_module_enabled(self, organization_id: Optional[str], module_id: str) -> bool:
        if not organization_id or module_id not in CORE_MODULES:
            return False
        stmt = (
            select(OrganizationModule.id)
            .where(
                OrganizationModule.organization_id == organization_id,
                OrganizationModule.module_id == module_id,
                OrganizationModule.is_enabled == True,  # noqa: E712
            )
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.first() is not None
        except (SQLAlchemyError, OSError) as e:
            raise ModuleLookupError(f"Module lookup failed for {organization_id}:{module_id}") from e
