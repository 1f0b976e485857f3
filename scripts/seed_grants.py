"""
Seed script to populate the default grant matrix.

Run this script after database initialization to create the default
(role, resource, action) grants. OWNER needs no grants, and BANKING/REPORTS
are decided by the compliance overrides, so neither appears here.

Usage:
    uv run python -m scripts.seed_grants
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db, init_db
from app.features.authz.enums import Action, Resource, Role, parse_action, parse_resource
from app.features.authz.models import RolePermission
from app.features.authz.overrides import is_overridden
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_GRANTS: dict[Role, list[str] | str] = {
    Role.ADMIN: "ALL",  # Every action on every resource the grant matrix governs
    Role.ACCOUNTANT: [
        "appointments:view",
        "clients:view",
        "invoices:view", "invoices:create", "invoices:edit", "invoices:delete",
        "payments:view", "payments:create", "payments:delete",
        "suppliers:view",
        "purchases:view", "purchases:create", "purchases:edit",
        "goods_received:view", "goods_received:create",
        "expenses:view", "expenses:create", "expenses:edit",
        "products:view", "products:create", "products:edit",
        "adjustments:view", "adjustments:create", "adjustments:edit",
        "transfers:view", "transfers:create", "transfers:edit",
        "settings:view", "settings:edit",
    ],
    Role.INVENTORY: [
        "products:view", "products:create", "products:edit",
        "adjustments:view", "adjustments:create", "adjustments:edit",
        "transfers:view", "transfers:create", "transfers:edit",
        "suppliers:view",
        "purchases:view",
        "goods_received:view", "goods_received:create",
        "jobcards:view",
    ],
}


def expand_grants(spec: list[str] | str) -> list[tuple[Resource, Action]]:
    """Turn "resource:action" strings (or "ALL") into enum pairs."""
    if spec == "ALL":
        return [
            (resource, action)
            for resource in Resource
            if not is_overridden(resource)
            for action in Action
        ]

    pairs = []
    for entry in spec:
        resource_name, _, action_name = entry.partition(":")
        resource = parse_resource(resource_name)
        action = parse_action(action_name)
        if resource is None or action is None:
            raise ValueError(f"Invalid grant entry: {entry!r}")
        pairs.append((resource, action))
    return pairs


async def seed_grants(db: AsyncSession) -> int:
    """
    Create the default grants, skipping any that already exist.

    Returns:
        Number of grants created
    """
    log.info("Creating default grants...")

    result = await db.execute(select(RolePermission.role, RolePermission.resource, RolePermission.action))
    existing = set(result.all())

    created = 0
    for role, spec in DEFAULT_GRANTS.items():
        for resource, action in expand_grants(spec):
            if (role, resource, action) in existing:
                log.debug(f"Grant {role.value}:{resource.value}:{action.value} already exists, skipping")
                continue
            db.add(RolePermission(role=role, resource=resource, action=action, created_by="seed"))
            existing.add((role, resource, action))
            created += 1

    await db.commit()
    log.info(f"Created {created} grants")
    return created


async def main():
    """Main function to seed grants."""
    log.info("Starting grant seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            await seed_grants(db)
            log.info("Grant seeding completed successfully!")
        except Exception as e:
            log.error(f"Error seeding grants: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
