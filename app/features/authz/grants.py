"""
Permission grant stores.

The decision engine asks one question of a grant store: does the triple
(role, resource, action) exist? Implementations:

- StaticGrantStore: fixed in-memory snapshot
- SqlGrantStore: one query per lookup against ``role_permissions``
- CachedGrantStore: immutable snapshot refreshed at most every ``ttl`` seconds

A store must raise GrantLookupError when it cannot answer. It must never
answer True by default.
"""
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.features.authz.enums import Action, Resource, Role
from app.features.authz.models import RolePermission
from app.utils import get_logger


log = get_logger(__name__)


class GrantLookupError(Exception):
    """The grant store could not be read (transport or database failure)."""


@dataclass(frozen=True)
class Grant:
    role: Role
    resource: Resource
    action: Action


class GrantStore(ABC):
    """Read side of the grant matrix."""

    @abstractmethod
    async def has_grant(self, role: Role, resource: Resource, action: Action) -> bool:
        ...

    def invalidate(self) -> None:
        """Drop any cached state. Stores without a cache ignore this."""


class StaticGrantStore(GrantStore):
    """Grant store over a fixed set of triples."""

    def __init__(self, grants: Iterable[Grant | tuple[Role, Resource, Action]] = ()):
        self._grants = frozenset(
            g if isinstance(g, Grant) else Grant(*g) for g in grants
        )

    async def has_grant(self, role: Role, resource: Resource, action: Action) -> bool:
        return Grant(role, resource, action) in self._grants

    async def load_snapshot(self) -> frozenset[Grant]:
        return self._grants


class SqlGrantStore(GrantStore):
    """
    Grant store backed by the ``role_permissions`` table.

    Each lookup is a single statement in its own session, so it sees one
    consistent snapshot even while grants are being edited.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def has_grant(self, role: Role, resource: Resource, action: Action) -> bool:
        stmt = (
            select(RolePermission.id)
            .where(
                RolePermission.role == role,
                RolePermission.resource == resource,
                RolePermission.action == action,
            )
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.first() is not None
        except (SQLAlchemyError, OSError) as e:
            raise GrantLookupError(f"Grant lookup failed for {role.value}:{resource.value}:{action.value}") from e

    async def load_snapshot(self) -> frozenset[Grant]:
        """Read the whole grant matrix in one statement."""
        stmt = select(RolePermission.role, RolePermission.resource, RolePermission.action)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return frozenset(Grant(role, resource, action) for role, resource, action in result.all())
        except (SQLAlchemyError, OSError) as e:
            raise GrantLookupError("Grant snapshot load failed") from e


class CachedGrantStore(GrantStore):
    """
    Serves lookups from an immutable snapshot of the grant matrix.

    The snapshot is replaced wholesale, so a lookup sees either the previous
    matrix or the new one. A grant edit becomes visible after at most ``ttl``
    seconds (immediately in this process when ``invalidate`` is called).

    There is no refresh lock. A lookup that finds the snapshot stale loads its
    own copy, so a slow load only delays the request that triggered it.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[frozenset[Grant]]],
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl
        self._clock = clock
        self._snapshot: Optional[tuple[float, frozenset[Grant]]] = None
        self._generation = 0

    @property
    def ttl(self) -> float:
        return self._ttl

    async def snapshot(self) -> frozenset[Grant]:
        current = self._snapshot
        loaded_at = self._clock()
        if current is not None and loaded_at - current[0] < self._ttl:
            return current[1]

        generation = self._generation
        grants = await self._loader()
        # An invalidate() during the load means this copy may already be stale
        if generation == self._generation:
            self._snapshot = (loaded_at, grants)
            log.debug(f"Grant snapshot refreshed: {len(grants)} grants")
        return grants

    async def has_grant(self, role: Role, resource: Resource, action: Action) -> bool:
        grants = await self.snapshot()
        return Grant(role, resource, action) in grants

    def invalidate(self) -> None:
        self._generation += 1
        self._snapshot = None
