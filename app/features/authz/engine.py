"""
Authorization decision engine.

One decision contract shared by every guard:

    evaluate(actor, resource, action, grant_store) -> Decision

Precedence (first match wins):
1. No actor -> deny UNAUTHENTICATED
2. OWNER -> allow, unconditionally
3. Resource under a compliance override -> allow iff the role is on its
   allow-list; the grant store is not consulted
4. Otherwise allow iff the grant store holds (role, resource, action)
5. Grant lookup failure or timeout -> deny CHECK_FAILED

The engine holds no state. For a fixed grant snapshot the verdict depends only
on its arguments.
"""
import asyncio
import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from app.features.authz.enums import Action, Resource, Role
from app.features.authz.grants import GrantStore
from app.features.authz.overrides import override_for
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class Actor:
    """
    The authenticated caller.

    ``role`` is None when the upstream role string did not parse; such an actor
    is authenticated but can never be authorized.
    """
    role: Optional[Role]
    organization_id: Optional[str] = None
    user_id: Optional[str] = None


class DenyReason(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    CHECK_FAILED = "check_failed"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision.allow()
UNAUTHENTICATED = Decision.deny(DenyReason.UNAUTHENTICATED)
FORBIDDEN = Decision.deny(DenyReason.FORBIDDEN)
CHECK_FAILED = Decision.deny(DenyReason.CHECK_FAILED)


class PermissionsUnavailable(Exception):
    """At least one cell of a permission matrix could not be evaluated."""

    def __init__(self, resource: Resource, action: Action):
        super().__init__(f"Permission check failed for {action.value} on {resource.value}")
        self.resource = resource
        self.action = action


async def evaluate(
    actor: Optional[Actor],
    resource: Resource,
    action: Action,
    grant_store: GrantStore,
    timeout: Optional[float] = None,
) -> Decision:
    """
    Decide whether ``actor`` may perform ``action`` on ``resource``.

    Args:
        actor: Authenticated caller, or None
        resource: Protected resource
        action: Requested action
        grant_store: Source of (role, resource, action) grants
        timeout: Seconds to wait for the grant lookup (None or 0 waits forever)

    Returns:
        Decision.allow() or Decision.deny(reason)

    Cancelling the calling task while the lookup is outstanding propagates
    CancelledError; no verdict is produced.
    """
    if actor is None:
        return UNAUTHENTICATED

    if actor.role is Role.OWNER:
        return ALLOW

    allowed_roles = override_for(resource)
    if allowed_roles is not None:
        if actor.role in allowed_roles:
            return ALLOW
        log.debug(f"Override denied {actor.role} {action.value} on {resource.value}")
        return FORBIDDEN

    if actor.role is None:
        return FORBIDDEN

    try:
        lookup = grant_store.has_grant(actor.role, resource, action)
        if timeout:
            granted = await asyncio.wait_for(lookup, timeout)
        else:
            granted = await lookup
    except Exception:
        log.exception(
            f"Authorization check failed: role={actor.role.value} resource={resource.value} "
            f"action={action.value} org={actor.organization_id}"
        )
        return CHECK_FAILED

    if granted is True:
        return ALLOW

    log.debug(f"No grant for {actor.role.value} {action.value} on {resource.value}")
    return FORBIDDEN


def check_role(actor: Optional[Actor], roles: Iterable[Role]) -> Decision:
    """
    Decision for guards that accept a fixed set of roles.

    OWNER always passes. No grant lookup is involved.
    """
    if actor is None:
        return UNAUTHENTICATED
    if actor.role is Role.OWNER:
        return ALLOW
    if actor.role is not None and actor.role in frozenset(roles):
        return ALLOW
    return FORBIDDEN


async def permitted_actions(
    actor: Optional[Actor],
    grant_store: GrantStore,
    timeout: Optional[float] = None,
) -> dict[Resource, list[Action]]:
    """
    Effective permission matrix for ``actor``.

    Every cell goes through ``evaluate`` so this can never disagree with a
    guard.

    Raises:
        PermissionsUnavailable: when any cell evaluates to CHECK_FAILED
    """
    matrix: dict[Resource, list[Action]] = {}
    for resource in Resource:
        for action in Action:
            decision = await evaluate(actor, resource, action, grant_store, timeout)
            if decision.reason is DenyReason.CHECK_FAILED:
                raise PermissionsUnavailable(resource, action)
            if decision.allowed:
                matrix.setdefault(resource, []).append(action)
    return matrix
