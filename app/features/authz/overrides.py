"""
Compliance overrides.

Sensitive financial and reporting resources are governed by a fixed role
allow-list instead of the grant matrix. This table is code, not data: no grant
edit can widen or narrow it.
"""
from types import MappingProxyType
from typing import Mapping, Optional

from app.features.authz.enums import Resource, Role


COMPLIANCE_OVERRIDES: Mapping[Resource, frozenset[Role]] = MappingProxyType({
    Resource.BANKING: frozenset({Role.ACCOUNTANT}),
    Resource.REPORTS: frozenset({Role.ACCOUNTANT}),
})


def override_for(resource: Resource) -> Optional[frozenset[Role]]:
    """Return the fixed allow-list for ``resource``, or None when grants apply."""
    return COMPLIANCE_OVERRIDES.get(resource)


def is_overridden(resource: Resource) -> bool:
    return resource in COMPLIANCE_OVERRIDES
