"""
Closed vocabularies for authorization: roles, resources and actions.

Free-form text (token claims, request bodies, stored rows) is parsed into these
enums at the boundary. Anything that does not parse becomes ``None``, which
never satisfies an authorization rule.
"""
import enum
from typing import Any, Optional


class Role(str, enum.Enum):
    """Organization roles. Exactly one per actor per organization."""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    ACCOUNTANT = "ACCOUNTANT"
    INVENTORY = "INVENTORY"


class Resource(str, enum.Enum):
    """Protected business domains."""
    APPOINTMENTS = "APPOINTMENTS"
    CLIENTS = "CLIENTS"
    INVOICES = "INVOICES"
    PAYMENTS = "PAYMENTS"
    JOBCARDS = "JOBCARDS"
    SUPPLIERS = "SUPPLIERS"
    PURCHASES = "PURCHASES"
    GOODS_RECEIVED = "GOODS_RECEIVED"
    EXPENSES = "EXPENSES"
    PRODUCTS = "PRODUCTS"
    ADJUSTMENTS = "ADJUSTMENTS"
    TRANSFERS = "TRANSFERS"
    BANKING = "BANKING"
    REPORTS = "REPORTS"
    SETTINGS = "SETTINGS"


class Action(str, enum.Enum):
    VIEW = "VIEW"
    CREATE = "CREATE"
    EDIT = "EDIT"
    DELETE = "DELETE"


# Higher number = more privilege
ROLE_HIERARCHY: dict[Role, int] = {
    Role.INVENTORY: 1,
    Role.ACCOUNTANT: 2,
    Role.ADMIN: 3,
    Role.OWNER: 4,
}

# Spellings used by older clients and stored role-editor payloads
_RESOURCE_ALIASES: dict[str, Resource] = {
    "JOB_CARDS": Resource.JOBCARDS,
    "INVENTORY": Resource.PRODUCTS,
    "INVENTORY_ADJUSTMENTS": Resource.ADJUSTMENTS,
}


def _normalize(raw: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    value = raw.strip().upper().replace("-", "_").replace(" ", "_")
    return value or None


def parse_role(raw: Any) -> Optional[Role]:
    """
    Canonicalize a role string.

    Matching is case-insensitive. Unrecognized input (including None and
    non-strings) returns None rather than a default role.

    Example:
        parse_role("accountant") -> Role.ACCOUNTANT
        parse_role("manager") -> None
    """
    value = _normalize(raw)
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        return None


def parse_resource(raw: Any) -> Optional[Resource]:
    """Canonicalize a resource name ("Goods Received", "goods-received", "job_cards", ...)."""
    value = _normalize(raw)
    if value is None:
        return None
    if value in _RESOURCE_ALIASES:
        return _RESOURCE_ALIASES[value]
    try:
        return Resource(value)
    except ValueError:
        return None


def parse_action(raw: Any) -> Optional[Action]:
    value = _normalize(raw)
    if value is None:
        return None
    try:
        return Action(value)
    except ValueError:
        return None


def is_role_higher_than(role: Role, other: Role) -> bool:
    """True if ``role`` carries strictly more privilege than ``other``."""
    return ROLE_HIERARCHY[role] > ROLE_HIERARCHY[other]
