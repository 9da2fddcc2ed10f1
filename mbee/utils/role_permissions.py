"""
Membership roles for org and project members.

Roles are cumulative: ``write`` implies ``read`` and ``admin`` implies both.
Public data shows a member's role expanded into that list of permissions.
"""

from enum import Enum
from typing import List, Optional, Set


ROLE_READ = "read"
ROLE_WRITE = "write"
ROLE_ADMIN = "admin"
# Special value accepted by permission updates to drop a member entirely
REMOVE_ALL = "REMOVE_ALL"

# Ordered weakest to strongest
ROLE_ORDER: List[str] = [ROLE_READ, ROLE_WRITE, ROLE_ADMIN]


class RoleEnum(str, Enum):
    """Enum for membership roles used in schemas and validation."""
    read = ROLE_READ
    write = ROLE_WRITE
    admin = ROLE_ADMIN


def get_allowed_roles() -> Set[str]:
    return set(ROLE_ORDER)


def validate_role(role: str) -> None:
    """
    Validate that a role is allowed.

    Raises:
        ValueError: If role is not allowed
    """
    if role not in ROLE_ORDER:
        raise ValueError(f"Invalid role '{role}'. Allowed roles: {ROLE_ORDER}")


def role_to_permission_list(role: Optional[str]) -> List[str]:
    """Expand a role into the cumulative permission list, e.g. write -> [read, write]."""
    if role not in ROLE_ORDER:
        return []
    return ROLE_ORDER[: ROLE_ORDER.index(role) + 1]


def role_at_least(role: Optional[str], required: str) -> bool:
    """Return True when ``role`` grants at least ``required``."""
    if role not in ROLE_ORDER:
        return False
    return ROLE_ORDER.index(role) >= ROLE_ORDER.index(required)
