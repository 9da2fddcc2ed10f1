"""
Permission checks for the org → project → branch → element cascade.

Key helpers:
- get_org_role(org_id, current_user)
- get_project_role(project, current_user)
- can_read_org / can_write_org / can_manage_org
- can_read_project / can_write_project / can_manage_project
- can_manage_level(org_id, project, current_user)
- can_update_user(username, current_user)

Branches and elements inherit the permissions of their project. System
admins bypass every check.
"""
from typing import Any, Dict, Optional

from mbee.utils.role_permissions import (
    ROLE_ADMIN,
    ROLE_READ,
    ROLE_WRITE,
    role_at_least,
)


def get_org_membership(org_id, current_user: Optional[Dict[str, Any]]):
    if not current_user or org_id is None:
        return None
    return (current_user.get("memberships_by_org") or {}).get(str(org_id))


def get_org_role(org_id, current_user: Optional[Dict[str, Any]]) -> Optional[str]:
    if not current_user:
        return None
    if current_user.get("is_admin"):
        return ROLE_ADMIN
    membership = get_org_membership(org_id, current_user)
    return membership.get("role") if membership else None


def get_project_role(project, current_user: Optional[Dict[str, Any]]) -> Optional[str]:
    """Effective role on a project.

    No org membership means no access. Org admins are project admins.
    Otherwise the explicit project role applies, falling back to ``read``
    for internal projects.
    """
    if project is None or not current_user:
        return None
    if current_user.get("is_admin"):
        return ROLE_ADMIN
    org_role = get_org_role(project.organization_id, current_user)
    if org_role is None:
        return None
    if org_role == ROLE_ADMIN:
        return ROLE_ADMIN
    membership = (current_user.get("memberships_by_project") or {}).get(project.id)
    if membership:
        return membership.get("role")
    if project.visibility == "internal":
        return ROLE_READ
    return None


def can_read_org(org_id, current_user: Optional[Dict[str, Any]]) -> bool:
    return role_at_least(get_org_role(org_id, current_user), ROLE_READ)


def can_write_org(org_id, current_user: Optional[Dict[str, Any]]) -> bool:
    return role_at_least(get_org_role(org_id, current_user), ROLE_WRITE)


def can_manage_org(org_id, current_user: Optional[Dict[str, Any]]) -> bool:
    return role_at_least(get_org_role(org_id, current_user), ROLE_ADMIN)


def can_read_project(project, current_user: Optional[Dict[str, Any]]) -> bool:
    return role_at_least(get_project_role(project, current_user), ROLE_READ)


def can_write_project(project, current_user: Optional[Dict[str, Any]]) -> bool:
    return role_at_least(get_project_role(project, current_user), ROLE_WRITE)


def can_manage_project(project, current_user: Optional[Dict[str, Any]]) -> bool:
    return role_at_least(get_project_role(project, current_user), ROLE_ADMIN)


def can_manage_level(org_id, project, current_user: Optional[Dict[str, Any]]) -> bool:
    """Admin rights at a webhook level: server, org, or project (branch levels use the project)."""
    if not current_user:
        return False
    if project is not None:
        return can_manage_project(project, current_user)
    if org_id is not None:
        return can_manage_org(org_id, current_user)
    return bool(current_user.get("is_admin"))


def can_update_user(username: str, current_user: Optional[Dict[str, Any]]) -> bool:
    if not current_user:
        return False
    return bool(current_user.get("is_admin")) or current_user.get("username") == username
