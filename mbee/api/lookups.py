"""
Find-and-validate helpers for routes addressed through parent resources.

A missing resource is a 404; an archived ancestor is a 403 unless the caller
asked to see archived data.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from mbee.api.permissions import can_read_org, can_read_project
from mbee.db import models
from mbee.db.repositories import branches as branch_repo
from mbee.db.repositories import organizations as org_repo
from mbee.db.repositories import projects as project_repo
from mbee.utils.ids import create_id


def _archived(kind: str, ident: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"The {kind} [{ident}] is archived.")


def get_org_or_404(
    db: Session,
    org_id: str,
    current_user: Optional[Dict[str, Any]] = None,
    *,
    allow_archived: bool = False,
) -> models.Organization:
    org = org_repo.get_organization(db, org_id)
    if org is None:
        raise HTTPException(status_code=404, detail=f"Organization [{org_id}] not found")
    if current_user is not None and not can_read_org(org.id, current_user):
        # Hide orgs the user cannot see
        raise HTTPException(status_code=404, detail=f"Organization [{org_id}] not found")
    if org.archived and not allow_archived:
        raise _archived("organization", org_id)
    return org


def get_project_or_404(
    db: Session,
    org_id: str,
    project_id: str,
    current_user: Optional[Dict[str, Any]] = None,
    *,
    allow_archived: bool = False,
) -> models.Project:
    get_org_or_404(db, org_id, current_user, allow_archived=allow_archived)
    project = project_repo.get_project(db, create_id(org_id, project_id))
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project [{project_id}] not found")
    if current_user is not None and not can_read_project(project, current_user):
        raise HTTPException(status_code=403, detail=f"Insufficient permissions to access project [{project_id}]")
    if project.archived and not allow_archived:
        raise _archived("project", project_id)
    return project


def get_branch_or_404(
    db: Session,
    org_id: str,
    project_id: str,
    branch_id: str,
    current_user: Optional[Dict[str, Any]] = None,
    *,
    allow_archived: bool = False,
) -> models.Branch:
    project = get_project_or_404(db, org_id, project_id, current_user, allow_archived=allow_archived)
    branch = branch_repo.get_branch(db, create_id(project.id, branch_id))
    if branch is None:
        raise HTTPException(status_code=404, detail=f"Branch [{branch_id}] not found")
    if branch.archived and not allow_archived:
        raise _archived("branch", branch_id)
    return branch


def ensure_modifiable(obj, changes: Dict[str, Any], kind: str, ident: str) -> None:
    """Archived objects may only be touched to unarchive them."""
    if getattr(obj, "archived", False) and changes.get("archived") is not False:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"The {kind} [{ident}] is archived. It must first be unarchived before performing this operation.",
        )
