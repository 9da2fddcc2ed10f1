"""
Project repository functions.

A new project is created together with its master branch and the root
elements every branch carries.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from mbee.db import models
from mbee.db.repositories import artifacts as artifact_repo
from mbee.db.repositories import branches as branch_repo
from mbee.db.repositories import organizations as org_repo
from mbee.db.repositories.common import FindOptions, apply_find_options
from mbee.utils.ids import MASTER_BRANCH, create_id
from mbee.utils.merge import deep_merge
from mbee.utils.role_permissions import ROLE_ADMIN, ROLE_READ, validate_role

logger = logging.getLogger(__name__)


def get_project(db: Session, project_id: str) -> Optional[models.Project]:
    """Look up a project by its namespaced id."""
    return db.query(models.Project).filter(models.Project.id == project_id).first()


def list_projects(
    db: Session,
    *,
    org_id: Optional[str] = None,
    org_ids: Optional[Iterable[str]] = None,
    project_ids: Optional[Iterable[str]] = None,
    options: Optional[FindOptions] = None,
) -> List[models.Project]:
    query = db.query(models.Project)
    if org_id is not None:
        query = query.filter(models.Project.organization_id == org_id)
    if org_ids is not None:
        query = query.filter(models.Project.organization_id.in_(list(org_ids)))
    if project_ids is not None:
        query = query.filter(models.Project.id.in_(list(project_ids)))
    query = query.order_by(models.Project.id)
    return apply_find_options(query, models.Project, options).all()


def create_project(
    db: Session,
    *,
    org_id: str,
    project_id: str,
    name: str,
    visibility: str = "private",
    custom: Optional[Dict[str, Any]] = None,
    created_by: Optional[str] = None,
) -> models.Project:
    project = models.Project(
        id=create_id(org_id, project_id),
        organization_id=org_id,
        name=name,
        visibility=visibility,
        custom=custom or {},
        created_by=created_by,
        last_modified_by=created_by,
    )
    db.add(project)
    db.flush()
    if created_by:
        set_member_role(db, project, created_by, ROLE_ADMIN)
    branch_repo.create_master_branch(db, project, created_by=created_by)
    logger.info("project_created: id=%s", project.id)
    return project


def update_project(db: Session, project: models.Project, changes: Dict[str, Any], *, actor: str) -> models.Project:
    if changes.get("name") is not None:
        project.name = changes["name"]
    if changes.get("visibility") is not None:
        project.visibility = changes["visibility"]
    if changes.get("custom") is not None:
        project.custom = deep_merge(project.custom, changes["custom"])
    if changes.get("archived") is not None:
        project.mark_archived(bool(changes["archived"]), actor)
    project.last_modified_by = actor
    db.flush()
    return project


def get_membership(db: Session, project_id: str, username: str) -> Optional[models.ProjectMembership]:
    return (
        db.query(models.ProjectMembership)
        .filter(
            models.ProjectMembership.project_id == project_id,
            models.ProjectMembership.user_id == username,
        )
        .first()
    )


def list_members(db: Session, project_id: str) -> List[models.ProjectMembership]:
    return (
        db.query(models.ProjectMembership)
        .filter(models.ProjectMembership.project_id == project_id)
        .order_by(models.ProjectMembership.user_id)
        .all()
    )


def members_by_project(db: Session, project_ids: Iterable[str]) -> Dict[str, List[models.ProjectMembership]]:
    ids = list(project_ids)
    result: Dict[str, List[models.ProjectMembership]] = {i: [] for i in ids}
    if not ids:
        return result
    rows = (
        db.query(models.ProjectMembership)
        .filter(models.ProjectMembership.project_id.in_(ids))
        .order_by(models.ProjectMembership.user_id)
        .all()
    )
    for row in rows:
        result.setdefault(row.project_id, []).append(row)
    return result


def count_admins(db: Session, project_id: str) -> int:
    return (
        db.query(models.ProjectMembership)
        .filter(
            models.ProjectMembership.project_id == project_id,
            models.ProjectMembership.role == ROLE_ADMIN,
        )
        .count()
    )


def set_member_role(db: Session, project: models.Project, username: str, role: str) -> models.ProjectMembership:
    """Grant a project role, adding the user to the owning org with read when needed."""
    validate_role(role)
    if org_repo.get_membership(db, project.organization_id, username) is None:
        org_repo.set_member_role(db, project.organization_id, username, ROLE_READ)
    membership = get_membership(db, project.id, username)
    if membership is None:
        membership = models.ProjectMembership(project_id=project.id, user_id=username, role=role)
        db.add(membership)
    else:
        membership.role = role
    db.flush()
    return membership


def remove_member(db: Session, project_id: str, username: str) -> bool:
    membership = get_membership(db, project_id, username)
    if membership is None:
        return False
    db.delete(membership)
    db.flush()
    return True


def delete_project(db: Session, project: models.Project) -> None:
    project_id = project.id
    artifact_repo.delete_project_artifacts(db, project_id)
    db.query(models.Webhook).filter(models.Webhook.project_id == project_id).delete(synchronize_session="fetch")
    db.query(models.Element).filter(models.Element.project_id == project_id).delete(synchronize_session="fetch")
    db.query(models.Branch).filter(models.Branch.project_id == project_id).delete(synchronize_session="fetch")
    db.query(models.ProjectMembership).filter(
        models.ProjectMembership.project_id == project_id
    ).delete(synchronize_session="fetch")
    db.delete(project)
    db.flush()
    logger.info("project_deleted: id=%s", project_id)


def master_branch_id(project: models.Project) -> str:
    return create_id(project.id, MASTER_BRANCH)
