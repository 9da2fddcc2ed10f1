"""
Organization repository functions.

Covers lookups, membership management and the delete cascade down to
projects, branches, elements and webhooks.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from mbee.config import get_config
from mbee.db import models
from mbee.db.repositories import artifacts as artifact_repo
from mbee.db.repositories.common import FindOptions, apply_find_options
from mbee.utils.merge import deep_merge
from mbee.utils.role_permissions import ROLE_ADMIN, validate_role

logger = logging.getLogger(__name__)


def get_organization(db: Session, org_id: str) -> Optional[models.Organization]:
    return db.query(models.Organization).filter(models.Organization.id == org_id).first()


def list_organizations(
    db: Session,
    *,
    org_ids: Optional[Iterable[str]] = None,
    member: Optional[str] = None,
    options: Optional[FindOptions] = None,
) -> List[models.Organization]:
    query = db.query(models.Organization)
    if org_ids is not None:
        query = query.filter(models.Organization.id.in_(list(org_ids)))
    if member is not None:
        query = query.join(
            models.OrganizationMembership,
            models.Organization.id == models.OrganizationMembership.organization_id,
        ).filter(models.OrganizationMembership.user_id == member)
    query = query.order_by(models.Organization.id)
    return apply_find_options(query, models.Organization, options).all()


def create_organization(
    db: Session,
    *,
    org_id: str,
    name: str,
    custom: Optional[Dict[str, Any]] = None,
    created_by: Optional[str] = None,
) -> models.Organization:
    org = models.Organization(
        id=org_id,
        name=name,
        custom=custom or {},
        created_by=created_by,
        last_modified_by=created_by,
    )
    db.add(org)
    db.flush()
    if created_by:
        set_member_role(db, org.id, created_by, ROLE_ADMIN)
    return org


def update_organization(db: Session, org: models.Organization, changes: Dict[str, Any], *, actor: str) -> models.Organization:
    if changes.get("name") is not None:
        org.name = changes["name"]
    if changes.get("custom") is not None:
        org.custom = deep_merge(org.custom, changes["custom"])
    if changes.get("archived") is not None:
        org.mark_archived(bool(changes["archived"]), actor)
    org.last_modified_by = actor
    db.flush()
    return org


def ensure_default_org(db: Session) -> models.Organization:
    cfg = get_config()
    org = get_organization(db, cfg.default_org_id)
    if org is None:
        org = models.Organization(id=cfg.default_org_id, name=cfg.default_org_name, custom={})
        db.add(org)
        db.flush()
        logger.info("default_org_created: id=%s", org.id)
    return org


def get_membership(db: Session, org_id: str, username: str) -> Optional[models.OrganizationMembership]:
    return (
        db.query(models.OrganizationMembership)
        .filter(
            models.OrganizationMembership.organization_id == org_id,
            models.OrganizationMembership.user_id == username,
        )
        .first()
    )


def list_members(db: Session, org_id: str) -> List[models.OrganizationMembership]:
    return (
        db.query(models.OrganizationMembership)
        .filter(models.OrganizationMembership.organization_id == org_id)
        .order_by(models.OrganizationMembership.user_id)
        .all()
    )


def members_by_org(db: Session, org_ids: Iterable[str]) -> Dict[str, List[models.OrganizationMembership]]:
    ids = list(org_ids)
    result: Dict[str, List[models.OrganizationMembership]] = {i: [] for i in ids}
    if not ids:
        return result
    rows = (
        db.query(models.OrganizationMembership)
        .filter(models.OrganizationMembership.organization_id.in_(ids))
        .order_by(models.OrganizationMembership.user_id)
        .all()
    )
    for row in rows:
        result.setdefault(row.organization_id, []).append(row)
    return result


def count_admins(db: Session, org_id: str) -> int:
    return (
        db.query(models.OrganizationMembership)
        .filter(
            models.OrganizationMembership.organization_id == org_id,
            models.OrganizationMembership.role == ROLE_ADMIN,
        )
        .count()
    )


def set_member_role(db: Session, org_id: str, username: str, role: str) -> models.OrganizationMembership:
    validate_role(role)
    membership = get_membership(db, org_id, username)
    if membership is None:
        membership = models.OrganizationMembership(organization_id=org_id, user_id=username, role=role)
        db.add(membership)
    else:
        membership.role = role
    db.flush()
    return membership


def remove_member(db: Session, org_id: str, username: str) -> bool:
    """Remove a user from an org along with its project memberships in that org."""
    membership = get_membership(db, org_id, username)
    if membership is None:
        return False
    project_ids = [
        pid for (pid,) in db.query(models.Project.id).filter(models.Project.organization_id == org_id).all()
    ]
    if project_ids:
        db.query(models.ProjectMembership).filter(
            models.ProjectMembership.project_id.in_(project_ids),
            models.ProjectMembership.user_id == username,
        ).delete(synchronize_session=False)
    db.delete(membership)
    db.flush()
    return True


def delete_organization(db: Session, org: models.Organization) -> None:
    org_id = org.id
    project_ids = [
        pid for (pid,) in db.query(models.Project.id).filter(models.Project.organization_id == org_id).all()
    ]
    db.query(models.Webhook).filter(models.Webhook.organization_id == org_id).delete(synchronize_session=False)
    if project_ids:
        for project_id in project_ids:
            artifact_repo.delete_project_artifacts(db, project_id)
        db.query(models.Element).filter(models.Element.project_id.in_(project_ids)).delete(synchronize_session=False)
        db.query(models.Branch).filter(models.Branch.project_id.in_(project_ids)).delete(synchronize_session=False)
        db.query(models.ProjectMembership).filter(
            models.ProjectMembership.project_id.in_(project_ids)
        ).delete(synchronize_session=False)
        db.query(models.Project).filter(models.Project.id.in_(project_ids)).delete(synchronize_session=False)
    db.query(models.OrganizationMembership).filter(
        models.OrganizationMembership.organization_id == org_id
    ).delete(synchronize_session=False)
    db.delete(org)
    db.flush()
    logger.info("organization_deleted: id=%s projects=%d", org_id, len(project_ids))
