"""
Branch repository functions.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from mbee.db import models
from mbee.db.repositories import elements as element_repo
from mbee.db.repositories.common import FindOptions, apply_find_options
from mbee.utils.ids import MASTER_BRANCH, create_id
from mbee.utils.merge import deep_merge

logger = logging.getLogger(__name__)


def get_branch(db: Session, branch_id: str) -> Optional[models.Branch]:
    """Look up a branch by its namespaced id."""
    return db.query(models.Branch).filter(models.Branch.id == branch_id).first()


def list_branches(
    db: Session,
    *,
    project_id: str,
    branch_ids: Optional[Iterable[str]] = None,
    tag: Optional[bool] = None,
    source_id: Optional[str] = None,
    name: Optional[str] = None,
    options: Optional[FindOptions] = None,
) -> List[models.Branch]:
    query = db.query(models.Branch).filter(models.Branch.project_id == project_id)
    if branch_ids is not None:
        query = query.filter(models.Branch.id.in_(list(branch_ids)))
    if tag is not None:
        query = query.filter(models.Branch.tag.is_(tag))
    if source_id is not None:
        query = query.filter(models.Branch.source_id == source_id)
    if name is not None:
        query = query.filter(models.Branch.name == name)
    query = query.order_by(models.Branch.id)
    return apply_find_options(query, models.Branch, options).all()


def create_master_branch(db: Session, project: models.Project, *, created_by: Optional[str] = None) -> models.Branch:
    branch = models.Branch(
        id=create_id(project.id, MASTER_BRANCH),
        project_id=project.id,
        name="Master",
        source_id=None,
        tag=False,
        custom={},
        created_by=created_by,
        last_modified_by=created_by,
    )
    db.add(branch)
    db.flush()
    element_repo.create_root_elements(db, branch, created_by=created_by)
    return branch


def create_branch(
    db: Session,
    *,
    project: models.Project,
    branch_id: str,
    source: models.Branch,
    name: Optional[str] = None,
    tag: bool = False,
    custom: Optional[Dict[str, Any]] = None,
    created_by: Optional[str] = None,
) -> models.Branch:
    """Create a branch off ``source``, copying every element it holds."""
    branch = models.Branch(
        id=create_id(project.id, branch_id),
        project_id=project.id,
        name=name,
        source_id=source.id,
        tag=tag,
        custom=custom or {},
        created_by=created_by,
        last_modified_by=created_by,
    )
    db.add(branch)
    db.flush()
    copied = element_repo.copy_branch_elements(db, source, branch, created_by=created_by)
    logger.info("branch_created: id=%s source=%s elements=%d", branch.id, source.id, copied)
    return branch


def update_branch(db: Session, branch: models.Branch, changes: Dict[str, Any], *, actor: str) -> models.Branch:
    if "name" in changes:
        branch.name = changes["name"]
    if changes.get("custom") is not None:
        branch.custom = deep_merge(branch.custom, changes["custom"])
    if changes.get("archived") is not None:
        branch.mark_archived(bool(changes["archived"]), actor)
    branch.last_modified_by = actor
    db.flush()
    return branch


def delete_branch(db: Session, branch: models.Branch) -> None:
    branch_id = branch.id
    db.query(models.Webhook).filter(models.Webhook.branch_id == branch_id).delete(synchronize_session=False)
    db.query(models.Element).filter(models.Element.branch_id == branch_id).delete(synchronize_session=False)
    db.delete(branch)
    db.flush()
    logger.info("branch_deleted: id=%s", branch_id)
