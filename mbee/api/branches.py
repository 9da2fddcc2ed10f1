"""
Branches API endpoints.

Branches are created off an existing source branch and receive a copy of its
elements. Tags are read-only snapshots; master can be neither archived nor
deleted.
"""
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from mbee import events
from mbee.api.deps import (
    as_list,
    ensure_unique,
    get_current_user_context,
    get_find_options,
    split_ids,
)
from mbee.api.lookups import ensure_modifiable, get_branch_or_404, get_project_or_404
from mbee.api.permissions import can_write_project
from mbee.api.public_data import branch_public
from mbee.audit import AuditAction, AuditStatus, log
from mbee.db import models, schemas
from mbee.db.database import get_db
from mbee.db.repositories import branches as branch_repo
from mbee.db.repositories.common import FindOptions
from mbee.utils.ids import MASTER_BRANCH, create_id, is_valid_branch_id

router = APIRouter(prefix="/orgs/{org_id}/projects/{project_id}/branches", tags=["branches"])


def _emit(db: Session, action: str, payload, actor: str, project: models.Project, branch_id: Optional[str] = None) -> None:
    events.emit(
        events.event_name("branches", action),
        payload,
        events.EventContext(
            db=db,
            organization_id=project.organization_id,
            project_id=project.id,
            branch_id=branch_id,
            actor=actor,
        ),
    )


def _writable_project(db: Session, org_id: str, project_id: str, current_user) -> models.Project:
    project = get_project_or_404(db, org_id, project_id, current_user)
    if not can_write_project(project, current_user):
        raise HTTPException(status_code=403, detail=f"Insufficient permissions to modify branches of [{project_id}]")
    return project


@router.get("")
def list_branches(
    org_id: str,
    project_id: str,
    ids: Optional[str] = Query(default=None, description="Comma separated branch ids"),
    tag: Optional[bool] = Query(default=None),
    source: Optional[str] = Query(default=None),
    name: Optional[str] = Query(default=None),
    options: FindOptions = Depends(get_find_options),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    project = get_project_or_404(
        db, org_id, project_id, current_user,
        allow_archived=options.include_archived or bool(options.archived),
    )
    wanted = split_ids(ids)
    branches = branch_repo.list_branches(
        db,
        project_id=project.id,
        branch_ids=[create_id(project.id, b) for b in wanted] if wanted is not None else None,
        tag=tag,
        source_id=create_id(project.id, source) if source else None,
        name=name,
        options=options,
    )
    return [branch_public(b) for b in branches]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_branches(
    org_id: str,
    project_id: str,
    payload: Union[List[schemas.BranchCreate], schemas.BranchCreate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    project = _writable_project(db, org_id, project_id, current_user)
    items = as_list(payload)
    ensure_unique([i.id for i in items], "branch")
    if len({i.source for i in items}) > 1:
        raise HTTPException(status_code=400, detail="All branches in one request must share the same source")
    for item in items:
        if not is_valid_branch_id(item.id):
            raise HTTPException(status_code=400, detail=f"Invalid branch id [{item.id}]")
        if branch_repo.get_branch(db, create_id(project.id, item.id)):
            raise HTTPException(status_code=409, detail=f"Branch [{item.id}] already exists")

    source = branch_repo.get_branch(db, create_id(project.id, items[0].source))
    if source is None:
        raise HTTPException(status_code=404, detail=f"Source branch [{items[0].source}] not found")
    if source.archived:
        raise HTTPException(status_code=403, detail=f"The source branch [{items[0].source}] is archived.")

    created = [
        branch_repo.create_branch(
            db,
            project=project,
            branch_id=item.id,
            source=source,
            name=item.name,
            tag=item.tag,
            custom=item.custom,
            created_by=user.username,
        )
        for item in items
    ]
    db.commit()

    for branch in created:
        log(db, action=AuditAction.BRANCH_CREATE, status=AuditStatus.SUCCESS, target_type="branch",
            target_id=branch.id, actor_user_id=user.username, organization_id=project.organization_id,
            metadata={"source": source.id, "tag": bool(branch.tag)})
    result = [branch_public(b) for b in created]
    for branch, data in zip(created, result):
        _emit(db, "created", data, user.username, project, branch.id)
    return result


def _update_branches(db: Session, user, current_user, org_id: str, project_id: str, items: List[schemas.BranchUpdate]) -> List[dict]:
    ids = [i.id for i in items]
    if any(not i for i in ids):
        raise HTTPException(status_code=400, detail="Each update must include a branch id")
    ensure_unique(ids, "branch")
    project = _writable_project(db, org_id, project_id, current_user)
    pairs = []
    for item in items:
        branch = branch_repo.get_branch(db, create_id(project.id, item.id))
        if branch is None:
            raise HTTPException(status_code=404, detail=f"Branch [{item.id}] not found")
        if branch.tag:
            raise HTTPException(status_code=403, detail=f"[{item.id}] is a tag and cannot be updated")
        changes = item.model_dump(exclude_unset=True)
        ensure_modifiable(branch, changes, "branch", item.id)
        if changes.get("archived") and item.id == MASTER_BRANCH:
            raise HTTPException(status_code=403, detail="The master branch cannot be archived")
        pairs.append((branch, changes))

    for branch, changes in pairs:
        branch_repo.update_branch(db, branch, changes, actor=user.username)
    db.commit()

    for branch, changes in pairs:
        log(db, action=AuditAction.BRANCH_UPDATE, status=AuditStatus.SUCCESS, target_type="branch",
            target_id=branch.id, actor_user_id=user.username, organization_id=project.organization_id,
            metadata={"fields": sorted(k for k in changes if k != "id")})
    branches = [b for b, _c in pairs]
    result = [branch_public(b) for b in branches]
    for branch, data in zip(branches, result):
        _emit(db, "updated", data, user.username, project, branch.id)
    return result


@router.patch("")
def update_branches(
    org_id: str,
    project_id: str,
    payload: Union[List[schemas.BranchUpdate], schemas.BranchUpdate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _update_branches(db, user, current_user, org_id, project_id, as_list(payload))


def _delete_branches(db: Session, user, current_user, org_id: str, project_id: str, branch_ids: List[str]) -> List[str]:
    ensure_unique(branch_ids, "branch")
    project = _writable_project(db, org_id, project_id, current_user)
    branches = []
    for branch_id in branch_ids:
        if branch_id == MASTER_BRANCH:
            raise HTTPException(status_code=403, detail="The master branch cannot be deleted")
        branch = branch_repo.get_branch(db, create_id(project.id, branch_id))
        if branch is None:
            raise HTTPException(status_code=404, detail=f"Branch [{branch_id}] not found")
        branches.append(branch)
    for branch in branches:
        branch_repo.delete_branch(db, branch)
    db.commit()
    for branch_id in branch_ids:
        log(db, action=AuditAction.BRANCH_DELETE, status=AuditStatus.SUCCESS, target_type="branch",
            target_id=create_id(project.id, branch_id), actor_user_id=user.username,
            organization_id=project.organization_id)
    _emit(db, "deleted", branch_ids, user.username, project)
    return branch_ids


@router.delete("")
def delete_branches(
    org_id: str,
    project_id: str,
    ids: str = Query(..., description="Comma separated branch ids"),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _delete_branches(db, user, current_user, org_id, project_id, split_ids(ids))


@router.get("/{branch_id}")
def get_branch(
    org_id: str,
    project_id: str,
    branch_id: str,
    include_archived: bool = Query(default=False),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    branch = get_branch_or_404(db, org_id, project_id, branch_id, current_user, allow_archived=include_archived)
    return branch_public(branch)


@router.post("/{branch_id}", status_code=status.HTTP_201_CREATED)
def create_branch(
    org_id: str,
    project_id: str,
    branch_id: str,
    payload: schemas.BranchCreate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    if payload.id != branch_id:
        raise HTTPException(status_code=400, detail="Branch id in body does not match id in URL")
    return create_branches(org_id=org_id, project_id=project_id, payload=payload, db=db, user_context=user_context)[0]


@router.patch("/{branch_id}")
def update_branch(
    org_id: str,
    project_id: str,
    branch_id: str,
    payload: schemas.BranchUpdate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    if payload.id not in (None, branch_id):
        raise HTTPException(status_code=400, detail="Branch id in body does not match id in URL")
    item = payload.model_copy(update={"id": branch_id})
    return _update_branches(db, user, current_user, org_id, project_id, [item])[0]


@router.delete("/{branch_id}")
def delete_branch(
    org_id: str,
    project_id: str,
    branch_id: str,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _delete_branches(db, user, current_user, org_id, project_id, [branch_id])[0]
