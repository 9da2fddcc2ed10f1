"""
Projects API endpoints.

Projects live inside an organization. Creating one requires org write and
builds the master branch with its root elements; project admins update and
manage members; org admins delete.
"""
from typing import Dict, List, Optional, Union

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
from mbee.api.lookups import ensure_modifiable, get_org_or_404, get_project_or_404
from mbee.api.permissions import (
    can_manage_org,
    can_manage_project,
    can_read_project,
    can_write_org,
)
from mbee.api.public_data import permissions_map, project_public
from mbee.audit import AuditAction, AuditStatus, log
from mbee.db import models, schemas
from mbee.db.database import get_db
from mbee.db.repositories import organizations as org_repo
from mbee.db.repositories import projects as project_repo
from mbee.db.repositories import users as user_repo
from mbee.db.repositories.common import FindOptions
from mbee.utils.ids import create_id, is_valid_project_id, last_segment
from mbee.utils.role_permissions import REMOVE_ALL, ROLE_ADMIN, get_allowed_roles

router = APIRouter(tags=["projects"])


def _emit(db: Session, action: str, payload, actor: str, org_id: str, project_id: Optional[str] = None) -> None:
    events.emit(
        events.event_name("projects", action),
        payload,
        events.EventContext(db=db, organization_id=org_id, project_id=project_id, actor=actor),
    )


def _public(db: Session, projects: List[models.Project]) -> List[dict]:
    members = project_repo.members_by_project(db, [p.id for p in projects])
    return [project_public(p, members.get(p.id, [])) for p in projects]


def apply_project_permissions(db: Session, project: models.Project, permissions: Dict[str, str], actor: models.User) -> List[dict]:
    changes = []
    for username, role in permissions.items():
        if username == actor.username and not actor.is_admin:
            raise HTTPException(status_code=403, detail="Users cannot update their own permissions")
        if role != REMOVE_ALL and role not in get_allowed_roles():
            raise HTTPException(status_code=400, detail=f"Invalid permission [{role}] for user [{username}]")
        if user_repo.get_user(db, username) is None:
            raise HTTPException(status_code=404, detail=f"User [{username}] not found")
        current = project_repo.get_membership(db, project.id, username)
        if current is not None and current.role == ROLE_ADMIN and role != ROLE_ADMIN \
                and project_repo.count_admins(db, project.id) <= 1:
            raise HTTPException(status_code=409, detail="A project must keep at least one admin")
        if role == REMOVE_ALL:
            if current is not None:
                project_repo.remove_member(db, project.id, username)
                changes.append({"user": username, "action": AuditAction.MEMBER_REMOVE, "role": None})
        else:
            project_repo.set_member_role(db, project, username, role)
            action = AuditAction.MEMBER_ADD if current is None else AuditAction.MEMBER_ROLE_CHANGE
            changes.append({"user": username, "action": action, "role": role})
    return changes


def _log_member_changes(db: Session, project: models.Project, actor: str, changes: List[dict]) -> None:
    for change in changes:
        log(db, action=change["action"], status=AuditStatus.SUCCESS, target_type="project_membership",
            target_id=change["user"], actor_user_id=actor, organization_id=project.organization_id,
            metadata={"project": project.id, "role": change["role"]})


@router.get("/projects")
def list_all_projects(
    options: FindOptions = Depends(get_find_options),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    """Every project the user can read, across all of its orgs."""
    _user, current_user = user_context
    org_ids = None if current_user.get("is_admin") else list(current_user["memberships_by_org"].keys())
    archived_orgs = {
        o.id for o in org_repo.list_organizations(db, org_ids=org_ids, options=FindOptions(archived=True))
    }
    projects = [
        p for p in project_repo.list_projects(db, org_ids=org_ids, options=options)
        if can_read_project(p, current_user)
        and (options.include_archived or options.archived or p.organization_id not in archived_orgs)
    ]
    return _public(db, projects)


@router.get("/orgs/{org_id}/projects")
def list_projects(
    org_id: str,
    ids: Optional[str] = Query(default=None, description="Comma separated project ids"),
    options: FindOptions = Depends(get_find_options),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    org = get_org_or_404(db, org_id, current_user, allow_archived=options.include_archived or bool(options.archived))
    wanted = split_ids(ids)
    project_ids = [create_id(org.id, p) for p in wanted] if wanted is not None else None
    projects = project_repo.list_projects(db, org_id=org.id, project_ids=project_ids, options=options)
    return _public(db, [p for p in projects if can_read_project(p, current_user)])


def _create_projects(db: Session, user, current_user, org_id: str, items: List[schemas.ProjectCreate],
                     *, replace: bool = False) -> List[dict]:
    org = get_org_or_404(db, org_id, current_user)
    if not can_write_org(org.id, current_user):
        raise HTTPException(status_code=403, detail=f"Insufficient permissions to create projects in [{org.id}]")
    ensure_unique([i.id for i in items], "project")
    existing = []
    for item in items:
        if not is_valid_project_id(item.id):
            raise HTTPException(status_code=400, detail=f"Invalid project id [{item.id}]")
        if not item.name.strip():
            raise HTTPException(status_code=400, detail=f"Project [{item.id}] requires a name")
        found = project_repo.get_project(db, create_id(org.id, item.id))
        if found is None:
            continue
        if not replace:
            raise HTTPException(status_code=409, detail=f"Project [{item.id}] already exists in [{org.id}]")
        if not can_manage_project(found, current_user):
            raise HTTPException(status_code=403, detail=f"Insufficient permissions to replace project [{item.id}]")
        existing.append(found)

    replaced = [p.id for p in existing]
    for project in existing:
        project_repo.delete_project(db, project)

    created = []
    member_changes = {}
    for item in items:
        project = project_repo.create_project(
            db,
            org_id=org.id,
            project_id=item.id,
            name=item.name.strip(),
            visibility=item.visibility,
            custom=item.custom,
            created_by=user.username,
        )
        if item.permissions:
            member_changes[project.id] = apply_project_permissions(db, project, item.permissions, user)
        created.append(project)
    db.commit()

    for project in created:
        action = AuditAction.PROJECT_REPLACE if project.id in replaced else AuditAction.PROJECT_CREATE
        log(db, action=action, status=AuditStatus.SUCCESS, target_type="project",
            target_id=project.id, actor_user_id=user.username, organization_id=org.id)
        _log_member_changes(db, project, user.username, member_changes.get(project.id, []))
    if replaced:
        _emit(db, "deleted", [last_segment(p) for p in replaced], user.username, org.id)
    result = _public(db, created)
    for project, data in zip(created, result):
        _emit(db, "created", data, user.username, org.id, project.id)
    return result


@router.post("/orgs/{org_id}/projects", status_code=status.HTTP_201_CREATED)
def create_projects(
    org_id: str,
    payload: Union[List[schemas.ProjectCreate], schemas.ProjectCreate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _create_projects(db, user, current_user, org_id, as_list(payload))


@router.put("/orgs/{org_id}/projects")
def create_or_replace_projects(
    org_id: str,
    payload: Union[List[schemas.ProjectCreate], schemas.ProjectCreate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    """Create projects, replacing any that already exist.

    A replaced project loses its branches, elements, artifacts, members and
    webhooks and starts over with a fresh master branch. Replacing needs
    project admin on top of org write.
    """
    user, current_user = user_context
    return _create_projects(db, user, current_user, org_id, as_list(payload), replace=True)


def _update_projects(db: Session, user, current_user, org_id: str, items: List[schemas.ProjectUpdate]) -> List[dict]:
    ids = [i.id for i in items]
    if any(not i for i in ids):
        raise HTTPException(status_code=400, detail="Each update must include a project id")
    ensure_unique(ids, "project")
    pairs = []
    for item in items:
        project = get_project_or_404(db, org_id, item.id, current_user, allow_archived=True)
        if org_repo.get_organization(db, org_id).archived:
            raise HTTPException(status_code=403, detail=f"The organization [{org_id}] is archived.")
        if not can_manage_project(project, current_user):
            raise HTTPException(status_code=403, detail=f"Insufficient permissions to update project [{item.id}]")
        changes = item.model_dump(exclude_unset=True)
        ensure_modifiable(project, changes, "project", item.id)
        if "name" in changes and not (changes["name"] or "").strip():
            raise HTTPException(status_code=400, detail="Project name cannot be empty")
        pairs.append((project, changes))

    member_changes = {}
    for project, changes in pairs:
        project_repo.update_project(db, project, changes, actor=user.username)
        if changes.get("permissions"):
            member_changes[project.id] = apply_project_permissions(db, project, changes["permissions"], user)
    db.commit()

    for project, changes in pairs:
        log(db, action=AuditAction.PROJECT_UPDATE, status=AuditStatus.SUCCESS, target_type="project",
            target_id=project.id, actor_user_id=user.username, organization_id=org_id,
            metadata={"fields": sorted(k for k in changes if k != "id")})
        _log_member_changes(db, project, user.username, member_changes.get(project.id, []))
    projects = [p for p, _c in pairs]
    result = _public(db, projects)
    for project, data in zip(projects, result):
        _emit(db, "updated", data, user.username, org_id, project.id)
    return result


@router.patch("/orgs/{org_id}/projects")
def update_projects(
    org_id: str,
    payload: Union[List[schemas.ProjectUpdate], schemas.ProjectUpdate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _update_projects(db, user, current_user, org_id, as_list(payload))


def _delete_projects(db: Session, user, current_user, org_id: str, project_ids: List[str]) -> List[str]:
    ensure_unique(project_ids, "project")
    org = get_org_or_404(db, org_id, current_user)
    if not can_manage_org(org.id, current_user):
        raise HTTPException(status_code=403, detail=f"Insufficient permissions to delete projects in [{org.id}]")
    projects = []
    for project_id in project_ids:
        project = project_repo.get_project(db, create_id(org.id, project_id))
        if project is None:
            raise HTTPException(status_code=404, detail=f"Project [{project_id}] not found")
        projects.append(project)
    for project in projects:
        project_repo.delete_project(db, project)
    db.commit()
    for project_id in project_ids:
        log(db, action=AuditAction.PROJECT_DELETE, status=AuditStatus.SUCCESS, target_type="project",
            target_id=create_id(org.id, project_id), actor_user_id=user.username, organization_id=org.id)
    _emit(db, "deleted", project_ids, user.username, org.id)
    return project_ids


@router.delete("/orgs/{org_id}/projects")
def delete_projects(
    org_id: str,
    ids: str = Query(..., description="Comma separated project ids"),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _delete_projects(db, user, current_user, org_id, split_ids(ids))


@router.get("/orgs/{org_id}/projects/{project_id}")
def get_project(
    org_id: str,
    project_id: str,
    include_archived: bool = Query(default=False),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    project = get_project_or_404(db, org_id, project_id, current_user, allow_archived=True)
    if not include_archived and (project.archived or org_repo.get_organization(db, org_id).archived):
        raise HTTPException(status_code=404, detail=f"Project [{project_id}] not found")
    return _public(db, [project])[0]


@router.post("/orgs/{org_id}/projects/{project_id}", status_code=status.HTTP_201_CREATED)
def create_project(
    org_id: str,
    project_id: str,
    payload: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    if payload.id != project_id:
        raise HTTPException(status_code=400, detail="Project id in body does not match id in URL")
    return create_projects(org_id=org_id, payload=payload, db=db, user_context=user_context)[0]


@router.put("/orgs/{org_id}/projects/{project_id}")
def create_or_replace_project(
    org_id: str,
    project_id: str,
    payload: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    if payload.id != project_id:
        raise HTTPException(status_code=400, detail="Project id in body does not match id in URL")
    return _create_projects(db, user, current_user, org_id, [payload], replace=True)[0]


@router.patch("/orgs/{org_id}/projects/{project_id}")
def update_project(
    org_id: str,
    project_id: str,
    payload: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    if payload.id not in (None, project_id):
        raise HTTPException(status_code=400, detail="Project id in body does not match id in URL")
    item = payload.model_copy(update={"id": project_id})
    return _update_projects(db, user, current_user, org_id, [item])[0]


@router.delete("/orgs/{org_id}/projects/{project_id}")
def delete_project(
    org_id: str,
    project_id: str,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _delete_projects(db, user, current_user, org_id, [project_id])[0]


@router.get("/orgs/{org_id}/projects/{project_id}/members")
def list_members(
    org_id: str,
    project_id: str,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    project = get_project_or_404(db, org_id, project_id, current_user)
    return permissions_map(project_repo.list_members(db, project.id))


def _change_member(db: Session, user, current_user, org_id: str, project_id: str, username: str, role: str) -> dict:
    project = get_project_or_404(db, org_id, project_id, current_user)
    if not can_manage_project(project, current_user):
        raise HTTPException(status_code=403, detail="Forbidden")
    changes = apply_project_permissions(db, project, {username: role}, user)
    db.commit()
    _log_member_changes(db, project, user.username, changes)
    data = _public(db, [project])[0]
    _emit(db, "updated", data, user.username, project.organization_id, project.id)
    return data


@router.put("/orgs/{org_id}/projects/{project_id}/members/{username}")
def set_member_role(
    org_id: str,
    project_id: str,
    username: str,
    payload: schemas.MemberRoleUpdate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _change_member(db, user, current_user, org_id, project_id, username, payload.role.value)


@router.delete("/orgs/{org_id}/projects/{project_id}/members/{username}")
def remove_member(
    org_id: str,
    project_id: str,
    username: str,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    project = get_project_or_404(db, org_id, project_id, current_user)
    if not can_manage_project(project, current_user):
        raise HTTPException(status_code=403, detail="Forbidden")
    if project_repo.get_membership(db, project.id, username) is None:
        raise HTTPException(status_code=404, detail=f"User [{username}] is not a member of project [{project_id}]")
    return _change_member(db, user, current_user, org_id, project_id, username, REMOVE_ALL)
