"""
Organizations API endpoints.

Manage organizations and memberships with admin role enforcement and
audited lifecycle actions. Only system admins create or delete orgs; org
admins update them and manage their members.
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
    require_system_admin,
    split_ids,
)
from mbee.api.lookups import ensure_modifiable, get_org_or_404
from mbee.api.permissions import can_manage_org
from mbee.api.public_data import org_public, permissions_map
from mbee.audit import AuditAction, AuditStatus, log
from mbee.config import get_config
from mbee.db import models, schemas
from mbee.db.database import get_db
from mbee.db.repositories import organizations as org_repo
from mbee.db.repositories import users as user_repo
from mbee.db.repositories.common import FindOptions
from mbee.utils.ids import is_valid_org_id
from mbee.utils.role_permissions import REMOVE_ALL, ROLE_ADMIN, get_allowed_roles

router = APIRouter(prefix="/orgs", tags=["organizations"])


def _emit(db: Session, action: str, payload, actor: str, org_id: Optional[str] = None) -> None:
    events.emit(
        events.event_name("orgs", action),
        payload,
        events.EventContext(db=db, organization_id=org_id, actor=actor),
    )


def _public(db: Session, orgs: List[models.Organization]) -> List[dict]:
    members = org_repo.members_by_org(db, [o.id for o in orgs])
    return [org_public(o, members.get(o.id, [])) for o in orgs]


def apply_org_permissions(db: Session, org: models.Organization, permissions: Dict[str, str], actor: models.User) -> List[dict]:
    """Apply a ``{username: role | REMOVE_ALL}`` map to an org's members; returns the changes made."""
    changes = []
    for username, role in permissions.items():
        if username == actor.username and not actor.is_admin:
            raise HTTPException(status_code=403, detail="Users cannot update their own permissions")
        if role != REMOVE_ALL and role not in get_allowed_roles():
            raise HTTPException(status_code=400, detail=f"Invalid permission [{role}] for user [{username}]")
        if user_repo.get_user(db, username) is None:
            raise HTTPException(status_code=404, detail=f"User [{username}] not found")
        current = org_repo.get_membership(db, org.id, username)
        if org.id == get_config().default_org_id and role == REMOVE_ALL:
            raise HTTPException(status_code=403, detail="Users cannot be removed from the default organization")
        if current is not None and current.role == ROLE_ADMIN and role != ROLE_ADMIN \
                and org_repo.count_admins(db, org.id) <= 1:
            raise HTTPException(status_code=409, detail="An organization must keep at least one admin")
        if role == REMOVE_ALL:
            if current is not None:
                org_repo.remove_member(db, org.id, username)
                changes.append({"user": username, "action": AuditAction.MEMBER_REMOVE, "role": None})
        else:
            org_repo.set_member_role(db, org.id, username, role)
            action = AuditAction.MEMBER_ADD if current is None else AuditAction.MEMBER_ROLE_CHANGE
            changes.append({"user": username, "action": action, "role": role})
    return changes


def _log_member_changes(db: Session, org_id: str, actor: str, changes: List[dict]) -> None:
    for change in changes:
        log(db, action=change["action"], status=AuditStatus.SUCCESS, target_type="membership",
            target_id=change["user"], actor_user_id=actor, organization_id=org_id,
            metadata={"role": change["role"]})


@router.get("")
def list_organizations(
    ids: Optional[str] = Query(default=None, description="Comma separated org ids"),
    options: FindOptions = Depends(get_find_options),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    """List organizations the user belongs to; system admins see every org."""
    user, current_user = user_context
    member = None if current_user.get("is_admin") else user.username
    orgs = org_repo.list_organizations(db, org_ids=split_ids(ids), member=member, options=options)
    return _public(db, orgs)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_organizations(
    payload: Union[List[schemas.OrganizationCreate], schemas.OrganizationCreate],
    db: Session = Depends(get_db),
    user_context = Depends(require_system_admin),
):
    user, _ctx = user_context
    items = as_list(payload)
    ensure_unique([i.id for i in items], "organization")
    for item in items:
        if not is_valid_org_id(item.id):
            raise HTTPException(status_code=400, detail=f"Invalid organization id [{item.id}]")
        if not item.name.strip():
            raise HTTPException(status_code=400, detail=f"Organization [{item.id}] requires a name")
        if org_repo.get_organization(db, item.id):
            raise HTTPException(status_code=409, detail=f"Organization [{item.id}] already exists")

    created = []
    member_changes = {}
    for item in items:
        org = org_repo.create_organization(
            db, org_id=item.id, name=item.name.strip(), custom=item.custom, created_by=user.username,
        )
        if item.permissions:
            member_changes[org.id] = apply_org_permissions(db, org, item.permissions, user)
        created.append(org)
    db.commit()

    for org in created:
        log(db, action=AuditAction.ORGANIZATION_CREATE, status=AuditStatus.SUCCESS, target_type="organization",
            target_id=org.id, actor_user_id=user.username, organization_id=org.id)
        _log_member_changes(db, org.id, user.username, member_changes.get(org.id, []))
    result = _public(db, created)
    for data in result:
        _emit(db, "created", data, user.username, data["id"])
    return result


def _update_organizations(db: Session, user, current_user, items: List[schemas.OrganizationUpdate]) -> List[dict]:
    ids = [i.id for i in items]
    if any(not i for i in ids):
        raise HTTPException(status_code=400, detail="Each update must include an organization id")
    ensure_unique(ids, "organization")
    pairs = []
    for item in items:
        org = get_org_or_404(db, item.id, current_user, allow_archived=True)
        if not can_manage_org(org.id, current_user):
            raise HTTPException(status_code=403, detail=f"Insufficient permissions to update organization [{org.id}]")
        changes = item.model_dump(exclude_unset=True)
        ensure_modifiable(org, changes, "organization", org.id)
        if changes.get("archived") and org.id == get_config().default_org_id:
            raise HTTPException(status_code=403, detail="The default organization cannot be archived")
        if "name" in changes and not (changes["name"] or "").strip():
            raise HTTPException(status_code=400, detail="Organization name cannot be empty")
        pairs.append((org, changes))

    member_changes = {}
    for org, changes in pairs:
        org_repo.update_organization(db, org, changes, actor=user.username)
        if changes.get("permissions"):
            member_changes[org.id] = apply_org_permissions(db, org, changes["permissions"], user)
    db.commit()

    for org, changes in pairs:
        log(db, action=AuditAction.ORGANIZATION_UPDATE, status=AuditStatus.SUCCESS, target_type="organization",
            target_id=org.id, actor_user_id=user.username, organization_id=org.id,
            metadata={"fields": sorted(k for k in changes if k != "id")})
        _log_member_changes(db, org.id, user.username, member_changes.get(org.id, []))
    result = _public(db, [org for org, _c in pairs])
    for data in result:
        _emit(db, "updated", data, user.username, data["id"])
    return result


@router.patch("")
def update_organizations(
    payload: Union[List[schemas.OrganizationUpdate], schemas.OrganizationUpdate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    return _update_organizations(db, user, current_user, as_list(payload))


def _delete_organizations(db: Session, user, org_ids: List[str]) -> List[str]:
    ensure_unique(org_ids, "organization")
    orgs = []
    for org_id in org_ids:
        if org_id == get_config().default_org_id:
            raise HTTPException(status_code=403, detail="The default organization cannot be deleted")
        org = org_repo.get_organization(db, org_id)
        if org is None:
            raise HTTPException(status_code=404, detail=f"Organization [{org_id}] not found")
        orgs.append(org)
    for org in orgs:
        org_repo.delete_organization(db, org)
    db.commit()
    for org_id in org_ids:
        log(db, action=AuditAction.ORGANIZATION_DELETE, status=AuditStatus.SUCCESS, target_type="organization",
            target_id=org_id, actor_user_id=user.username, organization_id=org_id)
        # The org is gone, so only server-level webhooks can still listen
        _emit(db, "deleted", org_id, user.username)
    return org_ids


@router.delete("")
def delete_organizations(
    ids: str = Query(..., description="Comma separated org ids"),
    db: Session = Depends(get_db),
    user_context = Depends(require_system_admin),
):
    user, _ctx = user_context
    return _delete_organizations(db, user, split_ids(ids))


@router.get("/{org_id}")
def get_organization(
    org_id: str,
    include_archived: bool = Query(default=False),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    org = get_org_or_404(db, org_id, current_user, allow_archived=True)
    if org.archived and not include_archived:
        raise HTTPException(status_code=404, detail=f"Organization [{org_id}] not found")
    return _public(db, [org])[0]


@router.post("/{org_id}", status_code=status.HTTP_201_CREATED)
def create_organization(
    org_id: str,
    payload: schemas.OrganizationCreate,
    db: Session = Depends(get_db),
    user_context = Depends(require_system_admin),
):
    if payload.id != org_id:
        raise HTTPException(status_code=400, detail="Organization id in body does not match id in URL")
    return create_organizations(payload=payload, db=db, user_context=user_context)[0]


@router.patch("/{org_id}")
def update_organization(
    org_id: str,
    payload: schemas.OrganizationUpdate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    if payload.id not in (None, org_id):
        raise HTTPException(status_code=400, detail="Organization id in body does not match id in URL")
    item = payload.model_copy(update={"id": org_id})
    return _update_organizations(db, user, current_user, [item])[0]


@router.delete("/{org_id}")
def delete_organization(
    org_id: str,
    db: Session = Depends(get_db),
    user_context = Depends(require_system_admin),
):
    user, _ctx = user_context
    return _delete_organizations(db, user, [org_id])[0]


@router.get("/{org_id}/members")
def list_members(
    org_id: str,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    _user, current_user = user_context
    org = get_org_or_404(db, org_id, current_user)
    return permissions_map(org_repo.list_members(db, org.id))


@router.put("/{org_id}/members/{username}")
def set_member_role(
    org_id: str,
    username: str,
    payload: schemas.MemberRoleUpdate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    org = get_org_or_404(db, org_id, current_user)
    if not can_manage_org(org.id, current_user):
        raise HTTPException(status_code=403, detail="Forbidden")
    changes = apply_org_permissions(db, org, {username: payload.role.value}, user)
    db.commit()
    _log_member_changes(db, org.id, user.username, changes)
    data = _public(db, [org])[0]
    _emit(db, "updated", data, user.username, org.id)
    return data


@router.delete("/{org_id}/members/{username}")
def remove_member(
    org_id: str,
    username: str,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, current_user = user_context
    org = get_org_or_404(db, org_id, current_user)
    if not can_manage_org(org.id, current_user):
        raise HTTPException(status_code=403, detail="Forbidden")
    if org_repo.get_membership(db, org.id, username) is None:
        raise HTTPException(status_code=404, detail=f"User [{username}] is not a member of [{org.id}]")
    changes = apply_org_permissions(db, org, {username: REMOVE_ALL}, user)
    db.commit()
    _log_member_changes(db, org.id, user.username, changes)
    data = _public(db, [org])[0]
    _emit(db, "updated", data, user.username, org.id)
    return data
