"""
Users API endpoints.

System admins create, update and remove accounts; every authenticated user
can look users up and edit its own profile and password.
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
    require_system_admin,
    split_ids,
)
from mbee.api.permissions import can_update_user
from mbee.api.public_data import user_public
from mbee.audit import AuditAction, AuditStatus, log
from mbee.db import schemas
from mbee.db.database import get_db
from mbee.db.repositories import users as user_repo
from mbee.db.repositories.common import FindOptions
from mbee.utils.ids import is_valid_password, is_valid_username
from mbee.utils.token_crypto import verify_secret

router = APIRouter(prefix="/users", tags=["users"])

# Fields a non-admin may change on its own account
SELF_EDITABLE_FIELDS = {"email", "fname", "lname", "preferred_name", "custom", "username"}


def _emit(db: Session, action: str, payload, actor: str) -> None:
    events.emit(events.event_name("users", action), payload, events.EventContext(db=db, actor=actor))


@router.get("")
def list_users(
    usernames: Optional[str] = Query(default=None, description="Comma separated usernames"),
    options: FindOptions = Depends(get_find_options),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    users = user_repo.list_users(db, usernames=split_ids(usernames), options=options)
    return [user_public(u) for u in users]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_users(
    payload: Union[List[schemas.UserCreate], schemas.UserCreate],
    db: Session = Depends(get_db),
    user_context = Depends(require_system_admin),
):
    actor, _ctx = user_context
    items = as_list(payload)
    ensure_unique([i.username for i in items], "user")
    for item in items:
        if not is_valid_username(item.username):
            raise HTTPException(status_code=400, detail=f"Invalid username [{item.username}]")
        if item.provider == "local" and not is_valid_password(item.password):
            raise HTTPException(status_code=400, detail=f"Password for [{item.username}] does not meet requirements")
        if user_repo.get_user(db, item.username):
            raise HTTPException(status_code=409, detail=f"User [{item.username}] already exists")

    created = []
    for item in items:
        created.append(user_repo.create_user(
            db,
            username=item.username,
            password=item.password,
            email=item.email,
            fname=item.fname,
            lname=item.lname,
            preferred_name=item.preferred_name,
            is_admin=item.is_admin,
            provider=item.provider,
            custom=item.custom,
            created_by=actor.username,
        ))
    db.commit()

    for u in created:
        log(db, action=AuditAction.USER_CREATE, status=AuditStatus.SUCCESS, target_type="user",
            target_id=u.username, actor_user_id=actor.username)
    result = [user_public(u) for u in created]
    _emit(db, "created", result, actor.username)
    return result


def _apply_user_updates(db: Session, actor, current_user, items: List[schemas.UserUpdate]):
    usernames = [i.username for i in items]
    if any(not u for u in usernames):
        raise HTTPException(status_code=400, detail="Each update must include a username")
    ensure_unique(usernames, "user")
    pairs = []
    for item in items:
        changes = item.model_dump(exclude_unset=True)
        if not can_update_user(item.username, current_user):
            raise HTTPException(status_code=403, detail=f"Insufficient permissions to update user [{item.username}]")
        if not current_user.get("is_admin") and set(changes) - SELF_EDITABLE_FIELDS:
            raise HTTPException(status_code=403, detail="Only system admins can change admin or archived status")
        user = user_repo.get_user(db, item.username)
        if user is None:
            raise HTTPException(status_code=404, detail=f"User [{item.username}] not found")
        if user.archived and changes.get("archived") is not False:
            raise HTTPException(status_code=403, detail=f"The user [{item.username}] is archived.")
        if user.username == actor.username and changes.get("archived"):
            raise HTTPException(status_code=403, detail="Users cannot archive themselves")
        pairs.append((user, changes))

    updated = [user_repo.update_user(db, user, changes, actor=actor.username) for user, changes in pairs]
    db.commit()
    for u, changes in zip(updated, (c for _u, c in pairs)):
        log(db, action=AuditAction.USER_UPDATE, status=AuditStatus.SUCCESS, target_type="user",
            target_id=u.username, actor_user_id=actor.username,
            metadata={"fields": sorted(k for k in changes if k != "username")})
    result = [user_public(u) for u in updated]
    _emit(db, "updated", result, actor.username)
    return result


@router.patch("")
def update_users(
    payload: Union[List[schemas.UserUpdate], schemas.UserUpdate],
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    actor, current_user = user_context
    return _apply_user_updates(db, actor, current_user, as_list(payload))


def _remove_users(db: Session, actor, usernames: List[str]) -> List[str]:
    ensure_unique(usernames, "user")
    users = []
    for username in usernames:
        if username == actor.username:
            raise HTTPException(status_code=403, detail="Users cannot delete themselves")
        user = user_repo.get_user(db, username)
        if user is None:
            raise HTTPException(status_code=404, detail=f"User [{username}] not found")
        users.append(user)
    for user in users:
        user_repo.delete_user(db, user)
    db.commit()
    for username in usernames:
        log(db, action=AuditAction.USER_DELETE, status=AuditStatus.SUCCESS, target_type="user",
            target_id=username, actor_user_id=actor.username)
    _emit(db, "deleted", usernames, actor.username)
    return usernames


@router.delete("")
def delete_users(
    ids: str = Query(..., description="Comma separated usernames"),
    db: Session = Depends(get_db),
    user_context = Depends(require_system_admin),
):
    actor, _ctx = user_context
    return _remove_users(db, actor, split_ids(ids))


@router.get("/whoami")
def whoami(user_context = Depends(get_current_user_context)):
    user, current_user = user_context
    data = user_public(user)
    data["orgs"] = {oid: m["role"] for oid, m in current_user["memberships_by_org"].items()}
    return data


@router.get("/{username}")
def get_user(
    username: str,
    include_archived: bool = Query(default=False),
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user = user_repo.get_user(db, username)
    if user is None or (user.archived and not include_archived):
        raise HTTPException(status_code=404, detail=f"User [{username}] not found")
    return user_public(user)


@router.post("/{username}", status_code=status.HTTP_201_CREATED)
def create_user(
    username: str,
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    user_context = Depends(require_system_admin),
):
    if payload.username != username:
        raise HTTPException(status_code=400, detail="Username in body does not match username in URL")
    return create_users(payload=payload, db=db, user_context=user_context)[0]


@router.patch("/{username}")
def update_user(
    username: str,
    payload: schemas.UserUpdate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    actor, current_user = user_context
    if payload.username not in (None, username):
        raise HTTPException(status_code=400, detail="Username in body does not match username in URL")
    item = payload.model_copy(update={"username": username})
    return _apply_user_updates(db, actor, current_user, [item])[0]


@router.delete("/{username}")
def delete_user(
    username: str,
    db: Session = Depends(get_db),
    user_context = Depends(require_system_admin),
):
    actor, _ctx = user_context
    return _remove_users(db, actor, [username])[0]


@router.patch("/{username}/password")
def update_password(
    username: str,
    payload: schemas.PasswordUpdate,
    db: Session = Depends(get_db),
    user_context = Depends(get_current_user_context),
):
    user, _ctx = user_context
    if user.username != username:
        raise HTTPException(status_code=403, detail="Users can only change their own password")
    if user.provider != "local":
        raise HTTPException(status_code=403, detail="Password changes are only supported for local users")
    if not verify_secret(payload.old_password, user.password_hash):
        raise HTTPException(status_code=401, detail="Old password is incorrect")
    if payload.password != payload.confirm_password:
        raise HTTPException(status_code=400, detail="Password and confirmation do not match")
    if not is_valid_password(payload.password):
        raise HTTPException(status_code=400, detail="Password does not meet requirements")
    user_repo.set_password(db, user, payload.password)
    user.last_modified_by = user.username
    db.commit()
    db.refresh(user)
    log(db, action=AuditAction.USER_PASSWORD_CHANGE, status=AuditStatus.SUCCESS, target_type="user",
        target_id=user.username, actor_user_id=user.username)
    return user_public(user)
